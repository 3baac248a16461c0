"""
Tests for AvailabilityEvaluator - the layered availability checks.
"""

from unittest.mock import MagicMock

import httpx
import pytest

from apiavailability.contracts.types import (
    AvailabilityReason,
    ConditionStatus,
    ConditionType,
    ServiceType,
)
from apiavailability.evaluator import (
    LOCAL_MESSAGE,
    PASSED_MESSAGE,
    AvailabilityEvaluator,
    truncate_message,
)
from apiavailability.probe import DiscoveryProbe, StaticServiceResolver

from conftest import (
    TEST_SERVICE_PORT_NAME,
    new_endpoints,
    new_endpoints_with_address,
    new_local_api,
    new_remote_api,
    new_service,
)


@pytest.fixture
def probe():
    p = MagicMock(spec=DiscoveryProbe)
    p.check.return_value = None
    return p


@pytest.fixture
def evaluator(caches, probe):
    apis, services, endpoints = caches
    return AvailabilityEvaluator(apis, services, endpoints, probe)


def seed(evaluator, api=None, service=None, endpoints=None):
    if api is not None:
        evaluator.apis.add(api)
    if service is not None:
        evaluator.services.add(service)
    if endpoints is not None:
        evaluator.endpoints.add(endpoints)


class TestLocal:
    """Locally served APIs are always available."""

    def test_local_is_available(self, evaluator, probe):
        seed(evaluator, api=new_local_api("local.group"))

        result = evaluator.evaluate("local.group")

        assert result.condition.type == ConditionType.AVAILABLE
        assert result.condition.status == ConditionStatus.TRUE
        assert result.condition.reason == AvailabilityReason.LOCAL.value
        assert result.condition.message == LOCAL_MESSAGE
        assert result.retry_error is None
        probe.check.assert_not_called()

    def test_missing_api_yields_nothing(self, evaluator):
        assert evaluator.evaluate("gone.group") is None


class TestServiceChecks:
    """Service presence and port checks."""

    def test_no_service(self, evaluator, probe):
        seed(evaluator, api=new_remote_api("remote.group"))

        result = evaluator.evaluate("remote.group")

        assert result.condition.status == ConditionStatus.FALSE
        assert result.condition.reason == AvailabilityReason.SERVICE_NOT_FOUND.value
        assert result.condition.message.startswith('service/bar in "foo" is not present')
        assert result.retry_error is None
        probe.check.assert_not_called()

    def test_service_in_other_namespace_does_not_count(self, evaluator):
        seed(
            evaluator,
            api=new_remote_api("remote.group"),
            service=new_service(namespace="elsewhere"),
        )

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.SERVICE_NOT_FOUND.value

    def test_service_on_wrong_port(self, evaluator, probe):
        seed(
            evaluator,
            api=new_remote_api("remote.group", port=1234),
            service=new_service(port=6443),
            endpoints=new_endpoints_with_address(port=6443),
        )

        result = evaluator.evaluate("remote.group")

        assert result.condition.status == ConditionStatus.FALSE
        assert result.condition.reason == AvailabilityReason.SERVICE_PORT_ERROR.value
        assert result.condition.message.startswith(
            'service/bar in "foo" is not listening on port 1234'
        )
        probe.check.assert_not_called()

    def test_service_access_error_is_retried(self, evaluator, probe):
        seed(evaluator, api=new_remote_api("remote.group"))
        evaluator.services = MagicMock()
        evaluator.services.get.side_effect = RuntimeError("cache unavailable")

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.SERVICE_ACCESS_ERROR.value
        assert "cache unavailable" in result.condition.message
        assert result.retry_error is not None
        probe.check.assert_not_called()


class TestEndpointChecks:
    """Endpoints presence and address checks."""

    def test_no_endpoints(self, evaluator, probe):
        seed(evaluator, api=new_remote_api("remote.group"), service=new_service())

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.ENDPOINTS_NOT_FOUND.value
        assert result.condition.message.startswith('cannot find endpoints for service/bar in "foo"')
        probe.check.assert_not_called()

    def test_endpoints_without_addresses(self, evaluator, probe):
        seed(
            evaluator,
            api=new_remote_api("remote.group"),
            service=new_service(),
            endpoints=new_endpoints(),
        )

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.MISSING_ENDPOINTS.value
        assert result.condition.message.startswith(
            f'endpoints for service/bar in "foo" have no addresses with port name "{TEST_SERVICE_PORT_NAME}"'
        )
        probe.check.assert_not_called()

    def test_endpoints_with_address_on_other_port_name(self, evaluator):
        seed(
            evaluator,
            api=new_remote_api("remote.group"),
            service=new_service(),
            endpoints=new_endpoints_with_address(port_name="other"),
        )

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.MISSING_ENDPOINTS.value

    def test_endpoints_access_error_is_retried(self, evaluator):
        seed(evaluator, api=new_remote_api("remote.group"), service=new_service())
        evaluator.endpoints = MagicMock()
        evaluator.endpoints.get.side_effect = RuntimeError("boom")

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.ENDPOINTS_ACCESS_ERROR.value
        assert result.retry_error is not None

    def test_external_name_skips_port_and_endpoint_checks(self, evaluator, probe):
        seed(
            evaluator,
            api=new_remote_api("remote.group", port=443),
            service=new_service(port=80, service_type=ServiceType.EXTERNAL_NAME),
        )

        result = evaluator.evaluate("remote.group")

        assert result.condition.status == ConditionStatus.TRUE
        assert result.condition.reason == AvailabilityReason.PASSED.value
        probe.check.assert_called_once()


class TestDiscovery:
    """The network probe runs last."""

    @pytest.fixture
    def healthy(self, evaluator):
        seed(
            evaluator,
            api=new_remote_api("remote.group"),
            service=new_service(),
            endpoints=new_endpoints_with_address(),
        )
        return evaluator

    def test_all_checks_pass(self, healthy, probe):
        result = healthy.evaluate("remote.group")

        assert result.condition.status == ConditionStatus.TRUE
        assert result.condition.reason == AvailabilityReason.PASSED.value
        assert result.condition.message == PASSED_MESSAGE
        probe.check.assert_called_once_with(result.api)

    def test_probe_failure(self, healthy, probe):
        probe.check.return_value = "failing or missing response from https://x: bad status from https://x: 403"

        result = healthy.evaluate("remote.group")

        assert result.condition.status == ConditionStatus.FALSE
        assert result.condition.reason == AvailabilityReason.FAILED_DISCOVERY_CHECK.value
        assert "bad status" in result.condition.message
        assert result.retry_error == result.condition.message

    def test_without_probe_passes_after_cache_checks(self, caches):
        apis, services, endpoints = caches
        evaluator = AvailabilityEvaluator(apis, services, endpoints, probe=None)
        seed(
            evaluator,
            api=new_remote_api("remote.group"),
            service=new_service(),
            endpoints=new_endpoints_with_address(),
        )

        result = evaluator.evaluate("remote.group")

        assert result.condition.reason == AvailabilityReason.PASSED.value

    @pytest.mark.parametrize("status_code,expected", [
        (200, ConditionStatus.TRUE),
        (403, ConditionStatus.FALSE),
    ])
    def test_with_http_probe(self, caches, http_client_factory, status_code, expected):
        client = http_client_factory(lambda request: httpx.Response(status_code))
        apis, services, endpoints = caches
        with DiscoveryProbe(StaticServiceResolver("https://backend"), client=client) as probe:
            evaluator = AvailabilityEvaluator(apis, services, endpoints, probe)
            seed(
                evaluator,
                api=new_remote_api("v1.remote.group"),
                service=new_service(),
                endpoints=new_endpoints_with_address(),
            )

            result = evaluator.evaluate("v1.remote.group")

        assert result.condition.status == expected
        assert "https://backend/apis/remote.group/v1" in client.requested


class TestMessages:
    """Tests for condition message handling."""

    def test_truncate_long_message(self):
        message = truncate_message("x" * 5000, limit=100)

        assert len(message) == 100
        assert message.endswith("...")

    def test_short_message_untouched(self):
        assert truncate_message("ok") == "ok"

    def test_long_probe_error_truncated_in_condition(self, evaluator, probe):
        seed(
            evaluator,
            api=new_remote_api("remote.group"),
            service=new_service(),
            endpoints=new_endpoints_with_address(),
        )
        probe.check.return_value = "e" * 5000

        result = evaluator.evaluate("remote.group")

        assert len(result.condition.message) == 1024
