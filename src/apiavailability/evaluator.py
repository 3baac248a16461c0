"""
Availability evaluation for a single APIService.

The evaluator is an ordered pipeline of checks. Each stage either returns
None (continue) or a Verdict (stop). Cheap cache-only checks run first; the
network probe runs last and only when everything else looks healthy:

    local? -> service exists? -> port declared? -> endpoints exist?
           -> endpoints have addresses on the port? -> discovery probe

Exactly one Available condition comes out of every pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from apiavailability.cache import ObjectCache
from apiavailability.contracts.timeouts import MAX_CONDITION_MESSAGE_LENGTH
from apiavailability.contracts.types import (
    AvailabilityReason,
    ConditionStatus,
    ConditionType,
    ServiceType,
)
from apiavailability.errors import NotFoundError
from apiavailability.models import (
    AggregatedAPI,
    APIServiceCondition,
    BackingService,
    ServiceEndpoints,
)
from apiavailability.probe import DiscoveryProbe

logger = logging.getLogger(__name__)

LOCAL_MESSAGE = "Local APIs are always available"
PASSED_MESSAGE = "all checks passed"


@dataclass(frozen=True)
class Verdict:
    """Outcome of a check stage."""
    status: ConditionStatus
    reason: AvailabilityReason
    message: str
    retry: bool = False

    @classmethod
    def available(cls, reason: AvailabilityReason, message: str) -> "Verdict":
        return cls(ConditionStatus.TRUE, reason, message)

    @classmethod
    def unavailable(
        cls, reason: AvailabilityReason, message: str, retry: bool = False
    ) -> "Verdict":
        return cls(ConditionStatus.FALSE, reason, message, retry)


@dataclass
class Evaluation:
    """
    Result of one pass.

    Attributes:
        api: The APIService as read from the cache at the start of the pass
        condition: Freshly computed Available condition (no transition time)
        retry_error: Set when the failure is presumed transient and the
            name should be retried with backoff
    """
    api: AggregatedAPI
    condition: APIServiceCondition
    retry_error: Optional[str] = None


@dataclass
class _CheckState:
    """State threaded through the stages of a single pass."""
    api: AggregatedAPI
    service: Optional[BackingService] = None
    endpoints: Optional[ServiceEndpoints] = None
    port_name: str = ""

    @property
    def service_label(self) -> str:
        ref = self.api.spec.service
        return f'service/{ref.name} in "{ref.namespace}"'

    @property
    def skips_endpoint_checks(self) -> bool:
        # ExternalName services have neither cluster ports nor endpoints
        return self.service is not None and self.service.type == ServiceType.EXTERNAL_NAME


def truncate_message(message: str, limit: int = MAX_CONDITION_MESSAGE_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


class AvailabilityEvaluator:
    """
    Computes the Available condition for an APIService.

    Args:
        apis: APIService cache
        services: Service cache
        endpoints: Endpoints cache
        probe: Discovery probe; when None the network check is skipped
    """

    def __init__(
        self,
        apis: ObjectCache[AggregatedAPI],
        services: ObjectCache[BackingService],
        endpoints: ObjectCache[ServiceEndpoints],
        probe: Optional[DiscoveryProbe] = None,
    ):
        self.apis = apis
        self.services = services
        self.endpoints = endpoints
        self.probe = probe
        self._stages: Sequence[Callable[[_CheckState], Optional[Verdict]]] = (
            self._check_local,
            self._check_service,
            self._check_service_port,
            self._check_endpoints,
            self._check_endpoint_addresses,
            self._check_discovery,
        )

    def evaluate(self, name: str) -> Optional[Evaluation]:
        """
        Run the check pipeline for ``name``.

        Returns:
            None if the APIService is no longer in the cache, otherwise the
            computed Evaluation.
        """
        try:
            api = self.apis.get(name)
        except NotFoundError:
            logger.debug(f"APIService {name} not in cache, skipping")
            return None

        state = _CheckState(api=api)
        verdict = None
        for stage in self._stages:
            verdict = stage(state)
            if verdict is not None:
                break

        condition = APIServiceCondition(
            type=ConditionType.AVAILABLE,
            status=verdict.status,
            reason=verdict.reason.value,
            message=truncate_message(verdict.message),
        )
        return Evaluation(
            api=api,
            condition=condition,
            retry_error=verdict.message if verdict.retry else None,
        )

    def _check_local(self, state: _CheckState) -> Optional[Verdict]:
        if state.api.is_local:
            return Verdict.available(AvailabilityReason.LOCAL, LOCAL_MESSAGE)
        return None

    def _check_service(self, state: _CheckState) -> Optional[Verdict]:
        try:
            state.service = self.services.get(state.api.backend_key)
        except NotFoundError:
            return Verdict.unavailable(
                AvailabilityReason.SERVICE_NOT_FOUND,
                f"{state.service_label} is not present",
            )
        except Exception as e:
            return Verdict.unavailable(
                AvailabilityReason.SERVICE_ACCESS_ERROR,
                f"{state.service_label} cannot be checked due to: {e}",
                retry=True,
            )
        return None

    def _check_service_port(self, state: _CheckState) -> Optional[Verdict]:
        if state.skips_endpoint_checks:
            return None
        port = state.api.spec.service.port
        service_port = state.service.find_port(port)
        if service_port is None:
            return Verdict.unavailable(
                AvailabilityReason.SERVICE_PORT_ERROR,
                f"{state.service_label} is not listening on port {port}",
            )
        state.port_name = service_port.name
        return None

    def _check_endpoints(self, state: _CheckState) -> Optional[Verdict]:
        if state.skips_endpoint_checks:
            return None
        try:
            state.endpoints = self.endpoints.get(state.api.backend_key)
        except NotFoundError:
            return Verdict.unavailable(
                AvailabilityReason.ENDPOINTS_NOT_FOUND,
                f"cannot find endpoints for {state.service_label}",
            )
        except Exception as e:
            return Verdict.unavailable(
                AvailabilityReason.ENDPOINTS_ACCESS_ERROR,
                f"{state.service_label} cannot be checked due to: {e}",
                retry=True,
            )
        return None

    def _check_endpoint_addresses(self, state: _CheckState) -> Optional[Verdict]:
        if state.skips_endpoint_checks:
            return None
        if not state.endpoints.has_address_for_port(state.port_name):
            return Verdict.unavailable(
                AvailabilityReason.MISSING_ENDPOINTS,
                f"endpoints for {state.service_label} have no addresses "
                f'with port name "{state.port_name}"',
            )
        return None

    def _check_discovery(self, state: _CheckState) -> Verdict:
        if self.probe is not None:
            error = self.probe.check(state.api)
            if error is not None:
                return Verdict.unavailable(
                    AvailabilityReason.FAILED_DISCOVERY_CHECK, error, retry=True
                )
        return Verdict.available(AvailabilityReason.PASSED, PASSED_MESSAGE)
