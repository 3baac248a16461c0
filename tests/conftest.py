"""
Pytest configuration and fixtures for apiavailability tests.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Callable, Dict, Generator, List, Optional

import httpx
import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from apiavailability.cache import api_cache, endpoints_cache, service_cache
from apiavailability.config import AvailabilityConfig, reset_config
from apiavailability.contracts.types import ServiceType
from apiavailability.logger import ConditionLogger
from apiavailability.metrics import AvailabilityMetrics
from apiavailability.models import (
    AggregatedAPI,
    BackingService,
    EndpointAddress,
    EndpointPort,
    EndpointSubset,
    ServiceEndpoints,
    ServicePort,
)
from apiavailability.storage.memory import InMemoryStatusStore

TEST_SERVICE_PORT = 1234
TEST_SERVICE_PORT_NAME = "testPort"
FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Drop APIAVAILABILITY_* variables and the config singleton around each test."""
    original = {k: v for k, v in os.environ.items() if k.startswith("APIAVAILABILITY_")}
    for key in original:
        del os.environ[key]
    reset_config()

    yield

    reset_config()
    package_logger = logging.getLogger("apiavailability")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    for key in [k for k in os.environ if k.startswith("APIAVAILABILITY_")]:
        del os.environ[key]
    os.environ.update(original)


@pytest.fixture
def config() -> AvailabilityConfig:
    """Config with fast backoff and a single worker."""
    return AvailabilityConfig(
        workers=1,
        backoff_base_delay_seconds=0.001,
        backoff_max_delay_seconds=0.01,
        probe_timeout_seconds=0.2,
        _env_file=None,
    )


# ============================================================================
# Model Builders
# ============================================================================


def new_local_api(name: str) -> AggregatedAPI:
    return AggregatedAPI.local(name)


def new_remote_api(
    name: str,
    namespace: str = "foo",
    service_name: str = "bar",
    port: int = TEST_SERVICE_PORT,
) -> AggregatedAPI:
    return AggregatedAPI.remote(name, namespace, service_name, port)


def new_service(
    namespace: str = "foo",
    name: str = "bar",
    port: int = TEST_SERVICE_PORT,
    port_name: str = TEST_SERVICE_PORT_NAME,
    service_type: ServiceType = ServiceType.CLUSTER_IP,
) -> BackingService:
    return BackingService(
        namespace=namespace,
        name=name,
        type=service_type,
        ports=[ServicePort(port=port, name=port_name)],
    )


def new_endpoints(namespace: str = "foo", name: str = "bar") -> ServiceEndpoints:
    return ServiceEndpoints(namespace=namespace, name=name)


def new_endpoints_with_address(
    namespace: str = "foo",
    name: str = "bar",
    port: int = TEST_SERVICE_PORT,
    port_name: str = TEST_SERVICE_PORT_NAME,
) -> ServiceEndpoints:
    return ServiceEndpoints(
        namespace=namespace,
        name=name,
        subsets=[
            EndpointSubset(
                addresses=[EndpointAddress(ip="10.0.0.1")],
                ports=[EndpointPort(port=port, name=port_name)],
            )
        ],
    )


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def caches():
    """Empty (apis, services, endpoints) caches."""
    return api_cache(), service_cache(), endpoints_cache()


@pytest.fixture
def store() -> InMemoryStatusStore:
    return InMemoryStatusStore()


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture
def metrics(metric_reader: InMemoryMetricReader) -> Generator[AvailabilityMetrics, None, None]:
    m = AvailabilityMetrics(service_name="test-service", reader=metric_reader)
    yield m
    m.shutdown()


@pytest.fixture
def events() -> ConditionLogger:
    return ConditionLogger(service_name="test-service")


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def http_client_factory() -> Generator[Callable[..., httpx.Client], None, None]:
    """
    Build httpx clients backed by a MockTransport.

    The returned client records every request URL in ``client.requested``.
    """
    clients: List[httpx.Client] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        requested: Optional[List[str]] = None,
    ) -> httpx.Client:
        seen = requested if requested is not None else []

        def recording(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return handler(request)

        client = httpx.Client(transport=httpx.MockTransport(recording))
        client.requested = seen
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


def metric_points(reader: InMemoryMetricReader, name: str) -> Dict[tuple, float]:
    """Collect data points of metric ``name`` keyed by sorted attribute items."""
    points: Dict[tuple, float] = {}
    data = reader.get_metrics_data()
    if data is None:
        return points
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name != name:
                    continue
                for point in metric.data.data_points:
                    points[tuple(sorted(point.attributes.items()))] = point.value
    return points


@pytest.fixture
def read_metric(metric_reader: InMemoryMetricReader):
    return lambda name: metric_points(metric_reader, name)
