"""
Availability metrics.

Exposes, per APIService, whether it is currently unavailable, plus a counter
of available -> unavailable transitions:

- aggregator_unavailable_apiservice{name}            gauge, 1 = unavailable
- aggregator_unavailable_apiservice_total{name,reason} counter

The gauge reflects the most recently *computed* condition, not the most
recently written one, and is kept in-process so it survives across passes
for other APIServices. Metrics are exposed via OpenTelemetry for
Prometheus/Mimir scraping.
"""

from __future__ import annotations

import atexit
import logging
import os
import socket
import threading
from typing import Any, Dict, Iterable, List, Optional

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from apiavailability.contracts.metrics import LabelName, MetricName
from apiavailability.contracts.timeouts import (
    OTEL_DEFAULT_GRPC_PORT,
    OTEL_DEFAULT_HTTP_PORT,
    OTEL_ENDPOINT_CHECK_TIMEOUT_S,
    OTEL_FLUSH_TIMEOUT_MS,
    OTEL_METRICS_EXPORT_INTERVAL_MS,
)
from apiavailability.contracts.types import ConditionStatus

logger = logging.getLogger(__name__)

# Export mode tracking
METRICS_EXPORT_MODE_OTLP = "otlp"
METRICS_EXPORT_MODE_READER = "reader"
METRICS_EXPORT_MODE_NONE = "none"

_VALID_PROTOCOLS = ("grpc", "http/protobuf")


def _otlp_protocol() -> str:
    """Metrics protocol from OTEL_EXPORTER_OTLP_[METRICS_]PROTOCOL, default grpc."""
    for env_key in ("OTEL_EXPORTER_OTLP_METRICS_PROTOCOL", "OTEL_EXPORTER_OTLP_PROTOCOL"):
        value = os.environ.get(env_key, "").strip()
        if not value:
            continue
        if value in _VALID_PROTOCOLS:
            return value
        logger.warning(f"Invalid {env_key}={value!r}, expected one of {_VALID_PROTOCOLS}")
    return "grpc"


def create_metric_exporter(endpoint: str, insecure: bool = True):
    """
    Create an OTLP metric exporter for the configured protocol.

    Raises:
        ImportError: If the required exporter package is not installed.
    """
    if _otlp_protocol() == "http/protobuf":
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
            OTLPMetricExporter,
        )
        if not endpoint.startswith(("http://", "https://")):
            scheme = "http" if insecure else "https"
            endpoint = f"{scheme}://{endpoint}"
        logger.info(f"Creating HTTP/protobuf metric exporter to {endpoint}")
        return OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics")

    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
        OTLPMetricExporter,
    )
    logger.info(f"Creating gRPC metric exporter to {endpoint}")
    return OTLPMetricExporter(endpoint=endpoint, insecure=insecure)


def _endpoint_reachable(endpoint: str, timeout: float = OTEL_ENDPOINT_CHECK_TIMEOUT_S) -> bool:
    """Check whether ``host:port`` accepts TCP connections."""
    default_port = (
        OTEL_DEFAULT_HTTP_PORT if _otlp_protocol() == "http/protobuf" else OTEL_DEFAULT_GRPC_PORT
    )
    host, _, port = endpoint.partition(":")
    try:
        with socket.create_connection(
            (host or "localhost", int(port) if port else default_port), timeout=timeout
        ):
            return True
    except (OSError, ValueError) as e:
        logger.debug(f"OTLP metrics endpoint check failed: {e}")
        return False


class AvailabilityMetrics:
    """
    Process-wide unavailability gauge and transition counter.

    Args:
        service_name: OTel service name
        reader: Metric reader to attach (e.g. InMemoryMetricReader in tests)
        exporter: Custom metric exporter, wrapped in a periodic reader
        otlp_endpoint: OTLP endpoint used when neither reader nor exporter is given
        otlp_insecure: Use insecure connection to the OTLP endpoint
        export_interval_ms: How often the periodic reader exports
    """

    def __init__(
        self,
        service_name: str = "apiavailability",
        reader: Optional[MetricReader] = None,
        exporter: Optional[Any] = None,
        otlp_endpoint: Optional[str] = None,
        otlp_insecure: bool = True,
        export_interval_ms: int = OTEL_METRICS_EXPORT_INTERVAL_MS,
    ):
        self._unavailable: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._export_mode = METRICS_EXPORT_MODE_NONE
        self._shutdown_called = False

        readers: List[MetricReader] = []
        if reader is not None:
            readers.append(reader)
            self._export_mode = METRICS_EXPORT_MODE_READER
        elif exporter is not None:
            readers.append(
                PeriodicExportingMetricReader(exporter, export_interval_millis=export_interval_ms)
            )
            self._export_mode = METRICS_EXPORT_MODE_OTLP
        elif otlp_endpoint:
            default_reader = self._setup_default_reader(
                otlp_endpoint, otlp_insecure, export_interval_ms
            )
            if default_reader is not None:
                readers.append(default_reader)

        # Create provider without setting global (avoids conflicts with other metrics users)
        self._provider = MeterProvider(
            resource=Resource.create({"service.name": service_name}),
            metric_readers=readers,
        )
        self._meter = self._provider.get_meter("apiavailability.metrics")
        self._setup_instruments()

        atexit.register(self._atexit_shutdown)

    def _setup_default_reader(
        self, endpoint: str, insecure: bool, export_interval_ms: int
    ) -> Optional[PeriodicExportingMetricReader]:
        if not _endpoint_reachable(endpoint):
            logger.warning(
                f"OTLP metrics endpoint {endpoint} not reachable. Metrics will not be exported."
            )
            return None
        try:
            exporter = create_metric_exporter(endpoint=endpoint, insecure=insecure)
        except ImportError:
            logger.warning("OTLP metric exporter not available")
            return None
        self._export_mode = METRICS_EXPORT_MODE_OTLP
        return PeriodicExportingMetricReader(exporter, export_interval_millis=export_interval_ms)

    def _setup_instruments(self) -> None:
        self._unavailable_gauge = self._meter.create_observable_gauge(
            name=MetricName.UNAVAILABLE_APISERVICE.value,
            callbacks=[self._observe_unavailable],
            description=(
                "Gauge of APIServices which are marked as unavailable "
                "broken down by APIService name."
            ),
            unit="1",
        )
        self._unavailable_total = self._meter.create_counter(
            name=MetricName.UNAVAILABLE_APISERVICE_TOTAL.value,
            description=(
                "Counter of APIServices which are marked as unavailable "
                "broken down by APIService name and reason."
            ),
            unit="{transitions}",
        )

    def _observe_unavailable(
        self, options: metrics.CallbackOptions
    ) -> Iterable[metrics.Observation]:
        for name, value in self.snapshot().items():
            yield metrics.Observation(value, {LabelName.NAME.value: name})

    @property
    def export_mode(self) -> str:
        """Current export mode: 'otlp', 'reader', or 'none'."""
        return self._export_mode

    def set_unavailable(self, name: str, unavailable: bool) -> None:
        with self._lock:
            self._unavailable[name] = 1 if unavailable else 0

    def record_condition(self, name: str, status: ConditionStatus) -> None:
        """Set the gauge from a freshly computed Available condition status."""
        self.set_unavailable(name, status != ConditionStatus.TRUE)

    def record_transition(self, name: str, reason: str) -> None:
        """Count an available -> unavailable transition."""
        self._unavailable_total.add(
            1, {LabelName.NAME.value: name, LabelName.REASON.value: reason}
        )

    def forget(self, name: str) -> None:
        """Drop the gauge series of a deleted APIService."""
        with self._lock:
            self._unavailable.pop(name, None)

    def unavailable(self, name: str) -> Optional[int]:
        """Current gauge value for ``name``, None if never recorded."""
        with self._lock:
            return self._unavailable.get(name)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._unavailable)

    def _atexit_shutdown(self) -> None:
        try:
            self._provider.force_flush(timeout_millis=OTEL_FLUSH_TIMEOUT_MS)
            self._provider.shutdown()
        except Exception as e:
            logger.debug(f"Error during metrics atexit shutdown: {e}")

    def shutdown(self) -> None:
        """
        Flush and shutdown the metrics provider.

        Safe to call multiple times.
        """
        if self._shutdown_called:
            return
        self._shutdown_called = True
        atexit.unregister(self._atexit_shutdown)

        try:
            self._provider.force_flush(timeout_millis=OTEL_FLUSH_TIMEOUT_MS)
            self._provider.shutdown()
            logger.debug("AvailabilityMetrics shutdown complete")
        except Exception as e:
            logger.warning(f"Error during AvailabilityMetrics shutdown: {e}")
