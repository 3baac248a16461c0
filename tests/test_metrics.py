"""
Tests for AvailabilityMetrics - unavailability gauge and transition counter.
"""

from unittest.mock import patch

import pytest

from apiavailability.contracts.types import ConditionStatus
from apiavailability.metrics import (
    METRICS_EXPORT_MODE_NONE,
    METRICS_EXPORT_MODE_READER,
    AvailabilityMetrics,
    _otlp_protocol,
)

GAUGE = "aggregator_unavailable_apiservice"
COUNTER = "aggregator_unavailable_apiservice_total"


class TestGauge:
    """Tests for the per-APIService gauge."""

    def test_gauge_reports_each_name(self, metrics, read_metric):
        metrics.record_condition("v1.a", ConditionStatus.TRUE)
        metrics.record_condition("v1.b", ConditionStatus.FALSE)

        assert read_metric(GAUGE) == {
            (("name", "v1.a"),): 0,
            (("name", "v1.b"),): 1,
        }

    def test_latest_value_wins(self, metrics):
        metrics.record_condition("v1.a", ConditionStatus.FALSE)
        metrics.record_condition("v1.a", ConditionStatus.TRUE)

        assert metrics.unavailable("v1.a") == 0

    def test_unknown_is_unavailable(self, metrics):
        metrics.record_condition("v1.a", ConditionStatus.UNKNOWN)

        assert metrics.unavailable("v1.a") == 1

    def test_forget_removes_series(self, metrics, read_metric):
        metrics.set_unavailable("v1.a", True)
        metrics.set_unavailable("v1.b", True)
        metrics.forget("v1.a")

        assert read_metric(GAUGE) == {(("name", "v1.b"),): 1}
        assert metrics.unavailable("v1.a") is None

    def test_forget_unknown_name_is_noop(self, metrics):
        metrics.forget("never-seen")

        assert metrics.snapshot() == {}


class TestCounter:
    """Tests for the transition counter."""

    def test_counts_by_name_and_reason(self, metrics, read_metric):
        metrics.record_transition("v1.a", "ServiceNotFound")
        metrics.record_transition("v1.a", "ServiceNotFound")
        metrics.record_transition("v1.a", "FailedDiscoveryCheck")

        points = read_metric(COUNTER)
        assert points[(("name", "v1.a"), ("reason", "ServiceNotFound"))] == 2
        assert points[(("name", "v1.a"), ("reason", "FailedDiscoveryCheck"))] == 1


class TestExportMode:
    """Tests for reader/exporter selection."""

    def test_reader_mode(self, metrics):
        assert metrics.export_mode == METRICS_EXPORT_MODE_READER

    def test_no_export_by_default(self):
        m = AvailabilityMetrics()
        try:
            assert m.export_mode == METRICS_EXPORT_MODE_NONE
        finally:
            m.shutdown()

    def test_unreachable_endpoint_disables_export(self):
        with patch("apiavailability.metrics._endpoint_reachable", return_value=False):
            m = AvailabilityMetrics(otlp_endpoint="localhost:1")
        try:
            assert m.export_mode == METRICS_EXPORT_MODE_NONE
        finally:
            m.shutdown()

    def test_shutdown_is_idempotent(self, metrics):
        metrics.shutdown()
        metrics.shutdown()


class TestProtocol:
    """Tests for OTLP protocol selection."""

    def test_default_is_grpc(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_PROTOCOL", raising=False)
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_METRICS_PROTOCOL", raising=False)

        assert _otlp_protocol() == "grpc"

    def test_metrics_specific_setting_wins(self, monkeypatch):
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_METRICS_PROTOCOL", "http/protobuf")

        assert _otlp_protocol() == "http/protobuf"

    @pytest.mark.parametrize("value", ["thrift", "HTTP"])
    def test_invalid_value_falls_back(self, monkeypatch, value):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_METRICS_PROTOCOL", raising=False)
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_PROTOCOL", value)

        assert _otlp_protocol() == "grpc"
