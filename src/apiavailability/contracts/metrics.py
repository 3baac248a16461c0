"""
Metric and label schema contracts.

Defines the canonical names for metrics and labels emitted by the controller.
The names match the ones published by the upstream kube-aggregator so that
existing dashboards and alerts keep working.
"""

from __future__ import annotations

from enum import Enum


class MetricName(str, Enum):
    """Canonical metric names."""

    # Gauge: 1 when the APIService is currently unavailable, 0 otherwise
    UNAVAILABLE_APISERVICE = "aggregator_unavailable_apiservice"

    # Counter: transitions from available to unavailable
    UNAVAILABLE_APISERVICE_TOTAL = "aggregator_unavailable_apiservice_total"


class LabelName(str, Enum):
    """Canonical metric label names."""
    NAME = "name"
    REASON = "reason"
