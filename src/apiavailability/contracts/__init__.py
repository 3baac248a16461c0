"""
Shared contracts for apiavailability.

Single source of truth for the enum-like tokens, metric names and policy
constants used throughout the controller.
"""

from apiavailability.contracts.metrics import LabelName, MetricName
from apiavailability.contracts.types import (
    AvailabilityReason,
    ConditionStatus,
    ConditionType,
    EventType,
    ObjectKind,
    ServiceType,
)

__all__ = [
    "AvailabilityReason",
    "ConditionStatus",
    "ConditionType",
    "EventType",
    "LabelName",
    "MetricName",
    "ObjectKind",
    "ServiceType",
]
