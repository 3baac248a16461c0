"""
Core enum types for aggregated API availability.

These values appear on the wire (condition status, reason tokens, service
types) and must stay byte-compatible with the Kubernetes apiregistration API.
"""

from __future__ import annotations

from enum import Enum


class ConditionType(str, Enum):
    """Condition types published on an APIService status."""
    AVAILABLE = "Available"


class ConditionStatus(str, Enum):
    """Tri-state condition status."""
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class AvailabilityReason(str, Enum):
    """
    Machine-readable reasons for the Available condition.

    Each failing check in the evaluator maps to exactly one reason so that
    consumers can alert on a reason without parsing messages.
    """
    LOCAL = "Local"
    SERVICE_NOT_FOUND = "ServiceNotFound"
    SERVICE_ACCESS_ERROR = "ServiceAccessError"
    SERVICE_PORT_ERROR = "ServicePortError"
    ENDPOINTS_NOT_FOUND = "EndpointsNotFound"
    ENDPOINTS_ACCESS_ERROR = "EndpointsAccessError"
    MISSING_ENDPOINTS = "MissingEndpoints"
    FAILED_DISCOVERY_CHECK = "FailedDiscoveryCheck"
    PASSED = "Passed"


class ServiceType(str, Enum):
    """Kubernetes Service types relevant to availability checks."""
    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"
    EXTERNAL_NAME = "ExternalName"


class ObjectKind(str, Enum):
    """Kinds of observed objects delivered by the notification stream."""
    AGGREGATED_API = "APIService"
    SERVICE = "Service"
    ENDPOINTS = "Endpoints"


class EventType(str, Enum):
    """Notification event types (mirrors the Kubernetes watch event types)."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
