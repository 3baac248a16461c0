"""
Status persistence for APIService conditions.

Provides pluggable backends for writing the status sub-resource:
- Kubernetes (the apiregistration API)
- In-memory (local development and tests)

Example:
    from apiavailability.storage import get_store, StoreType

    # Auto-detect backend
    store = get_store()

    # Explicitly use the in-memory store
    store = get_store(StoreType.MEMORY)
"""

from apiavailability.storage.base import (
    StatusStore,
    StoreType,
    detect_store_type,
    get_store,
)
from apiavailability.storage.kubernetes import KubernetesStatusStore
from apiavailability.storage.memory import InMemoryStatusStore, StoreAction

__all__ = [
    "StatusStore",
    "StoreType",
    "detect_store_type",
    "get_store",
    "InMemoryStatusStore",
    "KubernetesStatusStore",
    "StoreAction",
]
