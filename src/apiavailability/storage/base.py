"""
Base status store protocol and factory.

Defines the interface every status persistence backend implements: write
the status sub-resource of an APIService under optimistic concurrency.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Type

from apiavailability.models import AggregatedAPI

logger = logging.getLogger(__name__)


class StoreType(str, Enum):
    """Available status store backends."""
    KUBERNETES = "kubernetes"
    MEMORY = "memory"


class StatusStore(ABC):
    """
    Abstract status persistence backend.

    ``update_status`` writes ``api.status`` for ``api.name`` if and only if
    ``api.resource_version`` still matches the stored object (when set).

    Raises:
        ConflictError: The stored object changed since it was read
        NotFoundError: The APIService no longer exists
        TransportError: The backend could not be reached
    """

    @abstractmethod
    def update_status(self, api: AggregatedAPI) -> AggregatedAPI:
        """Persist ``api.status`` and return the stored object."""
        pass


# Store backend registry
_BACKENDS: Dict[StoreType, Type[StatusStore]] = {}


def register_backend(store_type: StoreType):
    """Decorator to register a status store backend."""
    def decorator(cls: Type[StatusStore]) -> Type[StatusStore]:
        _BACKENDS[store_type] = cls
        return cls
    return decorator


def get_store(
    store_type: Optional[StoreType] = None,
    **kwargs: Any,
) -> StatusStore:
    """
    Get a status store instance.

    Auto-detects the backend if not specified:
    - Uses Kubernetes if running in-cluster or a kubeconfig is present
    - Falls back to the in-memory store otherwise

    Args:
        store_type: Explicit store type to use
        **kwargs: Backend-specific options

    Returns:
        StatusStore instance
    """
    # Import backends to register them
    from apiavailability.storage import kubernetes, memory  # noqa: F401

    if store_type is None:
        store_type = detect_store_type()

    if store_type not in _BACKENDS:
        raise ValueError(f"Unknown store type: {store_type}")

    return _BACKENDS[store_type](**kwargs)


def detect_store_type() -> StoreType:
    """Auto-detect the appropriate store type."""
    if os.path.exists("/var/run/secrets/kubernetes.io/serviceaccount"):
        logger.info("Detected in-cluster Kubernetes environment")
        return StoreType.KUBERNETES

    if os.environ.get("KUBECONFIG"):
        logger.info("Detected KUBECONFIG environment variable")
        return StoreType.KUBERNETES

    if os.path.exists(os.path.expanduser("~/.kube/config")):
        logger.info("Detected local kubeconfig file")
        return StoreType.KUBERNETES

    logger.info("No Kubernetes detected, using in-memory status store")
    return StoreType.MEMORY
