"""
Dependency index: backing service -> dependent APIServices.

Service and endpoints notifications arrive far more often than APIService
changes, and there are usually only a handful of APIServices per service.
The index lets the router enqueue exactly the dependents of a changed
service instead of scanning every registered APIService.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, FrozenSet, Optional, Set

logger = logging.getLogger(__name__)

_EMPTY: FrozenSet[str] = frozenset()


class DependencyIndex:
    """
    Reverse index from service key (``namespace/name``) to APIService names.

    Each APIService name is registered under at most one service key. Every
    mutation happens under a single lock, so removing the old backend and
    inserting the new one is observed as one step by ``lookup``.
    """

    def __init__(self) -> None:
        self._dependents: Dict[str, Set[str]] = {}
        self._backend_by_api: Dict[str, str] = {}
        self._lock = threading.Lock()

    def on_api_changed(
        self,
        name: str,
        old_backend: Optional[str],
        new_backend: Optional[str],
    ) -> None:
        """
        Move ``name`` from its previous backend to ``new_backend``.

        Args:
            name: APIService name
            old_backend: Backend key of the previously observed object, if any
            new_backend: Backend key of the current object; None for local APIs
        """
        with self._lock:
            # The recorded backend wins over the caller's view of the old
            # object, which can be stale after a missed notification.
            current = self._backend_by_api.get(name, old_backend)
            if current is not None and current != new_backend:
                self._discard(current, name)
            if old_backend is not None and old_backend not in (current, new_backend):
                self._discard(old_backend, name)

            if new_backend is None:
                self._backend_by_api.pop(name, None)
                return
            self._dependents.setdefault(new_backend, set()).add(name)
            self._backend_by_api[name] = new_backend

        if current != new_backend:
            logger.debug(f"APIService {name} backend changed: {current} -> {new_backend}")

    def remove(self, name: str, backend: Optional[str] = None) -> None:
        """Drop ``name`` from the index entirely."""
        with self._lock:
            current = self._backend_by_api.pop(name, backend)
            if current is not None:
                self._discard(current, name)

    def lookup(self, backend_key: str) -> FrozenSet[str]:
        """Snapshot of the APIService names depending on ``backend_key``."""
        with self._lock:
            dependents = self._dependents.get(backend_key)
            if not dependents:
                return _EMPTY
            return frozenset(dependents)

    def backend_for(self, name: str) -> Optional[str]:
        with self._lock:
            return self._backend_by_api.get(name)

    def __len__(self) -> int:
        """Number of backend keys with at least one dependent."""
        with self._lock:
            return len(self._dependents)

    def _discard(self, backend_key: str, name: str) -> None:
        dependents = self._dependents.get(backend_key)
        if dependents is None:
            return
        dependents.discard(name)
        if not dependents:
            del self._dependents[backend_key]
