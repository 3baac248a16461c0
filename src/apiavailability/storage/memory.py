"""
In-memory status store.

Keeps APIService objects in a dict with integer resource versions and
enforces optimistic concurrency like the API server does. Every write
attempt is recorded in ``actions`` so callers can assert on write counts.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from apiavailability.errors import ConflictError, NotFoundError
from apiavailability.models import AggregatedAPI
from apiavailability.storage.base import StatusStore, StoreType, register_backend


@dataclass
class StoreAction:
    """A recorded write attempt."""
    verb: str
    name: str
    obj: AggregatedAPI


@register_backend(StoreType.MEMORY)
class InMemoryStatusStore(StatusStore):
    """Dict-backed status store."""

    def __init__(self, objects: Optional[Iterable[AggregatedAPI]] = None):
        self._objects: Dict[str, AggregatedAPI] = {}
        self._next_version = 1
        self._lock = threading.Lock()
        self.actions: List[StoreAction] = []
        for obj in objects or []:
            self.create(obj)

    def create(self, api: AggregatedAPI) -> AggregatedAPI:
        with self._lock:
            stored = api.model_copy(update={"resource_version": self._bump()}, deep=True)
            self._objects[api.name] = stored
            return stored

    def get(self, name: str) -> AggregatedAPI:
        with self._lock:
            try:
                return self._objects[name]
            except KeyError:
                raise NotFoundError("APIService", name) from None

    def delete(self, name: str) -> None:
        with self._lock:
            self._objects.pop(name, None)

    def update_status(self, api: AggregatedAPI) -> AggregatedAPI:
        with self._lock:
            self.actions.append(StoreAction("update_status", api.name, api))
            current = self._objects.get(api.name)
            if current is None:
                raise NotFoundError("APIService", api.name)
            if api.resource_version is not None and api.resource_version != current.resource_version:
                raise ConflictError(api.name, api.resource_version)

            stored = current.model_copy(
                update={
                    "status": api.status.model_copy(deep=True),
                    "resource_version": self._bump(),
                },
            )
            self._objects[api.name] = stored
            return stored

    def clear_actions(self) -> None:
        with self._lock:
            self.actions.clear()

    def _bump(self) -> str:
        version = str(self._next_version)
        self._next_version += 1
        return version
