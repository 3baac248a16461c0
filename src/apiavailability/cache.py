"""
Observed-state caches.

Thread-safe, in-memory stores holding the latest known copy of each observed
object. A single notification stream writes; many workers read.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from apiavailability.errors import NotFoundError
from apiavailability.models import AggregatedAPI, BackingService, ServiceEndpoints

T = TypeVar("T")


class ObjectCache(Generic[T]):
    """
    Keyed store of the most recently observed objects of one kind.

    Args:
        kind: Object kind, used in NotFoundError messages
        key_func: Derives the cache key from an object
    """

    def __init__(self, kind: str, key_func: Callable[[T], str]):
        self.kind = kind
        self._key_func = key_func
        self._items: Dict[str, T] = {}
        self._lock = threading.RLock()

    def key_for(self, obj: T) -> str:
        return self._key_func(obj)

    def get(self, key: str) -> T:
        """Return the object stored under ``key`` or raise NotFoundError."""
        with self._lock:
            try:
                return self._items[key]
            except KeyError:
                raise NotFoundError(self.kind, key) from None

    def find(self, key: str) -> Optional[T]:
        with self._lock:
            return self._items.get(key)

    def add(self, obj: T) -> None:
        with self._lock:
            self._items[self._key_func(obj)] = obj

    # Watch semantics make add and update the same operation
    update = add

    def delete(self, obj: T) -> None:
        self.delete_key(self._key_func(obj))

    def delete_key(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def replace(self, objects: Iterable[T]) -> None:
        """Swap the whole content, as after a fresh list."""
        items = {self._key_func(obj): obj for obj in objects}
        with self._lock:
            self._items = items

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def list(self) -> List[T]:
        with self._lock:
            return list(self._items.values())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def api_cache() -> ObjectCache[AggregatedAPI]:
    return ObjectCache("APIService", lambda api: api.name)


def service_cache() -> ObjectCache[BackingService]:
    return ObjectCache("Service", lambda svc: svc.key)


def endpoints_cache() -> ObjectCache[ServiceEndpoints]:
    return ObjectCache("Endpoints", lambda ep: ep.key)
