"""
Event router: notifications in, queue keys out.

APIService notifications enqueue the APIService itself. Service and
endpoints notifications are fanned out through the dependency index to the
APIServices that declare that service as their backend, and to nobody else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from apiavailability.contracts.types import EventType, ObjectKind
from apiavailability.index import DependencyIndex
from apiavailability.metrics import AvailabilityMetrics
from apiavailability.models import AggregatedAPI, BackingService, ServiceEndpoints
from apiavailability.queue import RateLimitingQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tombstone:
    """
    Delete notification whose final object state was missed.

    ``obj`` is the last state known to the notifier, which may be stale.
    """
    key: str
    obj: Any = None


@dataclass(frozen=True)
class Notification:
    """A single add/update/delete notification."""
    kind: ObjectKind
    event: EventType
    new: Any = None
    old: Any = None


class EventRouter:
    """
    Translates notifications into enqueue operations.

    Args:
        index: Dependency index to maintain and query
        queue: Reconciliation queue of APIService names
        metrics: Gauge whose series are dropped when an APIService is deleted
    """

    def __init__(
        self,
        index: DependencyIndex,
        queue: RateLimitingQueue[str],
        metrics: Optional[AvailabilityMetrics] = None,
    ):
        self.index = index
        self.queue = queue
        self.metrics = metrics

    def dispatch(self, notification: Notification) -> None:
        kind, event = notification.kind, notification.event
        if kind == ObjectKind.AGGREGATED_API:
            if event == EventType.ADDED:
                self.add_api(notification.new)
            elif event == EventType.MODIFIED:
                self.update_api(notification.old, notification.new)
            else:
                self.delete_api(notification.old if notification.old is not None else notification.new)
            return

        obj = notification.new if notification.new is not None else notification.old
        if kind == ObjectKind.SERVICE:
            self.service_changed(obj)
        elif kind == ObjectKind.ENDPOINTS:
            self.endpoints_changed(obj)
        else:
            logger.error(f"Unhandled notification kind {kind!r}")

    # ------------------------------------------------------------------
    # APIService
    # ------------------------------------------------------------------

    def add_api(self, api: AggregatedAPI) -> None:
        logger.debug(f"Adding APIService {api.name}")
        self.index.on_api_changed(api.name, None, api.backend_key)
        self.queue.add(api.name)

    def update_api(self, old: Optional[AggregatedAPI], new: AggregatedAPI) -> None:
        logger.debug(f"Updating APIService {new.name}")
        self.index.on_api_changed(
            new.name, old.backend_key if old is not None else None, new.backend_key
        )
        self.queue.add(new.name)

    def delete_api(self, obj: Any) -> None:
        api = self._unwrap(obj, AggregatedAPI)
        if api is None:
            if isinstance(obj, Tombstone):
                # Name is all we need to forget it
                self._forget_api(obj.key, None)
            return
        logger.debug(f"Deleting APIService {api.name}")
        self._forget_api(api.name, api.backend_key)

    def _forget_api(self, name: str, backend_key: Optional[str]) -> None:
        self.index.remove(name, backend_key)
        if self.metrics is not None:
            self.metrics.forget(name)

    # ------------------------------------------------------------------
    # Services and endpoints
    # ------------------------------------------------------------------

    def service_changed(self, obj: Any) -> None:
        """Handle add, update or delete of a Service."""
        service = self._unwrap(obj, BackingService)
        if service is not None:
            self._enqueue_dependents(service.key)
        elif isinstance(obj, Tombstone):
            self._enqueue_dependents(obj.key)

    def endpoints_changed(self, obj: Any) -> None:
        """Handle add, update or delete of an Endpoints object."""
        endpoints = self._unwrap(obj, ServiceEndpoints)
        if endpoints is not None:
            self._enqueue_dependents(endpoints.key)
        elif isinstance(obj, Tombstone):
            self._enqueue_dependents(obj.key)

    def _enqueue_dependents(self, backend_key: str) -> None:
        for name in self.index.lookup(backend_key):
            self.queue.add(name)

    @staticmethod
    def _unwrap(obj: Any, expected: type) -> Any:
        if isinstance(obj, Tombstone):
            obj = obj.obj
        if isinstance(obj, expected):
            return obj
        if obj is not None:
            logger.error(f"Couldn't get object from notification, expected {expected.__name__}: {obj!r}")
        return None
