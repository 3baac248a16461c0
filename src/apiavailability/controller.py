"""
AvailableConditionController: the reconciliation loop.

Wires the observed-state caches, dependency index, work queue, evaluator,
status writer and metrics together:

    notification -> handle() -> caches + EventRouter -> queue
    worker: queue.get() -> reconcile(name) -> evaluator -> StatusWriter

Example:
    controller = AvailableConditionController(
        store=get_store(),
        resolver=ClusterServiceResolver(),
    )
    controller.handle(Notification(ObjectKind.AGGREGATED_API, EventType.ADDED, new=api))
    controller.start()
    ...
    controller.stop()
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

import httpx

from apiavailability.cache import (
    ObjectCache,
    api_cache,
    endpoints_cache,
    service_cache,
)
from apiavailability.config import AvailabilityConfig, get_config
from apiavailability.contracts.timeouts import WORKER_JOIN_TIMEOUT_S
from apiavailability.contracts.types import EventType, ObjectKind
from apiavailability.errors import ConflictError, RetryableCheckError
from apiavailability.evaluator import AvailabilityEvaluator, Evaluation
from apiavailability.events import EventRouter, Notification, Tombstone
from apiavailability.index import DependencyIndex
from apiavailability.logger import ConditionLogger
from apiavailability.metrics import AvailabilityMetrics
from apiavailability.models import AggregatedAPI, BackingService, ServiceEndpoints
from apiavailability.probe import DiscoveryProbe, ServiceResolver
from apiavailability.queue import ItemExponentialFailureRateLimiter, RateLimitingQueue
from apiavailability.status import StatusWriter, utcnow
from apiavailability.storage.base import StatusStore

logger = logging.getLogger(__name__)

CONTROLLER_NAME = "AvailableConditionController"


class AvailableConditionController:
    """
    Keeps the Available condition of every APIService up to date.

    Args:
        store: Status persistence backend
        resolver: Service resolver for the discovery probe; None skips the probe
        config: Controller configuration (defaults to get_config())
        metrics: Metrics sink (defaults to a non-exporting AvailabilityMetrics)
        http_client: HTTP client for the probe (one is created if not given)
        events: Structured event logger
        clock: Current UTC time, used for transition timestamps
    """

    def __init__(
        self,
        store: StatusStore,
        resolver: Optional[ServiceResolver] = None,
        config: Optional[AvailabilityConfig] = None,
        metrics: Optional[AvailabilityMetrics] = None,
        http_client: Optional[httpx.Client] = None,
        events: Optional[ConditionLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or get_config()
        self.events = events or ConditionLogger(service_name=self.config.service_name)
        self.metrics = metrics or AvailabilityMetrics(service_name=self.config.service_name)
        self.stop_event = threading.Event()

        self.apis: ObjectCache[AggregatedAPI] = api_cache()
        self.services: ObjectCache[BackingService] = service_cache()
        self.endpoints: ObjectCache[ServiceEndpoints] = endpoints_cache()

        self.index = DependencyIndex()
        self.queue: RateLimitingQueue[str] = RateLimitingQueue(
            ItemExponentialFailureRateLimiter(
                base_delay=self.config.backoff_base_delay_seconds,
                max_delay=self.config.backoff_max_delay_seconds,
            ),
            name=CONTROLLER_NAME,
        )
        self.router = EventRouter(self.index, self.queue, self.metrics)

        self.probe: Optional[DiscoveryProbe] = None
        if resolver is not None:
            self.probe = DiscoveryProbe(
                resolver,
                client=http_client,
                timeout=self.config.probe_timeout_seconds,
                attempts=self.config.probe_attempts,
                stop_event=self.stop_event,
                verify=self.config.verify_tls,
            )
        self.evaluator = AvailabilityEvaluator(self.apis, self.services, self.endpoints, self.probe)
        self.writer = StatusWriter(store, self.metrics, self.events, clock)

        self._threads: List[threading.Thread] = []

    # ------------------------------------------------------------------
    # Notification intake
    # ------------------------------------------------------------------

    def cache_for(self, kind: ObjectKind) -> ObjectCache:
        if kind == ObjectKind.AGGREGATED_API:
            return self.apis
        if kind == ObjectKind.SERVICE:
            return self.services
        return self.endpoints

    def handle(self, notification: Notification) -> None:
        """Apply a notification to the caches, then route it."""
        cache = self.cache_for(notification.kind)

        if notification.event == EventType.DELETED:
            obj = notification.old if notification.old is not None else notification.new
            if isinstance(obj, Tombstone):
                cache.delete_key(obj.key)
            elif obj is not None:
                cache.delete(obj)
            self.router.dispatch(notification)
            return

        new = notification.new
        old = notification.old
        key = cache.key_for(new)
        if old is None and key in cache:
            old = cache.get(key)
        cache.add(new)

        event = EventType.MODIFIED if old is not None else EventType.ADDED
        self.router.dispatch(Notification(notification.kind, event, new=new, old=old))

    def resync(self) -> None:
        """Re-enqueue every known APIService."""
        for name in self.apis.keys():
            self.queue.add(name)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def evaluate(self, name: str) -> Optional[Evaluation]:
        """Compute the condition for ``name`` without writing anything."""
        return self.evaluator.evaluate(name)

    def reconcile(self, name: str) -> None:
        """
        Run one pass for ``name``.

        Raises:
            RetryableCheckError: A transient check failed; the False
                condition has been written and the name should be retried
            ConflictError: The status write lost an optimistic-concurrency race
            TransportError: The store could not be reached
        """
        evaluation = self.evaluator.evaluate(name)
        if evaluation is None:
            return

        self.writer.update_status(evaluation.api, evaluation.condition)

        if evaluation.retry_error is not None:
            raise RetryableCheckError(name, evaluation.condition.reason, evaluation.retry_error)

    def process_next_work_item(self, timeout: Optional[float] = None) -> bool:
        """
        Take one name off the queue and reconcile it.

        Returns:
            False once the queue has shut down, True otherwise.
        """
        name, shutdown = self.queue.get(timeout)
        if shutdown:
            return False
        if name is None:
            return True

        try:
            self.reconcile(name)
            self.queue.forget(name)
        except ConflictError as e:
            logger.info(f"Requeuing {name} after status conflict: {e}")
            self.events.log_status_conflict(name, e.resource_version)
            self.queue.requeue(name)
        except Exception as e:
            requeues = self.queue.num_requeues(name)
            logger.warning(f"{name} failed with: {e}")
            self.events.log_reconcile_failed(name, str(e), requeues)
            self.queue.requeue(name)
        finally:
            self.queue.done(name)
        return True

    def _run_worker(self) -> None:
        while self.process_next_work_item():
            pass

    def _run_resync(self) -> None:
        interval = self.config.resync_interval_seconds
        while not self.stop_event.wait(interval):
            self.resync()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, workers: Optional[int] = None) -> None:
        """Start worker threads and the periodic resync."""
        workers = workers or self.config.workers
        logger.info(f"Starting {CONTROLLER_NAME} with {workers} workers")

        for i in range(workers):
            thread = threading.Thread(
                target=self._run_worker, name=f"{CONTROLLER_NAME}-worker-{i}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

        resync = threading.Thread(
            target=self._run_resync, name=f"{CONTROLLER_NAME}-resync", daemon=True
        )
        resync.start()
        self._threads.append(resync)

    def stop(self, timeout: float = WORKER_JOIN_TIMEOUT_S) -> None:
        """Shut down the queue, cancel probes and wait for threads to exit."""
        logger.info(f"Shutting down {CONTROLLER_NAME}")
        self.stop_event.set()
        self.queue.shut_down()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()
        if self.probe is not None:
            self.probe.close()

    def run(self, workers: Optional[int] = None) -> None:
        """Start and block until ``stop_event`` is set or interrupted."""
        self.start(workers)
        try:
            self.stop_event.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.stop()
