"""
Kubernetes list/watch feeding the controller.

One thread per observed kind lists the current objects, reconciles the
controller's cache against that list, then watches from the returned
resource version. An expired watch (410 Gone) or a broken connection falls
back to a fresh list. Objects that disappeared while nobody was watching are
delivered as Tombstones.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from apiavailability.contracts.timeouts import (
    K8S_API_REQUEST_TIMEOUT_S,
    K8S_WATCH_RETRY_DELAY_S,
    K8S_WATCH_TIMEOUT_S,
)
from apiavailability.contracts.types import EventType, ObjectKind
from apiavailability.controller import AvailableConditionController
from apiavailability.events import Notification, Tombstone
from apiavailability.kube import (
    api_from_k8s,
    endpoints_from_k8s,
    load_kube_config,
    service_from_k8s,
)

logger = logging.getLogger(__name__)


@dataclass
class _Source:
    kind: ObjectKind
    list_func: Callable[..., Any]
    convert: Callable[[Any], Any]


class KubernetesWatcher:
    """
    Lists and watches APIServices, Services and Endpoints.

    Args:
        controller: Controller receiving the notifications
        kubeconfig: Path to kubeconfig (ignored when both APIs are given)
        core_api: Preconfigured CoreV1Api
        registration_api: Preconfigured ApiregistrationV1Api
        timeout_seconds: Server-side timeout of a single watch request
    """

    def __init__(
        self,
        controller: AvailableConditionController,
        kubeconfig: Optional[str] = None,
        core_api: Optional[client.CoreV1Api] = None,
        registration_api: Optional[client.ApiregistrationV1Api] = None,
        timeout_seconds: int = K8S_WATCH_TIMEOUT_S,
    ):
        if core_api is None or registration_api is None:
            load_kube_config(kubeconfig)
        core_api = core_api or client.CoreV1Api()
        registration_api = registration_api or client.ApiregistrationV1Api()

        self.controller = controller
        self.timeout_seconds = timeout_seconds
        self.sources: List[_Source] = [
            _Source(ObjectKind.AGGREGATED_API, registration_api.list_api_service, api_from_k8s),
            _Source(ObjectKind.SERVICE, core_api.list_service_for_all_namespaces, service_from_k8s),
            _Source(
                ObjectKind.ENDPOINTS, core_api.list_endpoints_for_all_namespaces, endpoints_from_k8s
            ),
        ]
        self._synced: Dict[ObjectKind, threading.Event] = {
            source.kind: threading.Event() for source in self.sources
        }
        self._stop = threading.Event()
        self._watches: List[watch.Watch] = []
        self._watches_lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        for source in self.sources:
            thread = threading.Thread(
                target=self._run_source,
                args=(source,),
                name=f"watch-{source.kind.value}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        with self._watches_lock:
            for w in self._watches:
                w.stop()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """Block until every kind has completed its first list."""
        for event in self._synced.values():
            if not event.wait(timeout):
                return False
        return True

    @property
    def has_synced(self) -> bool:
        return all(event.is_set() for event in self._synced.values())

    def sync(self, source: _Source) -> str:
        """
        List ``source`` and bring the controller's cache in line with it.

        Returns:
            Resource version to start watching from.
        """
        result = source.list_func(_request_timeout=K8S_API_REQUEST_TIMEOUT_S)
        cache = self.controller.cache_for(source.kind)

        seen: Set[str] = set()
        for item in result.items or []:
            obj = source.convert(item)
            seen.add(cache.key_for(obj))
            self.controller.handle(Notification(source.kind, EventType.ADDED, new=obj))

        for key in cache.keys():
            if key in seen:
                continue
            last = cache.find(key)
            self.controller.handle(
                Notification(source.kind, EventType.DELETED, old=Tombstone(key, last))
            )

        logger.info(f"Listed {len(seen)} {source.kind.value} objects")
        self._synced[source.kind].set()
        return result.metadata.resource_version

    def watch_once(self, source: _Source, resource_version: str) -> Optional[str]:
        """
        Stream events until the watch ends.

        Returns:
            The last resource version seen, or None when a re-list is needed.
        """
        w = watch.Watch()
        with self._watches_lock:
            self._watches.append(w)
        try:
            for event in w.stream(
                source.list_func,
                resource_version=resource_version,
                timeout_seconds=self.timeout_seconds,
            ):
                if self._stop.is_set():
                    break
                event_type = event["type"]
                if event_type == "ERROR":
                    logger.info(f"Watch of {source.kind.value} returned an error, re-listing")
                    return None
                if event_type not in EventType.__members__:
                    # BOOKMARK
                    continue

                raw = event["object"]
                resource_version = raw.metadata.resource_version
                obj = source.convert(raw)
                if event_type == EventType.DELETED.value:
                    notification = Notification(source.kind, EventType.DELETED, old=obj)
                else:
                    notification = Notification(source.kind, EventType(event_type), new=obj)
                self.controller.handle(notification)
        finally:
            w.stop()
            with self._watches_lock:
                self._watches.remove(w)
        return resource_version

    def _run_source(self, source: _Source) -> None:
        resource_version: Optional[str] = None
        while not self._stop.is_set():
            try:
                if resource_version is None:
                    resource_version = self.sync(source)
                resource_version = self.watch_once(source, resource_version)
            except ApiException as e:
                if e.status == 410:
                    logger.info(f"Watch of {source.kind.value} expired, re-listing")
                else:
                    logger.warning(f"Watch of {source.kind.value} failed: {e.status} {e.reason}")
                    self._stop.wait(K8S_WATCH_RETRY_DELAY_S)
                resource_version = None
            except Exception as e:
                logger.warning(f"Watch of {source.kind.value} failed: {e}")
                resource_version = None
                self._stop.wait(K8S_WATCH_RETRY_DELAY_S)
