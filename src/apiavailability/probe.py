"""
Discovery health probe for remote APIServices.

Resolves the backing service to a URL and issues GET requests against the
discovery path the aggregated server is required to serve
(``/apis/<group>/<version>``). Several attempts run concurrently and one
success is enough: a single slow DNS lookup or a single bad endpoint behind
the service must not flip the APIService to unavailable.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Optional, Protocol

import httpx

from apiavailability.contracts.timeouts import (
    DISCOVERY_PROBE_ATTEMPTS,
    DISCOVERY_PROBE_CANCEL_POLL_S,
    DISCOVERY_PROBE_DEADLINE_FACTOR,
    DISCOVERY_PROBE_TIMEOUT_S,
)
from apiavailability.errors import ResolutionError
from apiavailability.models import AggregatedAPI

logger = logging.getLogger(__name__)

# Name of the legacy core API group/version served under /api
LEGACY_API_NAME = "v1."


class ServiceResolver(Protocol):
    """Turns a service reference into a reachable base URL."""

    def resolve(self, namespace: str, name: str, port: int) -> str:
        """Raise ResolutionError when the service cannot be resolved."""
        ...


class ClusterServiceResolver:
    """Resolve through cluster DNS: ``https://<name>.<namespace>.svc:<port>``."""

    def __init__(self, scheme: str = "https", cluster_domain: Optional[str] = None):
        self.scheme = scheme
        self.cluster_domain = cluster_domain

    def resolve(self, namespace: str, name: str, port: int) -> str:
        if not namespace or not name:
            raise ResolutionError(f"incomplete service reference {namespace!r}/{name!r}")
        host = f"{name}.{namespace}.svc"
        if self.cluster_domain:
            host = f"{host}.{self.cluster_domain}"
        return f"{self.scheme}://{host}:{port}"


class StaticServiceResolver:
    """Resolve every service to the same URL (local development and tests)."""

    def __init__(self, url: str):
        self.url = url

    def resolve(self, namespace: str, name: str, port: int) -> str:
        return self.url


def discovery_path(api: AggregatedAPI) -> str:
    """Path that an aggregated server must serve for ``api``."""
    if api.name == LEGACY_API_NAME:
        return f"/api/{api.spec.version}"
    return f"/apis/{api.spec.group}/{api.spec.version}"


class DiscoveryProbe:
    """
    Bounded-time discovery check.

    Args:
        resolver: Service resolver
        client: HTTP client; one is created (and owned) if not given
        timeout: Per-request timeout in seconds
        attempts: Number of concurrent attempts
        stop_event: Set to abandon in-flight probes (controller shutdown)
        verify: TLS verification passed to the owned client
    """

    def __init__(
        self,
        resolver: ServiceResolver,
        client: Optional[httpx.Client] = None,
        timeout: float = DISCOVERY_PROBE_TIMEOUT_S,
        attempts: int = DISCOVERY_PROBE_ATTEMPTS,
        stop_event: Optional[threading.Event] = None,
        verify: bool = False,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.resolver = resolver
        self.timeout = timeout
        self.attempts = attempts
        self.stop_event = stop_event or threading.Event()
        self._owns_client = client is None
        self._http = client or httpx.Client(timeout=timeout, verify=verify)

    def __enter__(self) -> "DiscoveryProbe":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def check(self, api: AggregatedAPI) -> Optional[str]:
        """
        Probe the backend of a remote APIService.

        Returns:
            None when at least one attempt succeeded, otherwise the error of
            the last attempt to finish.
        """
        ref = api.spec.service
        if ref is None:
            return None
        target = f"{ref.namespace}/{ref.name}:{ref.port}"

        # Each check owns its attempt threads. An attempt stuck past the
        # deadline only holds its own thread and reports into a queue no one reads.
        results: "queue.Queue" = queue.Queue()
        for i in range(self.attempts):
            threading.Thread(
                target=self._run_attempt,
                args=(api, results),
                name=f"discovery-probe-{api.name}-{i}",
                daemon=True,
            ).start()
        deadline = time.monotonic() + self.timeout * DISCOVERY_PROBE_DEADLINE_FACTOR
        last_error = f"timed out waiting for {target}"

        outstanding = self.attempts
        while outstanding:
            if self.stop_event.is_set():
                last_error = f"discovery check cancelled for {target}"
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                outcome = results.get(timeout=min(remaining, DISCOVERY_PROBE_CANCEL_POLL_S))
            except queue.Empty:
                continue
            outstanding -= 1
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is None:
                return None
            last_error = outcome

        logger.debug(f"Discovery check for {api.name} failed: {last_error}")
        return last_error

    def _run_attempt(self, api: AggregatedAPI, results: "queue.Queue") -> None:
        try:
            results.put(self._attempt(api))
        except Exception as e:
            results.put(e)

    def _attempt(self, api: AggregatedAPI) -> Optional[str]:
        ref = api.spec.service
        try:
            base_url = self.resolver.resolve(ref.namespace, ref.name, ref.port)
        except ResolutionError as e:
            return f"failing or missing response from {ref.namespace}/{ref.name}:{ref.port}: {e}"

        url = base_url.rstrip("/") + discovery_path(api)
        try:
            response = self._http.get(url, timeout=self.timeout)
        except httpx.TimeoutException:
            return f"timed out waiting for {url}"
        except httpx.HTTPError as e:
            return f"failing or missing response from {url}: {e}"

        if not response.is_success:
            return (
                f"failing or missing response from {url}: "
                f"bad status from {url}: {response.status_code}"
            )
        return None
