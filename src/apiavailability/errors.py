"""
Exception hierarchy for apiavailability.

Adapters translate library-specific failures (kubernetes ApiException,
httpx errors) into these types at the boundary, so the controller only has
to reason about what kind of failure happened.
"""

from __future__ import annotations

from typing import Optional


class AvailabilityError(Exception):
    """Base class for all apiavailability errors."""


class NotFoundError(AvailabilityError):
    """Requested object is not present in a cache or store."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key!r} not found")


class ConflictError(AvailabilityError):
    """Write rejected by optimistic concurrency (stale resource version)."""

    def __init__(self, name: str, resource_version: Optional[str] = None):
        self.name = name
        self.resource_version = resource_version
        super().__init__(
            f"conflict writing status for {name!r} "
            f"(resourceVersion {resource_version!r} is stale)"
        )


class TransportError(AvailabilityError):
    """The backing store could not be reached or returned an unexpected error."""


class ResolutionError(AvailabilityError):
    """A service reference could not be resolved into a reachable URL."""


class RetryableCheckError(AvailabilityError):
    """
    A check failed for a reason presumed transient (probe or cache access).

    Raised from a reconciliation pass after the False condition has been
    written, so that the worker retries the name with backoff.
    """

    def __init__(self, name: str, reason: str, detail: str):
        self.name = name
        self.reason = reason
        self.detail = detail
        super().__init__(f"{name} failed {reason}: {detail}")
