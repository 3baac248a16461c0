"""
Rate-limited, deduplicating work queue.

Semantics follow the classic controller work queue:

- An item is pending at most once; adding it again while pending is a no-op.
- An item handed to a worker is "processing". Adding it during processing
  marks it dirty, and it is re-queued when the worker calls ``done``. Two
  workers therefore never process the same item concurrently, and at least
  one pass always follows the most recent ``add``.
- ``requeue`` re-adds an item after a per-item exponential backoff that is
  cleared by ``forget``.

Usage:
    queue = RateLimitingQueue(ItemExponentialFailureRateLimiter(), name="available")
    item, shutdown = queue.get()
    if not shutdown:
        try:
            handle(item)
            queue.forget(item)
        except Exception:
            queue.requeue(item)
        finally:
            queue.done(item)
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Deque, Dict, Generic, Hashable, List, Optional, Set, Tuple, TypeVar

from apiavailability.contracts.timeouts import (
    QUEUE_BACKOFF_BASE_DELAY_S,
    QUEUE_BACKOFF_MAX_DELAY_S,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Hashable)


class ItemExponentialFailureRateLimiter(Generic[T]):
    """
    Per-item exponential backoff: ``base_delay * 2 ** failures``, capped.

    Args:
        base_delay: Delay after the first failure (seconds)
        max_delay: Upper bound for any delay (seconds)
    """

    def __init__(
        self,
        base_delay: float = QUEUE_BACKOFF_BASE_DELAY_S,
        max_delay: float = QUEUE_BACKOFF_MAX_DELAY_S,
    ):
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must be >= base_delay")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[T, int] = {}
        self._lock = threading.Lock()

    def when(self, item: T) -> float:
        """Record a failure for ``item`` and return how long to wait."""
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1

        # Avoid float overflow for items that have failed for a long time
        if exp >= 64:
            return self.max_delay
        return min(self.base_delay * (2 ** exp), self.max_delay)

    def num_requeues(self, item: T) -> int:
        with self._lock:
            return self._failures.get(item, 0)

    def forget(self, item: T) -> None:
        with self._lock:
            self._failures.pop(item, None)


class RateLimitingQueue(Generic[T]):
    """
    FIFO work queue with deduplication, delayed adds and backoff.

    Args:
        rate_limiter: Backoff policy used by ``requeue``
        name: Queue name for logging
    """

    def __init__(
        self,
        rate_limiter: Optional[ItemExponentialFailureRateLimiter[T]] = None,
        name: str = "",
    ):
        self.name = name
        self.rate_limiter = rate_limiter or ItemExponentialFailureRateLimiter()

        self._queue: Deque[T] = deque()
        self._dirty: Set[T] = set()
        self._processing: Set[T] = set()
        self._shutting_down = False
        self._cond = threading.Condition(threading.Lock())

        # Delayed adds: heap of (ready_at, seq, item) plus earliest ready time per item
        self._waiting: List[Tuple[float, int, T]] = []
        self._waiting_ready_at: Dict[T, float] = {}
        self._seq = itertools.count()
        self._waiting_cond = threading.Condition(threading.Lock())
        self._waiting_thread = threading.Thread(
            target=self._waiting_loop,
            name=f"{name or 'workqueue'}-delay",
            daemon=True,
        )
        self._waiting_thread.start()

    # ------------------------------------------------------------------
    # Core queue
    # ------------------------------------------------------------------

    def add(self, item: T) -> None:
        """Mark ``item`` as needing processing."""
        with self._cond:
            if self._shutting_down:
                return
            if item in self._dirty:
                return
            self._dirty.add(item)
            if item in self._processing:
                return
            self._queue.append(item)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Tuple[Optional[T], bool]:
        """
        Block until an item is available.

        Args:
            timeout: Give up after this many seconds (None waits forever)

        Returns:
            ``(item, shutdown)``. ``shutdown`` is True when the queue has been
            shut down and drained; ``item`` is None on shutdown or timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._queue and not self._shutting_down:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None, False
                self._cond.wait(remaining)
            if not self._queue:
                return None, True

            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item: T) -> None:
        """Mark processing of ``item`` finished; re-queue it if it went dirty."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop accepting items and wake every blocked ``get``."""
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
        with self._waiting_cond:
            self._waiting_cond.notify_all()
        logger.debug(f"Work queue {self.name!r} shut down")

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    # ------------------------------------------------------------------
    # Delayed and rate-limited adds
    # ------------------------------------------------------------------

    def add_after(self, item: T, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed."""
        if self.shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return

        ready_at = time.monotonic() + delay
        with self._waiting_cond:
            existing = self._waiting_ready_at.get(item)
            # Never push an already scheduled item further into the future
            if existing is not None and existing <= ready_at:
                return
            self._waiting_ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), item))
            self._waiting_cond.notify()

    def requeue(self, item: T) -> None:
        """Re-add ``item`` after its backoff delay."""
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: T) -> None:
        """Clear backoff state after a successful pass."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: T) -> int:
        return self.rate_limiter.num_requeues(item)

    def _waiting_loop(self) -> None:
        while True:
            ready: List[T] = []
            with self._waiting_cond:
                if self.shutting_down:
                    return
                now = time.monotonic()
                while self._waiting and self._waiting[0][0] <= now:
                    ready_at, _, item = heapq.heappop(self._waiting)
                    # Skip heap entries superseded by an earlier schedule
                    if self._waiting_ready_at.get(item) == ready_at:
                        del self._waiting_ready_at[item]
                        ready.append(item)

                if not ready:
                    wait_for = self._waiting[0][0] - now if self._waiting else None
                    self._waiting_cond.wait(wait_for)
                    continue

            for item in ready:
                self.add(item)
