"""
Status writer: minimal-diff persistence of the Available condition.

A pass recomputes the condition every time, but the store is only written
when something other than the transition time differs. The transition time
moves only when the condition status changes; reason or message churn alone
keeps the previous timestamp.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from apiavailability.contracts.types import ConditionStatus, ConditionType
from apiavailability.errors import NotFoundError
from apiavailability.logger import ConditionLogger
from apiavailability.metrics import AvailabilityMetrics
from apiavailability.models import AggregatedAPI, APIServiceCondition, APIServiceStatus
from apiavailability.storage.base import StatusStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def set_condition(
    conditions: List[APIServiceCondition],
    condition: APIServiceCondition,
    now: datetime,
) -> List[APIServiceCondition]:
    """
    Return a copy of ``conditions`` with ``condition`` upserted by type.

    The existing transition time is kept when the status is unchanged;
    otherwise ``now`` is stamped.
    """
    result: List[APIServiceCondition] = []
    replaced = False
    for existing in conditions:
        if existing.type != condition.type:
            result.append(existing)
            continue
        replaced = True
        if existing.status == condition.status and existing.last_transition_time is not None:
            transition_time = existing.last_transition_time
        else:
            transition_time = now
        result.append(condition.model_copy(update={"last_transition_time": transition_time}))

    if not replaced:
        result.append(condition.model_copy(update={"last_transition_time": now}))
    return result


def conditions_equal(
    left: List[APIServiceCondition], right: List[APIServiceCondition]
) -> bool:
    """Field-value comparison of two condition lists, ignoring transition times."""
    if len(left) != len(right):
        return False
    return all(a.same_state(b) for a, b in zip(left, right))


class StatusWriter:
    """
    Writes the computed Available condition when it changed.

    Args:
        store: Status persistence backend
        metrics: Unavailability gauge and transition counter
        events: Structured event logger
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        store: StatusStore,
        metrics: Optional[AvailabilityMetrics] = None,
        events: Optional[ConditionLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.metrics = metrics
        self.events = events or ConditionLogger()
        self.clock = clock

    def update_status(
        self,
        previous: AggregatedAPI,
        computed: APIServiceCondition,
    ) -> Optional[AggregatedAPI]:
        """
        Persist ``computed`` for ``previous`` if it changed.

        Args:
            previous: APIService as read at the start of the pass
            computed: Freshly computed Available condition

        Returns:
            The stored object, ``previous`` when nothing had to be written,
            or None when the APIService was deleted concurrently.

        Raises:
            ConflictError: The object changed since it was read
            TransportError: The store could not be reached
        """
        # The gauge reflects the last computed state, written or not
        if self.metrics is not None:
            self.metrics.record_condition(previous.name, computed.status)

        conditions = set_condition(previous.status.conditions, computed, self.clock())
        if conditions_equal(previous.status.conditions, conditions):
            return previous

        old = previous.get_condition(ConditionType.AVAILABLE)
        if not computed.same_state(old):
            logger.info(
                f"Changing APIService {previous.name} availability: "
                f"{old.status.value if old else ConditionStatus.UNKNOWN.value} -> "
                f"{computed.status.value} ({computed.reason})"
            )
            self.events.log_availability_changed(
                name=previous.name,
                from_status=old.status.value if old else None,
                to_status=computed.status.value,
                reason=computed.reason,
                message=computed.message,
            )

        updated = previous.model_copy(update={"status": APIServiceStatus(conditions=conditions)})
        try:
            stored = self.store.update_status(updated)
        except NotFoundError:
            logger.debug(f"APIService {previous.name} deleted before its status was written")
            if self.metrics is not None:
                self.metrics.forget(previous.name)
            return None

        if previous.is_available() and computed.status != ConditionStatus.TRUE:
            if self.metrics is not None:
                self.metrics.record_transition(previous.name, computed.reason)
        return stored
