"""
Structured logging for availability events.

Outputs JSON-formatted logs for Loki ingestion. Only events that matter to
an operator are logged here - availability transitions, write conflicts and
failed passes. Routine passes that change nothing stay silent.

Logged events:
- apiservice.availability_changed
- apiservice.status_conflict
- apiservice.reconcile_failed

Usage:
    from apiavailability.logger import ConditionLogger

    events = ConditionLogger(service_name="apiavailability")
    events.log_availability_changed(
        name="v1beta1.metrics.k8s.io",
        from_status="True",
        to_status="False",
        reason="FailedDiscoveryCheck",
        message="failing or missing response from ...",
    )
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Configure structured logger for Loki
_event_logger = logging.getLogger("apiavailability.events")
_event_logger.setLevel(logging.INFO)
_event_logger.propagate = False

# Default handler outputs JSON to stdout (for container/Loki pickup)
if not _event_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    _event_logger.addHandler(handler)

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", log_format: str = "json") -> None:
    """
    Configure the root ``apiavailability`` logger.

    Args:
        level: debug, info, warning or error
        log_format: json (for Loki) or text (for a console)
    """
    root = logging.getLogger("apiavailability")
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)


class ConditionLogger:
    """
    Structured logger for APIService availability events.

    Each entry includes standard fields for filtering:
    - service, event, apiservice name
    - event-specific attributes (statuses, reason, message, error)
    """

    def __init__(
        self,
        service_name: str = "apiavailability",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the event logger.

        Args:
            service_name: Service name for log attribution
            extra_labels: Additional labels for Loki filtering
        """
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _event_logger

    def _emit(
        self,
        event: str,
        name: str,
        level: str = "info",
        **extra_fields: Any,
    ) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "apiservice": name,
        }
        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_availability_changed(
        self,
        name: str,
        from_status: Optional[str],
        to_status: str,
        reason: str,
        message: str,
    ) -> None:
        """Log a change of the Available condition."""
        self._emit(
            event="apiservice.availability_changed",
            name=name,
            level="warn" if to_status != "True" else "info",
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            message=message,
        )

    def log_status_conflict(self, name: str, resource_version: Optional[str]) -> None:
        """Log a status write rejected by optimistic concurrency."""
        self._emit(
            event="apiservice.status_conflict",
            name=name,
            resource_version=resource_version,
        )

    def log_reconcile_failed(self, name: str, error: str, requeues: int) -> None:
        """Log a pass that ended in an error and will be retried."""
        self._emit(
            event="apiservice.reconcile_failed",
            name=name,
            level="error",
            error=error,
            requeues=requeues,
        )
