"""
Audit Logger

DESIGN DECISION: Every persistence action on the application state is logged.
This provides:
1. Traceability of local saves, remote pushes and session reconciliation
2. Debugging capability when a remote sync fails
3. A local record even when the remote store is unreachable

The audit logger:
- Is synchronous; it only writes to the local structured log
- Never raises (a logging failure must not break a state change)
"""

import logging
import sys
from typing import Optional

import structlog

from household_finance.models.audit import AuditEvent, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def setup_logging(level: str = "INFO") -> None:
    """Route structlog's JSON lines to stdout at the given level."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level.upper(),
        force=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Records every audit event in the structured local log. The most recent
    events are also kept in memory for display and inspection.
    """

    def __init__(self, history_size: int = 200):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to keep in memory.
        """
        self._logger = structlog.get_logger("household_finance.audit")
        self._history: list[AuditEvent] = []
        self._history_size = history_size

    @property
    def recent_events(self) -> list[AuditEvent]:
        """Most recent events, oldest first."""
        return list(self._history)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was written to the local log.
        """
        self._history.append(event)
        if len(self._history) > self._history_size:
            del self._history[: len(self._history) - self._history_size]

        log_dict = event.to_log_dict()
        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Never let logging break the caller
            print(f"WARNING: Failed to write audit event {event.event_id}: {e}", file=sys.stderr)
            return False
        return True

    def events_for_user(self, user_id: Optional[str]) -> list[AuditEvent]:
        """Recent events concerning one user."""
        return [event for event in self._history if event.user_id == user_id]
