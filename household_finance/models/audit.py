"""
Audit Models for Household Finance

Every persistence action on the application state is logged for audit purposes.
This provides:
1. Traceability of what was written where (local cache, remote store)
2. Debugging information when a remote sync fails
3. A record of which side won when a session was reconciled

DESIGN DECISION: Audit events are emitted, never edited. They go to the
structured local log only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from household_finance.models.finance import new_id, utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Local lane
    STATE_LOADED_LOCAL = "state_loaded_local"
    LOCAL_CACHE_RECOVERED = "local_cache_recovered"

    # Session
    SESSION_CHANGED = "session_changed"
    STATE_LOADED_REMOTE = "state_loaded_remote"
    REMOTE_LOAD_DISCARDED = "remote_load_discarded"

    # Remote lane writes
    STATE_PUSHED = "state_pushed"
    SNAPSHOT_PUSHED = "snapshot_pushed"
    TRANSACTIONS_SYNCED = "transactions_synced"

    # Failures
    REMOTE_SYNC_FAILED = "remote_sync_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: str = Field(
        default_factory=new_id,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Whose data this concerns (None = local only)
    user_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": self.event_id,
            "occurred_at": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.state_pushed(user_id)
        event = AuditEventBuilder.remote_sync_failed(user_id, "user_state", message)
    """

    @staticmethod
    def state_loaded_local(path: str, issues: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_LOADED_LOCAL,
            severity=AuditSeverity.WARNING if issues else AuditSeverity.INFO,
            description=f"State loaded from local cache: {path}",
            details={"path": path, "issues": issues},
        )

    @staticmethod
    def local_cache_recovered(path: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCAL_CACHE_RECOVERED,
            severity=AuditSeverity.WARNING,
            description="Local cache unreadable, using empty state",
            details={"path": path},
            error_message=reason,
        )

    @staticmethod
    def session_changed(user_id: Optional[str], generation: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CHANGED,
            user_id=user_id,
            description="Signed in" if user_id else "Signed out",
            details={"generation": generation},
        )

    @staticmethod
    def state_loaded_remote(
        user_id: str,
        winner: str,
        snapshot_count: int,
        transaction_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_LOADED_REMOTE,
            user_id=user_id,
            description=f"Session reconciled, {winner} state kept",
            details={
                "winner": winner,
                "snapshot_count": snapshot_count,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def remote_load_discarded(user_id: str, generation: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_LOAD_DISCARDED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            description="Remote load finished after the session changed",
            details={"generation": generation},
        )

    @staticmethod
    def state_pushed(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_PUSHED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            description="State blob upserted",
        )

    @staticmethod
    def snapshot_pushed(user_id: str, month: str, currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_PUSHED,
            user_id=user_id,
            description=f"Snapshot upserted for {month} ({currency})",
            details={"month": month, "currency": currency},
        )

    @staticmethod
    def transactions_synced(user_id: str, kept: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_SYNCED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            description=f"Remote transactions mirrored ({kept} rows)",
            details={"kept": kept},
        )

    @staticmethod
    def remote_sync_failed(
        user_id: Optional[str],
        operation: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Remote {operation} failed",
            details={"operation": operation},
            error_message=error_message,
        )
