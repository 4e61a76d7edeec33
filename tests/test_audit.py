"""Tests for the audit logger."""

from household_finance.audit import AuditLogger
from household_finance.models.audit import AuditEventBuilder, AuditEventType


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_log_records_event(self):
        """Test a logged event is kept in recent history."""
        audit_logger = AuditLogger()
        event = AuditEventBuilder.state_pushed("u1")

        assert audit_logger.log(event) is True
        assert audit_logger.recent_events == [event]

    def test_history_is_bounded(self):
        """Test only the newest events are kept."""
        audit_logger = AuditLogger(history_size=2)
        for user_id in ("a", "b", "c"):
            audit_logger.log(AuditEventBuilder.state_pushed(user_id))

        assert [e.user_id for e in audit_logger.recent_events] == ["b", "c"]

    def test_events_for_user(self):
        """Test filtering history by user."""
        audit_logger = AuditLogger()
        audit_logger.log(AuditEventBuilder.session_changed("u1", 1))
        audit_logger.log(AuditEventBuilder.remote_sync_failed("u2", "state save", "boom"))
        audit_logger.log(AuditEventBuilder.snapshot_pushed("u1", "2024-03", "GBP"))

        events = audit_logger.events_for_user("u1")

        assert [e.event_type for e in events] == [
            AuditEventType.SESSION_CHANGED,
            AuditEventType.SNAPSHOT_PUSHED,
        ]
