"""Tests for the best-effort audit sink."""
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from tracker_core import models
from tracker_core.audit import record_event
from tracker_core.models import AuditEventKind


class TestRecordEvent:
    """Test audit event persistence."""

    def test_stores_event(self, db):
        actor_id = uuid4()
        ids = [uuid4(), uuid4()]

        event = record_event(db, AuditEventKind.ARCHIVED, actor_id, "task", ids)

        assert event is not None
        stored = db.query(models.AuditEvent).one()
        assert stored.actor_id == actor_id
        assert stored.entity_ids == [str(i) for i in ids]

    def test_failure_is_swallowed_and_logged(self, db, monkeypatch, caplog):
        """A failing audit write returns None instead of raising."""

        def failing_add(obj):
            raise OperationalError("INSERT INTO audit_events", {}, Exception("disk full"))

        monkeypatch.setattr(db, "add", failing_add)

        with caplog.at_level("WARNING", logger="tracker-core.audit"):
            result = record_event(db, AuditEventKind.UNARCHIVED, None, "task", [uuid4()])

        assert result is None
        assert "Failed to record audit event" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
