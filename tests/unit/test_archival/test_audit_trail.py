# tests/unit/test_archival/test_audit_trail.py
"""Unit tests for the audit trail recorder."""

import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError


def _entry(subject_id="patient-42", actor_id="admin-1", action=None, created_at=datetime(2024, 1, 10), **kwargs):
    from healthmon.models import AuditAction
    from healthmon.services.archival.audit_trail import NewAuditEntry

    return NewAuditEntry(
        actor_id=actor_id,
        subject_id=subject_id,
        action=action or AuditAction.ARCHIVE,
        created_at=created_at,
        **kwargs,
    )


class TestAppend:
    """Tests for AuditTrailRecorder.append()."""

    def test_returns_stored_entry(self, session_factory):
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        recorder = AuditTrailRecorder(session_factory)
        stored = recorder.append(_entry(reason="cured", event_metadata={"role": "patient"}))

        assert stored.id is not None
        assert stored.action == "archive"
        assert stored.reason == "cured"
        assert stored.event_metadata == {"role": "patient"}
        assert recorder.failed_writes == 0

    def test_failed_write_is_counted_not_raised(self, caplog):
        """Should return None and log on the audit channel when the store fails."""
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
        recorder = AuditTrailRecorder(lambda: db)

        with caplog.at_level(logging.ERROR, logger="healthmon.audit"):
            assert recorder.append(_entry()) is None

        assert recorder.failed_writes == 1
        db.rollback.assert_called_once()
        db.close.assert_called_once()
        records = [r for r in caplog.records if getattr(r, "event", None) == "audit_write_failed"]
        assert len(records) == 1
        assert records[0].subject_id == "patient-42"

    def test_non_database_error_is_counted_not_raised(self, caplog):
        """Should treat any store exception as a failed write."""
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        def unreachable():
            raise ConnectionError("audit store unreachable")

        recorder = AuditTrailRecorder(unreachable)

        with caplog.at_level(logging.ERROR, logger="healthmon.audit"):
            assert recorder.append(_entry()) is None

        assert recorder.failed_writes == 1
        assert any(getattr(r, "event", None) == "audit_write_failed" for r in caplog.records)

    def test_failing_rollback_does_not_escape(self):
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        db = MagicMock()
        db.commit.side_effect = RuntimeError("socket closed")
        db.rollback.side_effect = RuntimeError("socket closed")
        db.close.side_effect = RuntimeError("socket closed")
        recorder = AuditTrailRecorder(lambda: db)

        assert recorder.append(_entry()) is None
        assert recorder.failed_writes == 1

    def test_lifecycle_continues_when_audit_store_fails(self, services, caplog):
        """Archive still succeeds; the gap shows up in statistics."""
        from unittest.mock import patch

        with patch.object(
            services.audit,
            "_session_factory",
            side_effect=OperationalError("INSERT", {}, Exception("database is locked")),
        ):
            result = services.lifecycle.archive("patient-42", "admin-1", "cured")

        assert result.record.archived is True
        assert result.audit_entry_id is None
        assert services.audit.failed_writes == 1

        stats = services.statistics.get_statistics()
        assert stats.archived_without_audit == 1
        assert stats.audit_write_failures == 1


class TestReads:
    """Tests for find_by_subject() and find_by_actor()."""

    def test_entries_in_chronological_order(self, session_factory):
        from healthmon.models import AuditAction
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        recorder = AuditTrailRecorder(session_factory)
        recorder.append(_entry(action=AuditAction.UNARCHIVE, created_at=datetime(2024, 2, 1)))
        recorder.append(_entry(action=AuditAction.ARCHIVE, created_at=datetime(2024, 1, 10)))
        recorder.append(_entry(action=AuditAction.ARCHIVE, created_at=datetime(2024, 3, 1)))

        entries = recorder.find_by_subject("patient-42")

        assert [e.created_at for e in entries] == [
            datetime(2024, 1, 10),
            datetime(2024, 2, 1),
            datetime(2024, 3, 1),
        ]

    def test_same_timestamp_ordered_by_insertion(self, session_factory):
        from healthmon.models import AuditAction
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        recorder = AuditTrailRecorder(session_factory)
        first = recorder.append(_entry(action=AuditAction.ARCHIVE))
        second = recorder.append(_entry(action=AuditAction.PERMANENT_DELETE))

        assert [e.id for e in recorder.find_by_subject("patient-42")] == [first.id, second.id]

    def test_repeated_reads_are_identical(self, services):
        services.lifecycle.archive("patient-42", "admin-1", "cured")

        assert services.audit.find_by_subject("patient-42") == services.audit.find_by_subject("patient-42")

    def test_find_by_actor(self, session_factory):
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        recorder = AuditTrailRecorder(session_factory)
        recorder.append(_entry(subject_id="patient-42", actor_id="admin-1"))
        recorder.append(_entry(subject_id="patient-43", actor_id="clinician-7"))
        recorder.append(_entry(subject_id="patient-44", actor_id="admin-1", created_at=datetime(2024, 1, 11)))

        assert [e.subject_id for e in recorder.find_by_actor("admin-1")] == ["patient-42", "patient-44"]
        assert recorder.find_by_actor("nobody") == ()

    def test_count_by_action(self, session_factory):
        from healthmon.models import AuditAction
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        recorder = AuditTrailRecorder(session_factory)
        recorder.append(_entry(action=AuditAction.ARCHIVE))
        recorder.append(_entry(action=AuditAction.ARCHIVE, subject_id="patient-43"))
        recorder.append(_entry(action=AuditAction.UNARCHIVE))

        assert recorder.count_by_action() == {"archive": 2, "unarchive": 1}


class TestImmutability:
    """Stored entries cannot be changed or removed through the ORM."""

    def test_update_refused(self, session_factory):
        from healthmon.models import ArchivalAuditEntry, AuditTrailImmutableError
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        stored = AuditTrailRecorder(session_factory).append(_entry(reason="cured"))

        db = session_factory()
        try:
            row = db.get(ArchivalAuditEntry, stored.id)
            row.reason = "other"
            with pytest.raises(AuditTrailImmutableError):
                db.commit()
            db.rollback()
        finally:
            db.close()

        assert AuditTrailRecorder(session_factory).find_by_subject("patient-42")[0].reason == "cured"

    def test_delete_refused(self, session_factory):
        from healthmon.models import ArchivalAuditEntry, AuditTrailImmutableError
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        stored = AuditTrailRecorder(session_factory).append(_entry())

        db = session_factory()
        try:
            db.delete(db.get(ArchivalAuditEntry, stored.id))
            with pytest.raises(AuditTrailImmutableError):
                db.commit()
            db.rollback()
        finally:
            db.close()

        assert len(AuditTrailRecorder(session_factory).find_by_subject("patient-42")) == 1

    def test_recorder_has_no_mutators(self):
        from healthmon.services.archival.audit_trail import AuditTrailRecorder

        assert not hasattr(AuditTrailRecorder, "update")
        assert not hasattr(AuditTrailRecorder, "delete")
