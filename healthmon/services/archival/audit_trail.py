# healthmon/services/archival/audit_trail.py
"""
Append-only audit trail for account lifecycle transitions.

Handles:
- Writing one immutable entry per transition, in its own transaction
- Isolating write failures: they are logged on the audit side channel and
  counted, never raised into the lifecycle operation
- Chronological reads by subject and by actor

There is deliberately no update or delete operation.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func

from healthmon.constants import AuditDefaults
from healthmon.models import ArchivalAuditEntry, AuditAction
from healthmon.services.archival.store import SessionFactory

logger = logging.getLogger(__name__)
side_channel = logging.getLogger(AuditDefaults.SYSTEM_LOGGER)


@dataclass(frozen=True)
class NewAuditEntry:
    """An entry to be written."""
    actor_id: str
    subject_id: str
    action: AuditAction
    created_at: datetime
    reason: str | None = None
    detail: str | None = None
    event_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditEntry:
    """A written entry, as read back from the store."""
    id: int
    actor_id: str
    subject_id: str
    action: str
    reason: str | None
    detail: str | None
    event_metadata: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, row: ArchivalAuditEntry) -> "AuditEntry":
        return cls(
            id=row.id,
            actor_id=row.actor_id,
            subject_id=row.subject_id,
            action=row.action,
            reason=row.reason,
            detail=row.detail,
            event_metadata=dict(row.event_metadata or {}),
            created_at=row.created_at,
        )


class AuditTrailRecorder:
    """Write-once, read-many audit trail."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory
        self._failed_writes = 0
        self._lock = threading.Lock()

    @property
    def failed_writes(self) -> int:
        """Number of entries that could not be written since startup."""
        with self._lock:
            return self._failed_writes

    def append(self, entry: NewAuditEntry) -> AuditEntry | None:
        """
        Write one entry.

        Returns the stored entry, or None if the write failed. Failures are
        reported on the ``healthmon.audit`` logger with event
        ``audit_write_failed`` and counted in ``failed_writes``.
        """
        action = entry.action.value if isinstance(entry.action, AuditAction) else str(entry.action)
        db = None
        try:
            db = self._session_factory()
            row = ArchivalAuditEntry(
                actor_id=entry.actor_id,
                subject_id=entry.subject_id,
                action=action,
                reason=entry.reason,
                detail=entry.detail,
                event_metadata=dict(entry.event_metadata),
                created_at=entry.created_at,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.debug(f"Audit entry {row.id}: {action} {entry.subject_id} by {entry.actor_id}")
            return AuditEntry.from_model(row)

        except Exception as e:
            if db is not None:
                try:
                    db.rollback()
                except Exception as rollback_error:
                    side_channel.warning(f"Audit rollback failed: {rollback_error}")
            with self._lock:
                self._failed_writes += 1
                failed = self._failed_writes
            side_channel.error(
                f"Audit write failed: {action} {entry.subject_id} by {entry.actor_id}: {e}",
                extra={
                    "event": "audit_write_failed",
                    "action": action,
                    "subject_id": entry.subject_id,
                    "operator_id": entry.actor_id,
                    "error_code": "audit_write_failed",
                    "items_failed": failed,
                },
            )
            return None
        finally:
            if db is not None:
                try:
                    db.close()
                except Exception as close_error:
                    side_channel.warning(f"Audit session close failed: {close_error}")

    def find_by_subject(self, subject_id: str) -> tuple[AuditEntry, ...]:
        """All entries about a subject, oldest first."""
        db = self._session_factory()
        try:
            rows = (
                db.query(ArchivalAuditEntry)
                .filter(ArchivalAuditEntry.subject_id == subject_id)
                .order_by(ArchivalAuditEntry.created_at.asc(), ArchivalAuditEntry.id.asc())
                .all()
            )
            return tuple(AuditEntry.from_model(r) for r in rows)
        finally:
            db.close()

    def find_by_actor(self, actor_id: str) -> tuple[AuditEntry, ...]:
        """All entries written for an operator's actions, oldest first."""
        db = self._session_factory()
        try:
            rows = (
                db.query(ArchivalAuditEntry)
                .filter(ArchivalAuditEntry.actor_id == actor_id)
                .order_by(ArchivalAuditEntry.created_at.asc(), ArchivalAuditEntry.id.asc())
                .all()
            )
            return tuple(AuditEntry.from_model(r) for r in rows)
        finally:
            db.close()

    def count_by_action(self) -> dict[str, int]:
        db = self._session_factory()
        try:
            rows = (
                db.query(ArchivalAuditEntry.action, func.count(ArchivalAuditEntry.id))
                .group_by(ArchivalAuditEntry.action)
                .all()
            )
            return {action: count for action, count in rows}
        finally:
            db.close()
