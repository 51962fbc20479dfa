# healthmon/services/archival/statistics.py
"""
Read-only archival statistics for the admin dashboard and CLI.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy import and_, func, select

from healthmon.models import Account, ArchivalAuditEntry, AuditAction
from healthmon.services.archival.audit_trail import AuditTrailRecorder
from healthmon.services.archival.collaborators import Clock
from healthmon.services.archival.retention_policy import to_naive_utc, utcnow
from healthmon.services.archival.store import SessionFactory

logger = logging.getLogger(__name__)


@dataclass
class ArchivalStatistics:
    generated_at: datetime
    total_accounts: int = 0
    active: int = 0
    archived: int = 0
    archived_this_month: int = 0
    archived_this_year: int = 0
    archived_by_reason: dict[str, int] = field(default_factory=dict)
    archived_by_role: dict[str, int] = field(default_factory=dict)
    active_by_role: dict[str, int] = field(default_factory=dict)
    purge_eligible: int = 0
    purge_in_progress: int = 0
    audit_entries_by_action: dict[str, int] = field(default_factory=dict)
    # Archived accounts with no matching archive audit entry
    archived_without_audit: int = 0
    audit_write_failures: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["generated_at"] = self.generated_at.isoformat()
        return data


class StatisticsReporter:
    """Aggregates account and audit counts. Never writes."""

    def __init__(self, session_factory: SessionFactory, audit: AuditTrailRecorder, clock: Clock = utcnow):
        self._session_factory = session_factory
        self._audit = audit
        self._clock = clock

    def get_statistics(self, now: datetime | None = None) -> ArchivalStatistics:
        now = to_naive_utc(now or self._clock())
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        year_start = month_start.replace(month=1)

        stats = ArchivalStatistics(generated_at=now)

        db = self._session_factory()
        try:
            stats.total_accounts = db.query(func.count(Account.id)).scalar() or 0

            stats.archived = (
                db.query(func.count(Account.id))
                .filter(Account.archived == True)  # noqa: E712
                .scalar()
            ) or 0
            stats.active = stats.total_accounts - stats.archived

            stats.archived_this_month = (
                db.query(func.count(Account.id))
                .filter(Account.archived == True, Account.archived_at >= month_start)  # noqa: E712
                .scalar()
            ) or 0

            stats.archived_this_year = (
                db.query(func.count(Account.id))
                .filter(Account.archived == True, Account.archived_at >= year_start)  # noqa: E712
                .scalar()
            ) or 0

            stats.archived_by_reason = {
                reason: count
                for reason, count in (
                    db.query(Account.archive_reason, func.count(Account.id))
                    .filter(Account.archived == True)  # noqa: E712
                    .group_by(Account.archive_reason)
                    .all()
                )
            }

            stats.archived_by_role = {
                role: count
                for role, count in (
                    db.query(Account.role, func.count(Account.id))
                    .filter(Account.archived == True)  # noqa: E712
                    .group_by(Account.role)
                    .all()
                )
            }

            stats.active_by_role = {
                role: count
                for role, count in (
                    db.query(Account.role, func.count(Account.id))
                    .filter(Account.archived == False)  # noqa: E712
                    .group_by(Account.role)
                    .all()
                )
            }

            stats.purge_eligible = (
                db.query(func.count(Account.id))
                .filter(
                    Account.archived == True,  # noqa: E712
                    Account.scheduled_purge_at.isnot(None),
                    Account.scheduled_purge_at <= now,
                )
                .scalar()
            ) or 0

            stats.purge_in_progress = (
                db.query(func.count(Account.id))
                .filter(Account.purge_started_at.isnot(None))
                .scalar()
            ) or 0

            archive_logged = (
                select(ArchivalAuditEntry.id)
                .where(
                    and_(
                        ArchivalAuditEntry.subject_id == Account.id,
                        ArchivalAuditEntry.action == AuditAction.ARCHIVE.value,
                        ArchivalAuditEntry.created_at == Account.archived_at,
                    )
                )
                .exists()
            )
            stats.archived_without_audit = (
                db.query(func.count(Account.id))
                .filter(Account.archived == True, ~archive_logged)  # noqa: E712
                .scalar()
            ) or 0
        finally:
            db.close()

        stats.audit_entries_by_action = self._audit.count_by_action()
        stats.audit_write_failures = self._audit.failed_writes

        if stats.archived_without_audit or stats.audit_write_failures:
            logger.warning(
                f"Audit gap: {stats.archived_without_audit} archived accounts without an archive entry, "
                f"{stats.audit_write_failures} failed audit writes",
                extra={"event": "audit_gap_detected", "items_failed": stats.archived_without_audit},
            )

        return stats
