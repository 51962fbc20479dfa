# healthmon/services/archival/store.py
"""
Account store for the archival lifecycle.

Every write is a compare-and-swap on ``Account.version``: the UPDATE or
DELETE only matches when the row still has the version the caller read.
A caller that loses the race gets ``None`` / ``False`` back and decides
what to report after re-reading. No in-process locks are held.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import and_
from sqlalchemy.orm import Session

from healthmon.models import Account

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class AccountRecord:
    """Detached, read-only view of an Account row."""
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    created_at: datetime | None
    archived: bool
    archived_at: datetime | None
    scheduled_purge_at: datetime | None
    archive_reason: str | None
    archive_comment: str | None
    archived_by: str | None
    archival_history: tuple = field(default_factory=tuple)
    pre_archival_snapshot: dict | None = None
    purge_started_at: datetime | None = None
    version: int = 1

    @classmethod
    def from_model(cls, account: Account) -> "AccountRecord":
        return cls(
            id=account.id,
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            role=account.role,
            created_at=account.created_at,
            archived=bool(account.archived),
            archived_at=account.archived_at,
            scheduled_purge_at=account.scheduled_purge_at,
            archive_reason=account.archive_reason,
            archive_comment=account.archive_comment,
            archived_by=account.archived_by,
            archival_history=tuple(dict(item) for item in (account.archival_history or [])),
            pre_archival_snapshot=dict(account.pre_archival_snapshot) if account.pre_archival_snapshot else None,
            purge_started_at=account.purge_started_at,
            version=account.version,
        )


class AccountStore:
    """
    SQLAlchemy-backed account store.

    Each method runs in its own short session so concurrent callers never
    share state.
    """

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def get(self, account_id: str) -> AccountRecord | None:
        db = self._session_factory()
        try:
            account = db.get(Account, account_id)
            return AccountRecord.from_model(account) if account else None
        finally:
            db.close()

    def exists(self, account_id: str) -> bool:
        db = self._session_factory()
        try:
            return db.query(Account.id).filter(Account.id == account_id).first() is not None
        finally:
            db.close()

    def compare_and_set(
        self,
        account_id: str,
        expected_version: int,
        values: dict[str, Any],
    ) -> AccountRecord | None:
        """
        Apply ``values`` only if the row is still at ``expected_version``.

        Returns the updated record, or None if the row changed or vanished.
        """
        db = self._session_factory()
        try:
            updates = dict(values)
            updates["version"] = expected_version + 1
            matched = (
                db.query(Account)
                .filter(
                    and_(
                        Account.id == account_id,
                        Account.version == expected_version,
                    )
                )
                .update(updates, synchronize_session=False)
            )
            if matched != 1:
                db.rollback()
                logger.debug(f"Version conflict on account {account_id} (expected v{expected_version})")
                return None

            db.commit()
            account = db.get(Account, account_id)
            return AccountRecord.from_model(account) if account else None
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, account_id: str, expected_version: int) -> bool:
        """Delete the row only if it is still at ``expected_version``."""
        db = self._session_factory()
        try:
            deleted = (
                db.query(Account)
                .filter(
                    and_(
                        Account.id == account_id,
                        Account.version == expected_version,
                    )
                )
                .delete(synchronize_session=False)
            )
            if deleted != 1:
                db.rollback()
                return False
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def find_purge_eligible(self, now: datetime, limit: int) -> list[AccountRecord]:
        """Archived accounts whose retention window has elapsed, oldest first."""
        db = self._session_factory()
        try:
            accounts = (
                db.query(Account)
                .filter(
                    and_(
                        Account.archived == True,  # noqa: E712
                        Account.scheduled_purge_at.isnot(None),
                        Account.scheduled_purge_at <= now,
                    )
                )
                .order_by(Account.scheduled_purge_at.asc())
                .limit(limit)
                .all()
            )
            return [AccountRecord.from_model(a) for a in accounts]
        finally:
            db.close()
