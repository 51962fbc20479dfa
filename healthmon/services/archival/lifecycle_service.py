# healthmon/services/archival/lifecycle_service.py
"""
Account archival lifecycle.

State machine:
    Active   --archive-->             Archived
    Archived --unarchive-->           Active
    Archived --permanently_delete-->  Deleted (terminal, only once the
                                      retention window has elapsed)

Each transition:
1. Validates inputs and preconditions (typed ArchivalError on failure)
2. Writes the account with a compare-and-swap on its version
3. Appends exactly one audit entry (failures isolated in the recorder)
4. Sends a best-effort notification

Permanent deletion claims the record first, writes its audit entry before
anything is destroyed, then removes dependent data and the account.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from healthmon.constants import ArchivalLimits
from healthmon.logging_config import log_lifecycle_operation
from healthmon.models import ArchivalReason, AuditAction, HistoryEvent
from healthmon.services.archival.audit_trail import AuditEntry, AuditTrailRecorder, NewAuditEntry
from healthmon.services.archival.collaborators import (
    Clock,
    DependentDataStore,
    LifecycleNotification,
    NotificationSink,
)
from healthmon.services.archival.errors import (
    AlreadyArchived,
    ArchivalError,
    ConcurrentUpdate,
    InvalidComment,
    InvalidReason,
    NotArchived,
    OperatorNotFound,
    PurgeIncomplete,
    PurgeInProgress,
    RetentionWindowNotElapsed,
    SubjectNotFound,
)
from healthmon.services.archival.retention_policy import (
    is_purge_eligible,
    purge_date_for,
    remaining,
    to_naive_utc,
    utcnow,
)
from healthmon.services.archival.store import AccountRecord, AccountStore

logger = logging.getLogger(__name__)


@dataclass
class ArchivalResult:
    """Result of an archive or unarchive."""
    record: AccountRecord
    scheduled_purge_at: datetime | None
    audit_entry_id: int | None = None


@dataclass
class DeletionConfirmation:
    """Result of a permanent deletion."""
    subject_id: str
    deleted_at: datetime
    records_deleted: dict[str, int] = field(default_factory=dict)
    audit_entry_id: int | None = None


# -----------------------------------------------------------------------------
# Boundary validation
# -----------------------------------------------------------------------------


def parse_reason(reason, subject_id: str | None = None) -> ArchivalReason:
    """Coerce an archival reason into the closed enum."""
    if isinstance(reason, ArchivalReason):
        return reason
    try:
        return ArchivalReason(reason)
    except ValueError:
        raise InvalidReason(reason, subject_id) from None


def validate_comment(comment: str | None, subject_id: str | None = None) -> str:
    """Archive comments are optional and bounded."""
    comment = comment or ""
    if len(comment) > ArchivalLimits.COMMENT_MAX_CHARS:
        raise InvalidComment(len(comment), ArchivalLimits.COMMENT_MAX_CHARS, subject_id)
    return comment


def validate_unarchive_reason(reason: str | None, subject_id: str | None = None) -> str:
    """Unarchive reasons are free text, bounded like comments."""
    reason = reason or ""
    if len(reason) > ArchivalLimits.COMMENT_MAX_CHARS:
        raise InvalidReason(
            reason,
            subject_id,
            message=f"Unarchive reason is {len(reason)} characters, maximum is {ArchivalLimits.COMMENT_MAX_CHARS}",
        )
    return reason


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


class ArchivalLifecycleService:
    """
    Single-subject lifecycle transitions.

    The operator id is already authenticated and authorized by the caller;
    this service only checks that the operator account exists.
    """

    def __init__(
        self,
        accounts: AccountStore,
        audit: AuditTrailRecorder,
        dependent_stores: Sequence[DependentDataStore] = (),
        notifier: NotificationSink | None = None,
        clock: Clock = utcnow,
        purge_claim_timeout: timedelta = timedelta(minutes=ArchivalLimits.PURGE_CLAIM_TIMEOUT_MINUTES),
    ):
        self._accounts = accounts
        self._audit = audit
        self._dependent_stores = tuple(dependent_stores)
        self._notifier = notifier
        self._clock = clock
        self._purge_claim_timeout = purge_claim_timeout

    # -- queries --------------------------------------------------------------

    def now(self) -> datetime:
        return to_naive_utc(self._clock())

    def get_subject(self, subject_id: str) -> AccountRecord:
        record = self._accounts.get(subject_id)
        if record is None:
            raise SubjectNotFound(subject_id)
        return record

    def require_operator(self, operator_id: str) -> None:
        if not operator_id or not self._accounts.exists(operator_id):
            raise OperatorNotFound(operator_id)

    def find_purge_eligible(
        self,
        limit: int = ArchivalLimits.PURGE_LISTING_DEFAULT_LIMIT,
    ) -> list[AccountRecord]:
        """Archived accounts whose retention window has elapsed, oldest first."""
        return self._accounts.find_purge_eligible(self.now(), limit)

    # -- transitions ----------------------------------------------------------

    def archive(
        self,
        subject_id: str,
        operator_id: str,
        reason: ArchivalReason | str,
        comment: str | None = "",
    ) -> ArchivalResult:
        """
        Archive an active account.

        Raises:
            InvalidReason, InvalidComment, OperatorNotFound, SubjectNotFound,
            AlreadyArchived, ConcurrentUpdate
        """
        with log_lifecycle_operation(AuditAction.ARCHIVE.value, subject_id, operator_id):
            archival_reason = parse_reason(reason, subject_id)
            comment = validate_comment(comment, subject_id)
            self.require_operator(operator_id)

            record = self.get_subject(subject_id)
            if record.archived:
                raise AlreadyArchived(subject_id)

            now = self.now()
            purge_at = purge_date_for(now)
            snapshot = self._capture_snapshot(record, now)
            history = list(record.archival_history)
            history.append({
                "event": HistoryEvent.ARCHIVED.value,
                "at": _iso(now),
                "by": operator_id,
                "reason": archival_reason.value,
                "comment": comment,
                "scheduled_purge_at": _iso(purge_at),
            })

            updated = self._accounts.compare_and_set(
                subject_id,
                record.version,
                {
                    "archived": True,
                    "archived_at": now,
                    "scheduled_purge_at": purge_at,
                    "archive_reason": archival_reason.value,
                    "archive_comment": comment,
                    "archived_by": operator_id,
                    "archival_history": history,
                    "pre_archival_snapshot": snapshot,
                },
            )
            if updated is None:
                raise self._conflict(subject_id, AuditAction.ARCHIVE)

            entry = self._record(
                AuditAction.ARCHIVE,
                updated,
                operator_id,
                now,
                reason=archival_reason.value,
                detail=comment or None,
                extra={"scheduled_purge_at": _iso(purge_at)},
            )
            self._notify(AuditAction.ARCHIVE, subject_id, operator_id, now, reason=archival_reason.value)

            return ArchivalResult(
                record=updated,
                scheduled_purge_at=purge_at,
                audit_entry_id=entry.id if entry else None,
            )

    def unarchive(
        self,
        subject_id: str,
        operator_id: str,
        reason: str | None = "",
    ) -> ArchivalResult:
        """
        Return an archived account to active.

        Earlier archival metadata is kept; a supersession record is appended
        to the account's archival history.

        Raises:
            InvalidReason, OperatorNotFound, SubjectNotFound, NotArchived,
            PurgeInProgress, ConcurrentUpdate
        """
        with log_lifecycle_operation(AuditAction.UNARCHIVE.value, subject_id, operator_id):
            reason = validate_unarchive_reason(reason, subject_id)
            self.require_operator(operator_id)

            record = self.get_subject(subject_id)
            if not record.archived:
                raise NotArchived(subject_id)

            now = self.now()
            if self._claim_held(record, now):
                raise PurgeInProgress(subject_id)

            history = list(record.archival_history)
            history.append({
                "event": HistoryEvent.UNARCHIVED.value,
                "at": _iso(now),
                "by": operator_id,
                "reason": reason,
                "supersedes_archived_at": _iso(record.archived_at),
            })

            updated = self._accounts.compare_and_set(
                subject_id,
                record.version,
                {
                    "archived": False,
                    "archived_at": None,
                    "scheduled_purge_at": None,
                    "archival_history": history,
                    "purge_started_at": None,
                },
            )
            if updated is None:
                raise self._conflict(subject_id, AuditAction.UNARCHIVE)

            entry = self._record(
                AuditAction.UNARCHIVE,
                updated,
                operator_id,
                now,
                reason=reason or None,
                extra={"previously_archived_at": _iso(record.archived_at)},
            )
            self._notify(AuditAction.UNARCHIVE, subject_id, operator_id, now)

            return ArchivalResult(
                record=updated,
                scheduled_purge_at=None,
                audit_entry_id=entry.id if entry else None,
            )

    def permanently_delete(self, subject_id: str, operator_id: str) -> DeletionConfirmation:
        """
        Erase an archived account whose retention window has elapsed.

        Order:
        1. Claim the record (purge_started_at), so unarchive cannot interleave
        2. Write the permanent-delete audit entry
        3. Delete dependent records (measurement history, ...)
        4. Delete the account row

        If anything after step 1 fails the claim is released and
        PurgeIncomplete is raised; the audit entry from step 2, when written,
        stays as evidence of the attempt. A claim left behind by a crashed
        attempt is taken over once it is older than the claim timeout.

        Raises:
            OperatorNotFound, SubjectNotFound, NotArchived,
            RetentionWindowNotElapsed, PurgeInProgress, ConcurrentUpdate,
            PurgeIncomplete
        """
        with log_lifecycle_operation(AuditAction.PERMANENT_DELETE.value, subject_id, operator_id):
            self.require_operator(operator_id)

            record = self.get_subject(subject_id)
            if not record.archived:
                raise NotArchived(subject_id)

            now = self.now()
            if not is_purge_eligible(record, now):
                raise RetentionWindowNotElapsed(subject_id, remaining(record, now), record.scheduled_purge_at)
            if self._claim_held(record, now):
                raise PurgeInProgress(subject_id)
            if record.purge_started_at is not None:
                logger.warning(
                    f"Taking over stale deletion claim on account {subject_id} "
                    f"(started {record.purge_started_at.isoformat()})"
                )

            claimed = self._accounts.compare_and_set(subject_id, record.version, {"purge_started_at": now})
            if claimed is None:
                raise self._conflict(subject_id, AuditAction.PERMANENT_DELETE)

            entry_id = None
            records_deleted: dict[str, int] = {}
            try:
                entry = self._record(
                    AuditAction.PERMANENT_DELETE,
                    claimed,
                    operator_id,
                    now,
                    reason=claimed.archive_reason,
                    extra={
                        "archived_at": _iso(claimed.archived_at),
                        "scheduled_purge_at": _iso(claimed.scheduled_purge_at),
                        "snapshot": claimed.pre_archival_snapshot,
                    },
                )
                entry_id = entry.id if entry else None

                for store in self._dependent_stores:
                    records_deleted.update(store.delete_for_subject(subject_id))

                if not self._accounts.delete(subject_id, claimed.version):
                    raise RuntimeError("account row changed while deletion was in progress")
            except Exception as e:
                self._release_claim(claimed)
                raise PurgeIncomplete(subject_id, e, entry_id) from e

            records_deleted["accounts"] = 1
            self._notify(AuditAction.PERMANENT_DELETE, subject_id, operator_id, now)

            return DeletionConfirmation(
                subject_id=subject_id,
                deleted_at=now,
                records_deleted=records_deleted,
                audit_entry_id=entry_id,
            )

    # -- internals ------------------------------------------------------------

    def _capture_snapshot(self, record: AccountRecord, now: datetime) -> dict:
        """Summary kept for administrators after dependent data is pruned."""
        counts = {store.name: store.count_for_subject(record.id) for store in self._dependent_stores}
        return {
            "first_name": record.first_name,
            "last_name": record.last_name,
            "email": record.email,
            "role": record.role,
            "archived_at": _iso(now),
            "record_counts": counts,
        }

    def _conflict(self, subject_id: str, action: AuditAction) -> ArchivalError:
        """Work out why a compare-and-swap lost, from the current row."""
        current = self._accounts.get(subject_id)
        if current is None:
            return SubjectNotFound(subject_id)
        if self._claim_held(current, self.now()):
            return PurgeInProgress(subject_id)
        if action == AuditAction.ARCHIVE and current.archived:
            return AlreadyArchived(subject_id)
        if action in (AuditAction.UNARCHIVE, AuditAction.PERMANENT_DELETE) and not current.archived:
            return NotArchived(subject_id)
        return ConcurrentUpdate(subject_id)

    def _claim_held(self, record: AccountRecord, now: datetime) -> bool:
        """True while a deletion claim is younger than the claim timeout."""
        if record.purge_started_at is None:
            return False
        return now - record.purge_started_at < self._purge_claim_timeout

    def _release_claim(self, claimed: AccountRecord) -> None:
        try:
            released = self._accounts.compare_and_set(claimed.id, claimed.version, {"purge_started_at": None})
        except Exception as e:
            logger.error(f"Failed to release deletion claim on account {claimed.id}: {e}")
            return
        if released is None:
            logger.warning(f"Deletion claim on account {claimed.id} was not released (row changed)")

    def _record(
        self,
        action: AuditAction,
        record: AccountRecord,
        operator_id: str,
        at: datetime,
        reason: str | None = None,
        detail: str | None = None,
        extra: dict | None = None,
    ) -> AuditEntry | None:
        metadata = {
            "role": record.role,
            "email": record.email,
            "first_name": record.first_name,
            "last_name": record.last_name,
        }
        metadata.update(extra or {})
        return self._audit.append(
            NewAuditEntry(
                actor_id=operator_id,
                subject_id=record.id,
                action=action,
                created_at=at,
                reason=reason,
                detail=detail,
                event_metadata=metadata,
            )
        )

    def _notify(self, action: AuditAction, subject_id: str, operator_id: str, at: datetime, **details) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(
                LifecycleNotification(
                    action=action.value,
                    subject_id=subject_id,
                    operator_id=operator_id,
                    occurred_at=at,
                    details=details,
                )
            )
        except Exception as e:
            logger.warning(f"Notification for {action.value} on {subject_id} failed: {e}")
