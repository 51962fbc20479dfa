# healthmon/services/archival/bulk_coordinator.py
"""
Bulk archival.

Runs ArchivalLifecycleService.archive once per subject. Items are
independent: a failure on one subject never aborts or rolls back the
others. The result lists every subject's outcome, and one summary audit
entry records the batch.

Only archive is batched. Unarchive is rare, and permanent deletion is
never batched.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from healthmon.constants import AuditDefaults
from healthmon.models import ArchivalReason, AuditAction
from healthmon.services.archival.audit_trail import AuditTrailRecorder, NewAuditEntry
from healthmon.services.archival.errors import ArchivalError
from healthmon.services.archival.lifecycle_service import (
    ArchivalLifecycleService,
    parse_reason,
    validate_comment,
)

logger = logging.getLogger(__name__)


@dataclass
class BulkArchiveSuccess:
    subject_id: str
    scheduled_purge_at: datetime


@dataclass
class BulkArchiveFailure:
    subject_id: str
    error_code: str
    message: str


@dataclass
class BulkArchiveResult:
    """Result of a bulk archive operation."""
    batch_id: str
    total: int = 0
    succeeded: list[BulkArchiveSuccess] = field(default_factory=list)
    failed: list[BulkArchiveFailure] = field(default_factory=list)
    audit_entry_id: int | None = None

    @property
    def success(self) -> bool:
        return not self.failed


class BulkOperationCoordinator:
    """Drives the lifecycle service over a bounded set of subjects."""

    def __init__(
        self,
        lifecycle: ArchivalLifecycleService,
        audit: AuditTrailRecorder,
        max_subjects: int = 500,
        max_workers: int = 1,
    ):
        self._lifecycle = lifecycle
        self._audit = audit
        self._max_subjects = max_subjects
        self._max_workers = max_workers

    def bulk_archive(
        self,
        subject_ids: Sequence[str],
        operator_id: str,
        reason: ArchivalReason | str,
        comment: str | None = "",
    ) -> BulkArchiveResult:
        """
        Archive each subject independently.

        Batch-wide inputs (reason, comment, operator, batch size) are checked
        once up front; a bad batch raises before any subject is touched.

        Args:
            subject_ids: Accounts to archive, reported back in this order
            operator_id: Who initiated the batch
            reason: ArchivalReason applied to every subject
            comment: Optional comment applied to every subject

        Returns:
            BulkArchiveResult with one outcome per subject id
        """
        archival_reason = parse_reason(reason)
        comment = validate_comment(comment)
        self._lifecycle.require_operator(operator_id)

        subject_ids = list(subject_ids)
        if len(subject_ids) > self._max_subjects:
            raise ValueError(
                f"Bulk archive accepts at most {self._max_subjects} subjects, got {len(subject_ids)}"
            )

        batch_id = f"{AuditDefaults.BULK_SUBJECT_PREFIX}{uuid.uuid4()}"
        result = BulkArchiveResult(batch_id=batch_id, total=len(subject_ids))

        logger.info(
            f"Bulk archive {batch_id}: {len(subject_ids)} subjects by {operator_id}",
            extra={"event": "bulk_archive_start", "batch_id": batch_id, "items_total": len(subject_ids)},
        )

        if self._max_workers > 1 and len(subject_ids) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                outcomes = list(
                    executor.map(
                        lambda sid: self._archive_one(sid, operator_id, archival_reason, comment),
                        subject_ids,
                    )
                )
        else:
            outcomes = [self._archive_one(sid, operator_id, archival_reason, comment) for sid in subject_ids]

        for outcome in outcomes:
            if isinstance(outcome, BulkArchiveSuccess):
                result.succeeded.append(outcome)
            else:
                result.failed.append(outcome)

        entry = self._audit.append(
            NewAuditEntry(
                actor_id=operator_id,
                subject_id=batch_id,
                action=AuditAction.BULK_ARCHIVE,
                created_at=self._lifecycle.now(),
                reason=archival_reason.value,
                detail=comment or None,
                event_metadata={
                    "total": result.total,
                    "succeeded": len(result.succeeded),
                    "failed": len(result.failed),
                    "succeeded_ids": [s.subject_id for s in result.succeeded],
                    "failures": {f.subject_id: f.error_code for f in result.failed},
                },
            )
        )
        result.audit_entry_id = entry.id if entry else None

        logger.info(
            f"Bulk archive {batch_id} complete: {len(result.succeeded)} archived, {len(result.failed)} failed",
            extra={
                "event": "bulk_archive_complete",
                "batch_id": batch_id,
                "items_total": result.total,
                "items_succeeded": len(result.succeeded),
                "items_failed": len(result.failed),
            },
        )
        return result

    def _archive_one(
        self,
        subject_id: str,
        operator_id: str,
        reason: ArchivalReason,
        comment: str,
    ) -> BulkArchiveSuccess | BulkArchiveFailure:
        try:
            archived = self._lifecycle.archive(subject_id, operator_id, reason, comment)
            return BulkArchiveSuccess(subject_id=subject_id, scheduled_purge_at=archived.scheduled_purge_at)
        except ArchivalError as e:
            return BulkArchiveFailure(subject_id=subject_id, error_code=e.code, message=e.message)
        except Exception as e:
            logger.error(f"Error archiving account {subject_id} in bulk: {e}", exc_info=True)
            return BulkArchiveFailure(subject_id=subject_id, error_code="internal_error", message=str(e))
