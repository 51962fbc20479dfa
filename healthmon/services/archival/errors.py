# healthmon/services/archival/errors.py
"""
Typed errors for the archival lifecycle.

Every error carries a stable ``code`` so callers (CLI, API layer, bulk
results) can report the exact failure kind without parsing messages.
Precondition failures set ``is_rejection``: nothing was mutated and the
call is safe to retry.
"""

from datetime import datetime, timedelta


class ArchivalError(Exception):
    """Base class for lifecycle errors."""

    code = "archival_error"
    is_rejection = True

    def __init__(self, message: str, subject_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.subject_id = subject_id

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "subject_id": self.subject_id}


class SubjectNotFound(ArchivalError):
    code = "subject_not_found"

    def __init__(self, subject_id: str):
        super().__init__(f"Account '{subject_id}' not found", subject_id)


class OperatorNotFound(ArchivalError):
    code = "operator_not_found"

    def __init__(self, operator_id: str):
        super().__init__(f"Operator '{operator_id}' not found")
        self.operator_id = operator_id


class InvalidReason(ArchivalError):
    code = "invalid_reason"

    def __init__(self, reason, subject_id: str | None = None, message: str | None = None):
        super().__init__(message or f"Invalid archival reason: {reason!r}", subject_id)
        self.reason = reason


class InvalidComment(ArchivalError):
    code = "invalid_comment"

    def __init__(self, length: int, max_length: int, subject_id: str | None = None):
        super().__init__(f"Comment is {length} characters, maximum is {max_length}", subject_id)
        self.length = length
        self.max_length = max_length


class AlreadyArchived(ArchivalError):
    code = "already_archived"

    def __init__(self, subject_id: str):
        super().__init__(f"Account '{subject_id}' is already archived", subject_id)


class NotArchived(ArchivalError):
    code = "not_archived"

    def __init__(self, subject_id: str):
        super().__init__(f"Account '{subject_id}' is not archived", subject_id)


class RetentionWindowNotElapsed(ArchivalError):
    code = "retention_window_not_elapsed"

    def __init__(self, subject_id: str, remaining: timedelta, scheduled_purge_at: datetime):
        super().__init__(
            f"Account '{subject_id}' can be deleted from {scheduled_purge_at.isoformat()} "
            f"({remaining} remaining)",
            subject_id,
        )
        self.remaining = remaining
        self.scheduled_purge_at = scheduled_purge_at

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["remaining_seconds"] = int(self.remaining.total_seconds())
        data["scheduled_purge_at"] = self.scheduled_purge_at.isoformat()
        return data


class PurgeInProgress(ArchivalError):
    code = "purge_in_progress"

    def __init__(self, subject_id: str):
        super().__init__(f"Permanent deletion of account '{subject_id}' is already in progress", subject_id)


class ConcurrentUpdate(ArchivalError):
    """The account changed between the precondition check and the write."""

    code = "concurrent_update"

    def __init__(self, subject_id: str):
        super().__init__(f"Account '{subject_id}' was modified concurrently, retry the operation", subject_id)


class PurgeIncomplete(ArchivalError):
    """
    Permanent deletion started but did not finish.

    The audit entry for the attempt was written and remains. The account
    is left archived and can be deleted again.
    """

    code = "purge_incomplete"
    is_rejection = False

    def __init__(self, subject_id: str, cause: Exception, audit_entry_id: int | None = None):
        super().__init__(f"Permanent deletion of account '{subject_id}' did not complete: {cause}", subject_id)
        self.cause = cause
        self.audit_entry_id = audit_entry_id
