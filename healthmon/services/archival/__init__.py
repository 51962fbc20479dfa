# healthmon/services/archival/__init__.py
"""
Account archival and retention lifecycle.

Three states:
- Active: normal account
- Archived: hidden, kept for the 6-month legal retention window
- Deleted: permanently erased with its dependent data (terminal)

Services:
- retention_policy: purge date arithmetic (pure)
- audit_trail: append-only audit entries
- lifecycle_service: archive / unarchive / permanent delete
- bulk_coordinator: non-aborting bulk archive
- statistics: read-only counts
- factory: wiring with injected collaborators
"""

from healthmon.services.archival.audit_trail import AuditEntry, AuditTrailRecorder, NewAuditEntry
from healthmon.services.archival.bulk_coordinator import (
    BulkArchiveFailure,
    BulkArchiveResult,
    BulkArchiveSuccess,
    BulkOperationCoordinator,
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
from healthmon.services.archival.factory import ArchivalServices, create_archival_services
from healthmon.services.archival.lifecycle_service import (
    ArchivalLifecycleService,
    ArchivalResult,
    DeletionConfirmation,
)
from healthmon.services.archival.statistics import ArchivalStatistics, StatisticsReporter
from healthmon.services.archival.store import AccountRecord, AccountStore

__all__ = [
    # Services
    "ArchivalLifecycleService",
    "BulkOperationCoordinator",
    "AuditTrailRecorder",
    "StatisticsReporter",
    "AccountStore",
    "ArchivalServices",
    "create_archival_services",
    # Values
    "AccountRecord",
    "ArchivalResult",
    "DeletionConfirmation",
    "BulkArchiveResult",
    "BulkArchiveSuccess",
    "BulkArchiveFailure",
    "ArchivalStatistics",
    "AuditEntry",
    "NewAuditEntry",
    # Errors
    "ArchivalError",
    "SubjectNotFound",
    "OperatorNotFound",
    "InvalidReason",
    "InvalidComment",
    "AlreadyArchived",
    "NotArchived",
    "RetentionWindowNotElapsed",
    "PurgeInProgress",
    "PurgeIncomplete",
    "ConcurrentUpdate",
]
