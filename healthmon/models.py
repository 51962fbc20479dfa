# healthmon/models.py
"""
Account archival database models

Tables:
- Account: user accounts (patients, clinicians, administrators) with archival fields
- Measurement: measurement history owned by the ingestion subsystem (deleted on purge)
- ArchivalAuditEntry: immutable audit trail of lifecycle transitions
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)

from healthmon.database import Base


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class UserRole(str, Enum):
    """Closed set of account roles."""
    PATIENT = "patient"
    CLINICIAN = "clinician"
    ADMINISTRATOR = "administrator"


class ArchivalReason(str, Enum):
    """Why an account was archived."""
    CURED = "cured"
    TRANSFERRED = "transferred"
    DECEASED = "deceased"
    TREATMENT_COMPLETED = "treatment-completed"
    INACTIVE = "inactive"
    RESIGNATION = "resignation"
    TEST_ACCOUNT = "test-account"
    REGULATORY = "regulatory"
    OTHER = "other"


class AuditAction(str, Enum):
    """Lifecycle actions recorded in the audit trail."""
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"
    PERMANENT_DELETE = "permanent-delete"
    BULK_ARCHIVE = "bulk-archive"  # Summary entry, one per bulk call


class HistoryEvent(str, Enum):
    """Entry kinds in Account.archival_history."""
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"


# -----------------------------------------------------------------------------
# Account
# -----------------------------------------------------------------------------

class Account(Base):
    """
    User account with archival state.

    Identity and role columns belong to account management; the archival
    lifecycle only writes the archival columns below, always through a
    version-checked update.
    """
    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(String(20), nullable=False)  # UserRole value
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Archival state
    archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime, nullable=True)
    scheduled_purge_at = Column(DateTime, nullable=True)

    # Current archival cycle (kept after unarchive for reference)
    archive_reason = Column(String(32), nullable=True)  # ArchivalReason value
    archive_comment = Column(Text, nullable=True)
    archived_by = Column(String(64), nullable=True)

    # Append-only list of archive / unarchive records
    archival_history = Column(JSON, default=list, nullable=False)

    # Summary captured at archive time
    pre_archival_snapshot = Column(JSON, nullable=True)

    # Set while a permanent deletion holds the record
    purge_started_at = Column(DateTime, nullable=True)

    # Compare-and-swap guard for every lifecycle write
    version = Column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index("ix_accounts_role", "role"),
        Index("ix_accounts_archived", "archived"),
        Index("ix_accounts_archived_at", "archived_at"),
        Index("ix_accounts_scheduled_purge_at", "scheduled_purge_at"),
    )


# -----------------------------------------------------------------------------
# Measurement
# -----------------------------------------------------------------------------

class Measurement(Base):
    """Device measurement history for an account."""
    __tablename__ = "measurements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), ForeignKey("accounts.id"), nullable=False)
    kind = Column(String(32), nullable=False)  # e.g., "heart_rate", "spo2"
    value = Column(Float, nullable=False)
    measured_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_measurements_account_id", "account_id"),
    )


# -----------------------------------------------------------------------------
# ArchivalAuditEntry
# -----------------------------------------------------------------------------

class AuditTrailImmutableError(RuntimeError):
    """Raised when code tries to modify or remove an audit entry."""


class ArchivalAuditEntry(Base):
    """
    Append-only audit trail for account lifecycle transitions.

    No FK to accounts: entries must survive permanent deletion of the subject.
    """
    __tablename__ = "archival_audit_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(64), nullable=False)
    subject_id = Column(String(64), nullable=False)
    action = Column(String(32), nullable=False)  # AuditAction value
    reason = Column(String(64), nullable=True)
    detail = Column(Text, nullable=True)
    event_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_archival_audit_subject_id", "subject_id"),
        Index("ix_archival_audit_actor_id", "actor_id", "created_at"),
        Index("ix_archival_audit_action", "action"),
    )


@event.listens_for(ArchivalAuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditTrailImmutableError(f"Audit entry {target.id} is immutable")


@event.listens_for(ArchivalAuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditTrailImmutableError(f"Audit entry {target.id} cannot be deleted")
