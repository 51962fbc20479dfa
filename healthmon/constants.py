# healthmon/constants.py
"""
Centralized magic constants organized by domain.

All hardcoded numbers/strings used by the archival lifecycle should be
defined here with documentation explaining their purpose.
"""


class RetentionPolicy:
    """Legal retention rules for archived accounts."""

    RETENTION_MONTHS = 6                # Archived accounts are kept this long before erasure


class ArchivalLimits:
    """Validation limits applied at the service boundary."""

    COMMENT_MAX_CHARS = 500             # Archive comment / unarchive reason
    PURGE_LISTING_DEFAULT_LIMIT = 100   # Default rows for find_purge_eligible
    PURGE_CLAIM_TIMEOUT_MINUTES = 60    # A deletion claim older than this may be taken over


class AuditDefaults:
    """Audit trail conventions."""

    BULK_SUBJECT_PREFIX = "bulk:"       # Subject id prefix for bulk summary entries
    SYSTEM_LOGGER = "healthmon.audit"   # Side channel for audit write failures
