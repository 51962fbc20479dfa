# healthmon/services/archival/factory.py
"""
Wiring for the archival services.

Collaborators are passed in explicitly; nothing here is a global singleton,
so tests can build the whole stack around an in-memory database and a fake
clock.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from healthmon.config import get_settings
from healthmon.services.archival.audit_trail import AuditTrailRecorder
from healthmon.services.archival.bulk_coordinator import BulkOperationCoordinator
from healthmon.services.archival.collaborators import (
    Clock,
    LoggingNotificationSink,
    MeasurementHistoryStore,
    NotificationSink,
    NullNotificationSink,
)
from healthmon.services.archival.lifecycle_service import ArchivalLifecycleService
from healthmon.services.archival.retention_policy import utcnow
from healthmon.services.archival.statistics import StatisticsReporter
from healthmon.services.archival.store import AccountStore, SessionFactory

logger = logging.getLogger(__name__)


@dataclass
class ArchivalServices:
    accounts: AccountStore
    audit: AuditTrailRecorder
    lifecycle: ArchivalLifecycleService
    bulk: BulkOperationCoordinator
    statistics: StatisticsReporter


def create_archival_services(
    session_factory: SessionFactory,
    clock: Clock = utcnow,
    notifier: NotificationSink | None = None,
    max_bulk_subjects: int | None = None,
    max_bulk_workers: int | None = None,
    purge_claim_timeout: timedelta | None = None,
) -> ArchivalServices:
    """
    Build the archival stack around one session factory.

    Unset options fall back to application settings.
    """
    settings = get_settings()

    if notifier is None:
        notifier = LoggingNotificationSink() if settings.NOTIFICATIONS_ENABLED else NullNotificationSink()

    accounts = AccountStore(session_factory)
    audit = AuditTrailRecorder(session_factory)
    lifecycle = ArchivalLifecycleService(
        accounts=accounts,
        audit=audit,
        dependent_stores=[MeasurementHistoryStore(session_factory)],
        notifier=notifier,
        clock=clock,
        purge_claim_timeout=purge_claim_timeout or timedelta(minutes=settings.PURGE_CLAIM_TIMEOUT_MINUTES),
    )
    bulk = BulkOperationCoordinator(
        lifecycle=lifecycle,
        audit=audit,
        max_subjects=max_bulk_subjects or settings.BULK_ARCHIVE_MAX_SUBJECTS,
        max_workers=max_bulk_workers or settings.BULK_ARCHIVE_MAX_WORKERS,
    )
    statistics = StatisticsReporter(session_factory, audit, clock=clock)

    logger.debug(f"Archival services initialized (notifier={type(notifier).__name__})")
    return ArchivalServices(
        accounts=accounts,
        audit=audit,
        lifecycle=lifecycle,
        bulk=bulk,
        statistics=statistics,
    )
