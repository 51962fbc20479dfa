# healthmon/services/archival/collaborators.py
"""
Collaborator interfaces used by the lifecycle service.

- DependentDataStore: records owned by other subsystems, keyed by account id
- NotificationSink: fire-and-forget notice of a state change
- Clock: zero-argument callable returning naive UTC ``datetime``
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from healthmon.models import Measurement
from healthmon.services.archival.store import SessionFactory

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# -----------------------------------------------------------------------------
# Dependent data
# -----------------------------------------------------------------------------


class DependentDataStore(ABC):
    """Data owned by other subsystems that must go when an account is erased."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def count_for_subject(self, subject_id: str) -> int:
        """Number of records held for the subject (used in the archive snapshot)."""
        pass

    @abstractmethod
    def delete_for_subject(self, subject_id: str) -> dict[str, int]:
        """Delete every record held for the subject. Returns counts by table."""
        pass


class MeasurementHistoryStore(DependentDataStore):
    """Measurement history in the shared database."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    @property
    def name(self) -> str:
        return "measurements"

    def count_for_subject(self, subject_id: str) -> int:
        db = self._session_factory()
        try:
            return db.query(Measurement).filter(Measurement.account_id == subject_id).count()
        finally:
            db.close()

    def delete_for_subject(self, subject_id: str) -> dict[str, int]:
        db = self._session_factory()
        try:
            deleted = (
                db.query(Measurement)
                .filter(Measurement.account_id == subject_id)
                .delete(synchronize_session=False)
            )
            db.commit()
            logger.debug(f"Deleted {deleted} measurements for account {subject_id}")
            return {"measurements": deleted}
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


# -----------------------------------------------------------------------------
# Notifications
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LifecycleNotification:
    """A state change worth telling the subject and/or staff about."""
    action: str
    subject_id: str
    operator_id: str
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


class NotificationSink(ABC):
    """Delivery is best effort; the lifecycle service swallows failures."""

    @abstractmethod
    def notify(self, notification: LifecycleNotification) -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the log for the delivery subsystem to pick up."""

    def __init__(self, logger_name: str = "healthmon.notifications"):
        self._logger = logging.getLogger(logger_name)

    def notify(self, notification: LifecycleNotification) -> None:
        self._logger.info(
            f"Account {notification.subject_id}: {notification.action} by {notification.operator_id}",
            extra={
                "event": "lifecycle_notification",
                "subject_id": notification.subject_id,
                "operator_id": notification.operator_id,
                "action": notification.action,
            },
        )


class NullNotificationSink(NotificationSink):
    """Drops every notification (notifications disabled)."""

    def notify(self, notification: LifecycleNotification) -> None:
        return None
