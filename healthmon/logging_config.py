"""
Structured JSON logging for lifecycle observability.

Provides structured logging with operator/subject context for correlating
the log lines of one lifecycle operation, plus a context manager that
records the outcome and duration of each transition.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime

# Context variables for operation correlation
operator_id_var: ContextVar[str | None] = ContextVar("operator_id", default=None)
subject_id_var: ContextVar[str | None] = ContextVar("subject_id", default=None)
action_var: ContextVar[str | None] = ContextVar("action", default=None)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "operator_id": "...", ...}
    """

    EXTRA_FIELDS = (
        "event",
        "duration_ms",
        "error_code",
        "audit_entry_id",
        "scheduled_purge_at",
        "items_total",
        "items_succeeded",
        "items_failed",
        "batch_id",
        "records_deleted",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Explicit extras win over context
        for key, var in (
            ("operator_id", operator_id_var),
            ("subject_id", subject_id_var),
            ("action", action_var),
        ):
            value = getattr(record, key, None) or var.get()
            if value:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure root logging.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def log_lifecycle_operation(action: str, subject_id: str, operator_id: str):
    """
    Context manager for one lifecycle transition.

    Logs start and end with duration. Precondition rejections (errors with
    ``is_rejection`` set) are logged at INFO as ``*_rejected``; anything else
    is logged at ERROR as ``*_failed``. Exceptions are always re-raised.

    Usage:
        with log_lifecycle_operation("archive", subject_id, operator_id):
            # ... transition logic ...
    """
    operator_token = operator_id_var.set(operator_id)
    subject_token = subject_id_var.set(subject_id)
    action_token = action_var.set(action)

    start_time = time.time()
    logger = logging.getLogger("healthmon.lifecycle")

    logger.debug(f"{action} started for {subject_id}", extra={"event": f"{action}_start"})

    try:
        yield
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"{action} completed for {subject_id} by {operator_id}",
            extra={"event": f"{action}_complete", "duration_ms": duration_ms},
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        code = getattr(e, "code", None)
        if code and getattr(e, "is_rejection", False):
            logger.info(
                f"{action} rejected for {subject_id}: {e}",
                extra={"event": f"{action}_rejected", "error_code": code, "duration_ms": duration_ms},
            )
        else:
            logger.error(
                f"{action} failed for {subject_id}: {e}",
                extra={"event": f"{action}_failed", "error_code": code, "duration_ms": duration_ms},
                exc_info=True,
            )
        raise
    finally:
        operator_id_var.reset(operator_token)
        subject_id_var.reset(subject_token)
        action_var.reset(action_token)

