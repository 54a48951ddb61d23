"""Audit logging helper: every entry goes to the log_entries table and to the audit log file."""

import logging
import os
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from discount_sync.models.log_entry import LogEntry

log = logging.getLogger(__name__)

# File side of the audit trail; main.py attaches a daily rotating handler when log_directory is set
audit_file_log = logging.getLogger("discount_sync.audit")

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "SUCCESS": logging.INFO,
}


def configure_audit_file_handler(directory: str, retention_days: int = 30) -> TimedRotatingFileHandler:
    """Writes audit entries to <directory>/sync.log, rotated at midnight."""
    os.makedirs(directory, exist_ok=True)
    handler = TimedRotatingFileHandler(
        os.path.join(directory, "sync.log"),
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)-8s - %(message)s'))
    audit_file_log.addHandler(handler)
    return handler


class AuditLogger:
    """
    Dual-write audit sink used by the sync engine.

    Usage:
        audit = AuditLogger(db)
        audit.write("INFO", "SYNC", "Sync started", {"stores": 3}, session_id=execution_id)

    write() never raises: a failing database write is rolled back and logged.
    """

    def __init__(self, db: Session, source: str = "sync_service"):
        self.db = db
        self.source = source

    def write(
        self,
        level: str,
        category: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Optional[LogEntry]:
        level = level.upper()
        session = f" [{session_id}]" if session_id else ""
        audit_file_log.log(LEVELS.get(level, logging.INFO), f"{level} {category}{session}: {message}")

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            level=level,
            category=category,
            message=message,
            details=jsonable_encoder(metadata) if metadata is not None else None,
            session_id=session_id,
            source=self.source,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Failed to persist audit entry '{message}': {e}")
            return None
        return entry
