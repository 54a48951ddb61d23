"""Log entry cleanup service for managing retention policies."""

from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from sqlalchemy import and_
import logging

from discount_sync.config import settings
from discount_sync.models.log_entry import LogEntry

log = logging.getLogger(__name__)

# Run-level audit trail, kept regardless of age
KEPT_CATEGORIES = ("SYNC",)


def cleanup_old_log_entries(db: Session, days_to_keep: int = None) -> int:
    """
    Delete log entries older than the retention window.
    Entries in KEPT_CATEGORIES (the sync audit trail) are never deleted.

    Args:
        db: Database session
        days_to_keep: Retention in days (default: settings.log_retention_days)

    Returns:
        Number of log entries deleted
    """
    days_to_keep = settings.log_retention_days if days_to_keep is None else days_to_keep
    cutoff_date = datetime.now(timezone.utc) - timedelta(days=days_to_keep)

    deleted = db.query(LogEntry).filter(
        and_(
            LogEntry.timestamp < cutoff_date,
            LogEntry.category.notin_(KEPT_CATEGORIES),
        )
    ).delete(synchronize_session=False)

    db.commit()

    log.info(f"Log cleanup: Deleted {deleted} entries older than {days_to_keep} days (cutoff: {cutoff_date.isoformat()})")

    return deleted


def get_log_entry_stats(db: Session) -> dict:
    """
    Get statistics about log entry storage.

    Returns:
        Dictionary with counts per kept/other category and oldest entries
    """
    total = db.query(LogEntry).count()
    kept = db.query(LogEntry).filter(LogEntry.category.in_(KEPT_CATEGORIES)).count()

    oldest = db.query(LogEntry).order_by(LogEntry.timestamp.asc()).first()
    oldest_other = db.query(LogEntry).filter(
        LogEntry.category.notin_(KEPT_CATEGORIES)
    ).order_by(LogEntry.timestamp.asc()).first()

    return {
        "total_entries": total,
        "sync_entries": kept,
        "other_entries": total - kept,
        "oldest_entry": oldest.timestamp.isoformat() if oldest else None,
        "oldest_other_entry": oldest_other.timestamp.isoformat() if oldest_other else None,
    }
