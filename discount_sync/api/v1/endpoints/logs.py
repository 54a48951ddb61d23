from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from discount_sync.database import get_db
from discount_sync.services.audit_cleanup import cleanup_old_log_entries, get_log_entry_stats

log = logging.getLogger(__name__)

router = APIRouter(
    tags=["logs"]
)


@router.post("/cleanup")
def cleanup_logs(
    days_to_keep: Optional[int] = Query(None, ge=1, description="Retention in days, defaults to LOG_RETENTION_DAYS"),
    db: Session = Depends(get_db)
):
    """Apply the log retention policy. Meant to be triggered by an external scheduler."""
    deleted = cleanup_old_log_entries(db, days_to_keep)
    return {"deleted": deleted}


@router.get("/stats")
def log_stats(db: Session = Depends(get_db)):
    """Log storage statistics."""
    return get_log_entry_stats(db)
