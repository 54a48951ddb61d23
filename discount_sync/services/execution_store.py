import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from discount_sync.config import settings
from discount_sync.models.sync_execution import SyncExecution
from discount_sync.schemas.sync import ExecutionStatus, SyncExecutionResult
from discount_sync.services.errors import SyncAlreadyRunningError

log = logging.getLogger(__name__)

TERMINAL_STATUSES = {ExecutionStatus.SUCCESS.value, ExecutionStatus.FAILED.value, ExecutionStatus.CANCELLED.value}


class ExecutionStore:
    """
    Execution history, doubling as the active-run guard.

    A partial unique index allows one RUNNING row per run_key, so inserting
    the RUNNING row is the compare-and-set that admits a run.
    """

    def __init__(self, db: Session, stale_after_minutes: Optional[int] = None):
        self.db = db
        self.stale_after_minutes = stale_after_minutes if stale_after_minutes is not None else settings.stale_run_minutes

    def _running(self, run_key: str) -> List[SyncExecution]:
        return self.db.query(SyncExecution).filter(
            SyncExecution.run_key == run_key,
            SyncExecution.status == ExecutionStatus.RUNNING.value,
        ).all()

    def _release(self, run_key: str, force: bool) -> None:
        """Marks abandoned (or, when forced, all) RUNNING rows for the key as FAILED."""
        now = datetime.now(timezone.utc)
        query = self.db.query(SyncExecution).filter(
            SyncExecution.run_key == run_key,
            SyncExecution.status == ExecutionStatus.RUNNING.value,
        )
        if not force:
            cutoff = now - timedelta(minutes=self.stale_after_minutes)
            query = query.filter(SyncExecution.started_at < cutoff)

        released = query.all()
        for row in released:
            reason = "Superseded by a forced run" if force else (
                f"Abandoned: still RUNNING after {self.stale_after_minutes} minutes"
            )
            row.status = ExecutionStatus.FAILED.value
            row.finished_at = now
            row.error_details = {"type": "RunReleased", "message": reason}
            log.warning(f"Execution {row.id} for '{run_key}' marked FAILED: {reason}")
        if released:
            self.db.commit()

    def create(self, result: SyncExecutionResult, run_key: Optional[str] = None, force: bool = False,
               execution_logs: Optional[List[Dict[str, Any]]] = None) -> SyncExecution:
        """
        Persists a new execution. A RUNNING execution with a run_key goes through
        the guard and raises SyncAlreadyRunningError when the key is taken.
        """
        guarded = run_key is not None and result.status == ExecutionStatus.RUNNING
        if guarded:
            self._release(run_key, force)

        row = SyncExecution(
            id=result.execution_id,
            sync_config_id=result.sync_config_id,
            status=result.status.value,
            started_at=result.started_at,
            finished_at=result.finished_at,
            stores_processed=[s.model_dump(mode="json") for s in result.stores_processed],
            summary=result.summary.model_dump(mode="json"),
            comparison_results=(
                [c.model_dump(mode="json") for c in result.comparison_results]
                if result.comparison_results is not None else None
            ),
            error_details=result.error_details,
            execution_logs=execution_logs,
            run_key=run_key,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not guarded:
                raise
            running = self._running(run_key)
            raise SyncAlreadyRunningError(run_key, running[0].id if running else None) from e

        log.debug(f"Execution {row.id} recorded with status {row.status} (run key: {run_key})")
        return row

    def update(self, execution_id: str, patch: Dict[str, Any]) -> SyncExecution:
        """Applies the terminal patch. The first terminal write wins; later ones are ignored."""
        row = self.get(execution_id)
        if row is None:
            raise KeyError(f"Execution {execution_id} not found")
        if row.status in TERMINAL_STATUSES:
            log.warning(f"Execution {execution_id} already finished as {row.status}, update ignored")
            return row

        for field, value in patch.items():
            setattr(row, field, value)
        self.db.commit()
        return row

    def get(self, execution_id: str) -> Optional[SyncExecution]:
        return self.db.query(SyncExecution).filter(SyncExecution.id == execution_id).first()

    def _filtered(self, status: Optional[str] = None, sync_config_id: Optional[int] = None):
        query = self.db.query(SyncExecution)
        if status:
            query = query.filter(SyncExecution.status == status)
        if sync_config_id is not None:
            query = query.filter(SyncExecution.sync_config_id == sync_config_id)
        return query

    def list_recent(self, limit: int = 20, status: Optional[str] = None, sync_config_id: Optional[int] = None) -> List[SyncExecution]:
        return self._filtered(status, sync_config_id).order_by(SyncExecution.started_at.desc()).limit(limit).all()

    def count(self, status: Optional[str] = None, sync_config_id: Optional[int] = None) -> int:
        return self._filtered(status, sync_config_id).count()

    @staticmethod
    def to_result(row: SyncExecution) -> SyncExecutionResult:
        return SyncExecutionResult(
            execution_id=row.id,
            sync_config_id=row.sync_config_id,
            status=row.status,
            started_at=row.started_at,
            finished_at=row.finished_at,
            stores_processed=row.stores_processed or [],
            summary=row.summary or {},
            comparison_results=row.comparison_results,
            error_details=row.error_details,
        )
