from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from discount_sync.database import get_db
from discount_sync.schemas.sync import (
    ComparisonResult,
    ExecutionStatus,
    PaginatedExecutions,
    SyncExecutionResult,
    SyncRequest,
)
from discount_sync.services.errors import SyncAlreadyRunningError, SyncSetupError
from discount_sync.services.execution_store import ExecutionStore
from discount_sync.services.sync_service import SyncService

log = logging.getLogger(__name__)
router = APIRouter()


def get_sync_service(db: Session = Depends(get_db)) -> SyncService:
    return SyncService(db)


@router.post("/run", response_model=SyncExecutionResult)
async def run_sync(
    request: SyncRequest,
    service: SyncService = Depends(get_sync_service),
):
    """Run a discount sync now. Store failures are reported in the body, not as HTTP errors."""
    try:
        result = await service.run_sync(request)
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    log.info(f"Sync {result.execution_id} finished with status {result.status.value}")
    return result


@router.post("/compare", response_model=List[ComparisonResult])
async def run_compare_only(
    request: SyncRequest,
    service: SyncService = Depends(get_sync_service),
):
    """Compare cached products against CresceVendas without pushing anything."""
    try:
        return await service.run_compare_only(request)
    except SyncSetupError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/executions", response_model=PaginatedExecutions)
def list_executions(
    limit: int = Query(20, ge=1, le=200),
    status_filter: Optional[ExecutionStatus] = Query(None, alias="status"),
    sync_config_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    store = ExecutionStore(db)
    status_value = status_filter.value if status_filter else None
    rows = store.list_recent(limit=limit, status=status_value, sync_config_id=sync_config_id)
    return PaginatedExecutions(
        data=[ExecutionStore.to_result(row) for row in rows],
        total=store.count(status=status_value, sync_config_id=sync_config_id),
    )


@router.get("/executions/{execution_id}", response_model=SyncExecutionResult)
def get_execution(execution_id: str, db: Session = Depends(get_db)):
    row = ExecutionStore(db).get(execution_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Execution not found")
    return ExecutionStore.to_result(row)
