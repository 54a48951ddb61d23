from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class StoreStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class DifferenceType(str, Enum):
    MISSING = "MISSING"
    PRICE_DIFF = "PRICE_DIFF"
    STATUS_DIFF = "STATUS_DIFF"


class SyncOptions(BaseModel):
    force_sync: bool = False  # Take over a RUNNING run with the same key instead of refusing
    skip_comparison: bool = False


class SyncRequest(BaseModel):
    sync_config_id: Optional[int] = None  # Missing fields below are filled from the saved configuration
    source_integration_id: Optional[int] = None
    target_integration_id: Optional[int] = None
    notification_channel_id: Optional[int] = None
    store_ids: Optional[List[int]] = None  # None or empty means all active stores
    options: SyncOptions = Field(default_factory=SyncOptions)


class StoreResult(BaseModel):
    store_id: int
    store_name: str
    products_synced: int = 0
    status: StoreStatus
    error: Optional[str] = None
    execution_time: int = 0  # ms


class Summary(BaseModel):
    total_stores: int = 0
    successful_stores: int = 0
    failed_stores: int = 0
    total_products: int = 0
    execution_time: int = 0  # ms

    @classmethod
    def from_results(cls, results: List[StoreResult], execution_time: int) -> "Summary":
        return cls(
            total_stores=len(results),
            successful_stores=sum(1 for r in results if r.status == StoreStatus.SUCCESS),
            failed_stores=sum(1 for r in results if r.status == StoreStatus.FAILED),
            total_products=sum(r.products_synced for r in results),
            execution_time=execution_time,
        )


class ProductSnapshot(BaseModel):
    price: float
    final_price: float
    active: bool = True


class ProductComparison(BaseModel):
    product_code: str
    source_data: Optional[ProductSnapshot] = None
    target_data: Optional[ProductSnapshot] = None
    difference_type: DifferenceType


class ComparisonDetails(BaseModel):
    missing: List[ProductComparison] = []
    price_diff: List[ProductComparison] = []
    status_diff: List[ProductComparison] = []


class ComparisonResult(BaseModel):
    store_id: int
    store_name: str
    differences_found: int = 0
    missing_products: int = 0
    price_differences: int = 0
    status_differences: int = 0
    details: ComparisonDetails = Field(default_factory=ComparisonDetails)
    error: Optional[str] = None  # Set when reconciliation for this store could not run


class SyncExecutionResult(BaseModel):
    execution_id: str
    sync_config_id: Optional[int] = None
    status: ExecutionStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    stores_processed: List[StoreResult] = []
    summary: Summary = Field(default_factory=Summary)
    comparison_results: Optional[List[ComparisonResult]] = None
    error_details: Optional[dict] = None


class PaginatedExecutions(BaseModel):
    data: List[SyncExecutionResult]
    total: int
