import asyncio
import hashlib
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from discount_sync.config import settings
from discount_sync.connectors.base import DiscountWindow, SourceConnector, TargetConnector, TargetProduct
from discount_sync.connectors.discount_window import compute_discount_window
from discount_sync.models.store import Store
from discount_sync.models.sync_configuration import SyncConfiguration
from discount_sync.notifications.base import EventKind, NotificationEvent
from discount_sync.notifications.dispatcher import NotificationDispatcher
from discount_sync.schemas.sync import (
    ComparisonResult,
    ExecutionStatus,
    StoreResult,
    StoreStatus,
    Summary,
    SyncExecutionResult,
    SyncOptions,
    SyncRequest,
)
from discount_sync.services.comparison import ComparisonEngine
from discount_sync.services.errors import (
    NoStoresToSyncError,
    SyncAlreadyRunningError,
    SyncConfigurationInactiveError,
    SyncConfigurationNotFoundError,
    SyncSetupError,
)
from discount_sync.services.execution_store import ExecutionStore
from discount_sync.services.integration_registry import IntegrationRegistry
from discount_sync.services.notification_channels import NotificationChannelResolver
from discount_sync.services.product_cache import ProductCache
from discount_sync.utils.audit_logger import AuditLogger

log = logging.getLogger(__name__)

SKIPPED_REASON = "No discounted products found at source"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SyncService:
    """
    Orchestrates discount synchronization from the source point-of-sale to the
    target platform, store by store, followed by an optional reconciliation pass.

    Stores are processed sequentially. A failing store is recorded and the loop
    moves on; only setup problems (integrations, stores) end a run early, and
    those are recorded as a FAILED execution rather than raised.
    """

    def __init__(
        self,
        db: Session,
        registry: Optional[IntegrationRegistry] = None,
        channels: Optional[NotificationChannelResolver] = None,
        comparison_engine: Optional[ComparisonEngine] = None,
        product_cache: Optional[ProductCache] = None,
        execution_store: Optional[ExecutionStore] = None,
        audit: Optional[AuditLogger] = None,
        window_factory: Callable[[], DiscountWindow] = compute_discount_window,
        store_timeout: Optional[float] = None,
    ):
        self.db = db
        self.registry = registry or IntegrationRegistry(db)
        self.channels = channels or NotificationChannelResolver(db)
        self.comparison_engine = comparison_engine or ComparisonEngine()
        self.cache = product_cache or ProductCache(db)
        self.executions = execution_store or ExecutionStore(db)
        self.audit = audit or AuditLogger(db)
        self.window_factory = window_factory
        self.store_timeout = settings.store_timeout_seconds if store_timeout is None else store_timeout

    def _apply_configuration(self, request: SyncRequest) -> Tuple[SyncRequest, Optional[str], bool]:
        """Fills request gaps from the saved sync configuration, if one is referenced."""
        if request.sync_config_id is None:
            return request, None, True

        config = self.db.query(SyncConfiguration).filter(
            SyncConfiguration.id == request.sync_config_id,
            SyncConfiguration.deleted_at.is_(None),
        ).first()
        if not config:
            raise SyncConfigurationNotFoundError(f"Sync configuration {request.sync_config_id} not found")
        if not config.active:
            raise SyncConfigurationInactiveError(f"Sync configuration '{config.name}' is inactive")

        options = config.options or {}
        merged = request.model_copy(update={
            "source_integration_id": request.source_integration_id or config.source_integration_id,
            "target_integration_id": request.target_integration_id or config.target_integration_id,
            "notification_channel_id": request.notification_channel_id or config.notification_channel_id,
            "store_ids": request.store_ids or config.store_ids or None,
            "options": SyncOptions(
                force_sync=request.options.force_sync,
                skip_comparison=request.options.skip_comparison or bool(options.get("skip_comparison", False)),
            ),
        })
        return merged, config.name, bool(options.get("send_notifications", True))

    def resolve_stores(self, store_ids: Optional[List[int]]) -> List[Store]:
        query = self.db.query(Store).filter(Store.active == True, Store.deleted_at.is_(None))
        if store_ids:
            query = query.filter(Store.id.in_(store_ids))
        stores = query.order_by(Store.id).all()

        if store_ids:
            ignored = sorted(set(store_ids) - {s.id for s in stores})
            if ignored:
                log.warning(f"Ignoring unknown, inactive or deleted stores: {ignored}")
        if not stores:
            scope = f" among requested ids {sorted(set(store_ids))}" if store_ids else ""
            raise NoStoresToSyncError(f"No active stores to synchronize{scope}")
        return stores

    @staticmethod
    def run_key(request: SyncRequest, stores: List[Store]) -> str:
        """Identity of a run for the active-run guard."""
        if request.sync_config_id is not None:
            return f"config:{request.sync_config_id}"
        # Digest keeps the key within the column for any number of stores
        ids = ",".join(str(store_id) for store_id in sorted({s.id for s in stores}))
        return "stores:" + hashlib.sha256(ids.encode("utf-8")).hexdigest()

    @staticmethod
    def overall_status(summary: Summary) -> ExecutionStatus:
        """A run fails as soon as one store failed; skipped stores do not count."""
        if summary.failed_stores > 0:
            return ExecutionStatus.FAILED
        return ExecutionStatus.SUCCESS

    def _log(self, logs: List[Dict[str, Any]], level: str, message: str, execution_id: str,
             metadata: Optional[Dict[str, Any]] = None, category: str = "SYNC") -> None:
        logs.append({"timestamp": _now().isoformat(), "level": level, "message": message})
        self.audit.write(level, category, message, metadata, session_id=execution_id)

    async def _process_store(self, store: Store, source: SourceConnector, target: TargetConnector) -> Optional[int]:
        """Source fetch, cache replace, read back, push. None means nothing to sync."""
        identifier = source.store_identifier(store)
        products = await source.fetch_discounted_products(identifier)
        if not products:
            return None

        window = self.window_factory()
        self.cache.replace(store.id, products, window)

        cached = self.cache.read_active(store.id)
        lines = [
            TargetProduct(code=p.code, price=p.price, final_price=p.final_price, limit=p.limit)
            for p in cached
        ]
        ack = await target.push(store.registration, lines, window)
        return ack.products_sent

    async def _sync_store(self, store: Store, source: SourceConnector, target: TargetConnector,
                          execution_id: str, logs: List[Dict[str, Any]]) -> StoreResult:
        started = time.monotonic()
        log.info(f"Syncing store {store.id} ('{store.name}', {store.registration})")
        try:
            work = self._process_store(store, source, target)
            if self.store_timeout:
                synced = await asyncio.wait_for(work, timeout=self.store_timeout)
            else:
                synced = await work
        except asyncio.TimeoutError:
            error = f"Store processing timed out after {self.store_timeout:g}s"
            self._log(logs, "ERROR", f"Store '{store.name}' failed: {error}", execution_id, {"store_id": store.id})
            return StoreResult(store_id=store.id, store_name=store.name, status=StoreStatus.FAILED,
                               error=error, execution_time=_elapsed_ms(started))
        except Exception as e:
            error = str(e) or e.__class__.__name__
            log.error(f"Store {store.id} ('{store.name}') failed: {error}", exc_info=True)
            self._log(logs, "ERROR", f"Store '{store.name}' failed: {error}", execution_id, {"store_id": store.id})
            return StoreResult(store_id=store.id, store_name=store.name, status=StoreStatus.FAILED,
                               error=error, execution_time=_elapsed_ms(started))

        if synced is None:
            self._log(logs, "INFO", f"Store '{store.name}' skipped: {SKIPPED_REASON}", execution_id, {"store_id": store.id})
            return StoreResult(store_id=store.id, store_name=store.name, status=StoreStatus.SKIPPED,
                               error=SKIPPED_REASON, execution_time=_elapsed_ms(started))

        self._log(logs, "SUCCESS", f"Store '{store.name}' synced: {synced} products", execution_id,
                  {"store_id": store.id, "products_synced": synced})
        return StoreResult(store_id=store.id, store_name=store.name, products_synced=synced,
                           status=StoreStatus.SUCCESS, execution_time=_elapsed_ms(started))

    async def compare_store(self, store: Store, target: TargetConnector) -> ComparisonResult:
        """Cached snapshot (what was pushed) against what the target reports active."""
        try:
            reference = self.cache.read_active(store.id)
            active = await target.fetch_active(store.registration)
            return self.comparison_engine.compare(reference, active, store.id, store.name)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            log.error(f"Comparison failed for store {store.id} ('{store.name}'): {error}")
            return self.comparison_engine.failed_result(store.id, store.name, error)

    async def _record_setup_failure(self, execution_id: str, request: SyncRequest, started_at: datetime,
                                    started: float, error: SyncSetupError, dispatcher: NotificationDispatcher,
                                    config_name: Optional[str], logs: List[Dict[str, Any]]) -> SyncExecutionResult:
        self._log(logs, "ERROR", f"Sync aborted before processing stores: {error}", execution_id,
                  {"error_type": type(error).__name__})
        error_details = {"type": type(error).__name__, "message": str(error)}
        sync_config_id = request.sync_config_id
        if isinstance(error, SyncConfigurationNotFoundError):
            # No row to reference; keep the requested id in the error instead
            error_details["sync_config_id"] = sync_config_id
            sync_config_id = None

        result = SyncExecutionResult(
            execution_id=execution_id,
            sync_config_id=sync_config_id,
            status=ExecutionStatus.FAILED,
            started_at=started_at,
            finished_at=_now(),
            stores_processed=[],
            summary=Summary(execution_time=_elapsed_ms(started)),
            error_details=error_details,
        )
        self.executions.create(result, execution_logs=logs)

        await dispatcher.notify(NotificationEvent(
            kind=EventKind.SYNC_FAILED,
            execution_id=execution_id,
            config_name=config_name,
            error=str(error),
        ))
        return result

    def _mark_failed(self, execution_id: str, error: Exception, logs: List[Dict[str, Any]]) -> None:
        """Closes a RUNNING execution hit by an unexpected error so it does not hold the guard."""
        log.error(f"Sync {execution_id} aborted by an unexpected error: {error}", exc_info=True)
        self.db.rollback()
        try:
            self.executions.update(execution_id, {
                "status": ExecutionStatus.FAILED.value,
                "finished_at": _now(),
                "error_details": {"type": type(error).__name__, "message": str(error)},
                "execution_logs": logs,
            })
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"Could not mark execution {execution_id} as FAILED: {e}")

    async def run_sync(self, request: SyncRequest) -> SyncExecutionResult:
        """
        Runs one synchronization. Store and setup failures come back as a FAILED result.
        SyncAlreadyRunningError is raised when the guard refuses the run; any other error
        escaping after the run started marks the execution FAILED and is re-raised.
        """
        execution_id = str(uuid.uuid4())
        started_at = _now()
        started = time.monotonic()
        logs: List[Dict[str, Any]] = []
        log.info(f"Sync {execution_id} requested: {request.model_dump()}")

        dispatcher = NotificationDispatcher(None)
        config_name = None
        source: Optional[SourceConnector] = None
        target: Optional[TargetConnector] = None

        try:
            try:
                request, config_name, send_notifications = self._apply_configuration(request)
                dispatcher = self.channels.dispatcher_for(request.notification_channel_id, enabled=send_notifications)
                source = self.registry.source_connector(request.source_integration_id)
                target = self.registry.target_connector(request.target_integration_id)
                stores = self.resolve_stores(request.store_ids)
            except SyncSetupError as e:
                log.error(f"Sync {execution_id} setup failed: {e}")
                return await self._record_setup_failure(
                    execution_id, request, started_at, started, e, dispatcher, config_name, logs
                )

            run_key = self.run_key(request, stores)
            running = SyncExecutionResult(
                execution_id=execution_id,
                sync_config_id=request.sync_config_id,
                status=ExecutionStatus.RUNNING,
                started_at=started_at,
                summary=Summary(total_stores=len(stores)),
            )
            try:
                self.executions.create(running, run_key=run_key, force=request.options.force_sync)
            except SyncAlreadyRunningError as e:
                log.warning(f"Sync {execution_id} refused: {e}")
                self.audit.write("WARN", "SYNC", f"Sync refused: {e}", {"run_key": run_key})
                raise

            try:
                self._log(logs, "INFO", f"Sync started for {len(stores)} store(s)", execution_id,
                          {"store_ids": [s.id for s in stores], "run_key": run_key})
                await dispatcher.notify(NotificationEvent(
                    kind=EventKind.SYNC_STARTED,
                    execution_id=execution_id,
                    config_name=config_name,
                    store_count=len(stores),
                ))

                results: List[StoreResult] = []
                for store in stores:
                    results.append(await self._sync_store(store, source, target, execution_id, logs))

                comparisons: Optional[List[ComparisonResult]] = None
                if not request.options.skip_comparison:
                    # Skipped stores pushed nothing, so their cache would only show stale drift
                    compared = [s for s, r in zip(stores, results) if r.status != StoreStatus.SKIPPED]
                    comparisons = [await self.compare_store(store, target) for store in compared]
                    self._log(logs, "INFO", f"Comparison finished for {len(comparisons)} store(s)", execution_id,
                              {"differences": sum(c.differences_found for c in comparisons)}, category="COMPARE")

                summary = Summary.from_results(results, _elapsed_ms(started))
                status = self.overall_status(summary)
                result = SyncExecutionResult(
                    execution_id=execution_id,
                    sync_config_id=request.sync_config_id,
                    status=status,
                    started_at=started_at,
                    finished_at=_now(),
                    stores_processed=results,
                    summary=summary,
                    comparison_results=comparisons,
                )

                level = "SUCCESS" if status == ExecutionStatus.SUCCESS else "ERROR"
                self._log(logs, level, (
                    f"Sync finished with {status.value}: {summary.successful_stores} synced, "
                    f"{summary.failed_stores} failed, {summary.total_stores} total, "
                    f"{summary.total_products} products in {summary.execution_time}ms"
                ), execution_id, summary.model_dump())

                self.executions.update(execution_id, {
                    "status": status.value,
                    "finished_at": result.finished_at,
                    "stores_processed": [r.model_dump(mode="json") for r in results],
                    "summary": summary.model_dump(mode="json"),
                    "comparison_results": (
                        [c.model_dump(mode="json") for c in comparisons] if comparisons is not None else None
                    ),
                    "execution_logs": logs,
                })

                if status == ExecutionStatus.SUCCESS or summary.successful_stores > 0:
                    event = NotificationEvent(kind=EventKind.SYNC_COMPLETED, execution_id=execution_id,
                                              config_name=config_name, result=result)
                else:
                    first_error = next((r.error for r in results if r.error), "unknown error")
                    event = NotificationEvent(
                        kind=EventKind.SYNC_FAILED,
                        execution_id=execution_id,
                        config_name=config_name,
                        error=f"All {summary.failed_stores} store(s) failed. First error: {first_error}",
                    )
                await dispatcher.notify(event)
                return result
            except Exception as e:
                self._mark_failed(execution_id, e, logs)
                raise
        finally:
            for connector in (source, target):
                if connector is not None:
                    await connector.aclose()
            await dispatcher.aclose()

    async def run_compare_only(self, request: SyncRequest) -> List[ComparisonResult]:
        """
        Reconciles the cached snapshot of each store against the target without syncing.
        Setup problems raise SyncSetupError since there is no execution to record them on.
        """
        session_id = f"compare-{uuid.uuid4()}"
        logs: List[Dict[str, Any]] = []
        request, config_name, send_notifications = self._apply_configuration(request)
        self.registry.source_config(request.source_integration_id)
        stores = self.resolve_stores(request.store_ids)

        target = self.registry.target_connector(request.target_integration_id)
        dispatcher = self.channels.dispatcher_for(request.notification_channel_id, enabled=send_notifications)
        try:
            comparisons = [await self.compare_store(store, target) for store in stores]
            self._log(logs, "INFO", f"Compare-only pass finished for {len(stores)} store(s)", session_id, {
                "differences": sum(c.differences_found for c in comparisons),
                "missing": sum(c.missing_products for c in comparisons),
                "price_differences": sum(c.price_differences for c in comparisons),
            }, category="COMPARE")
            await dispatcher.notify(NotificationEvent(
                kind=EventKind.COMPARISON_COMPLETED,
                config_name=config_name,
                comparisons=comparisons,
            ))
            return comparisons
        finally:
            await target.aclose()
            await dispatcher.aclose()
