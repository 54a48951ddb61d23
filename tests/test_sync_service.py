import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from discount_sync.connectors.base import IntegrationError, SourceProduct, TargetProduct
from discount_sync.models import CachedProduct, LogEntry, SyncConfiguration, SyncExecution
from discount_sync.schemas.sync import (
    ExecutionStatus,
    StoreStatus,
    Summary,
    SyncExecutionResult,
    SyncOptions,
    SyncRequest,
)
from discount_sync.services.errors import (
    IntegrationNotFoundError,
    SyncAlreadyRunningError,
    SyncConfigurationNotFoundError,
)
from discount_sync.services.execution_store import ExecutionStore
from discount_sync.services.sync_service import SKIPPED_REASON, SyncService
from conftest import (
    FakeChannels,
    FakeRegistry,
    FakeSource,
    FakeTarget,
    RecordingNotifier,
    fixed_window,
    make_channel,
    make_integration,
    make_store,
)

REQUEST = SyncRequest(source_integration_id=1, target_integration_id=2, notification_channel_id=3)


def build_service(db, source, target, notifier=None, registry_error=None, store_timeout=0):
    return SyncService(
        db,
        registry=FakeRegistry(source, target, error=registry_error),
        channels=FakeChannels(notifier),
        window_factory=fixed_window,
        store_timeout=store_timeout,
    )


def assert_summary_consistent(result):
    summary = result.summary
    assert summary.total_stores == len(result.stores_processed)
    assert summary.successful_stores + summary.failed_stores <= summary.total_stores


@pytest.mark.asyncio
async def test_single_store_push_and_post_push_comparison(db):
    store = make_store(db, "Loja 0001", "0001")
    source = FakeSource({"0001": [SourceProduct(code=100, price=10.00, final_price=8.00)]})
    target = FakeTarget(mirror=True)

    result = await build_service(db, source, target).run_sync(REQUEST)

    assert result.status == ExecutionStatus.SUCCESS
    assert len(result.stores_processed) == 1
    store_result = result.stores_processed[0]
    assert store_result.status == StoreStatus.SUCCESS
    assert store_result.products_synced == 1
    assert store_result.store_name == "Loja 0001"

    pushed = target.pushed["0001"]
    assert [(p.code, p.price, p.final_price, p.limit) for p in pushed] == [(100, 10.0, 8.0, 1000)]
    assert target.windows["0001"] == fixed_window()

    # Target snapshot pinned to the pushed batch
    assert result.comparison_results[0].store_id == store.id
    assert result.comparison_results[0].missing_products == 0
    assert result.summary.total_products == 1
    assert_summary_consistent(result)


@pytest.mark.asyncio
async def test_comparison_before_propagation_reports_missing(db):
    make_store(db, "Loja 0001", "0001")
    source = FakeSource({"0001": [SourceProduct(code=100, price=10.00, final_price=8.00)]})
    target = FakeTarget(mirror=False)

    result = await build_service(db, source, target).run_sync(REQUEST)

    comparison = result.comparison_results[0]
    assert comparison.missing_products == 1
    assert comparison.details.missing[0].product_code == "100"


@pytest.mark.asyncio
async def test_empty_source_skips_store_without_touching_cache(db):
    first = make_store(db, "Loja 0002", "0002")
    make_store(db, "Loja 0003", "0003")
    db.add(CachedProduct(code=1, price=2.0, final_price=1.0, limit=1000, store_id=first.id))
    db.commit()

    source = FakeSource({"0002": [], "0003": [SourceProduct(code=5, price=3.0, final_price=2.0)]})
    target = FakeTarget()

    result = await build_service(db, source, target).run_sync(REQUEST)

    skipped, synced = result.stores_processed
    assert skipped.status == StoreStatus.SKIPPED
    assert skipped.products_synced == 0
    assert skipped.error == SKIPPED_REASON
    assert synced.status == StoreStatus.SUCCESS
    assert "0002" not in target.pushed

    cached = db.query(CachedProduct).filter(CachedProduct.store_id == first.id).all()
    assert [(c.code, c.final_price) for c in cached] == [(1, 1.0)]

    assert result.status == ExecutionStatus.SUCCESS
    assert result.summary.successful_stores == 1
    assert result.summary.failed_stores == 0
    assert [c.store_name for c in result.comparison_results] == ["Loja 0003"]
    assert_summary_consistent(result)


@pytest.mark.asyncio
async def test_all_stores_skipped_is_success(db):
    make_store(db, "Loja 1", "0001")
    make_store(db, "Loja 2", "0002")

    result = await build_service(db, FakeSource(), FakeTarget()).run_sync(REQUEST)

    assert result.status == ExecutionStatus.SUCCESS
    assert {r.status for r in result.stores_processed} == {StoreStatus.SKIPPED}
    assert result.summary.successful_stores == 0
    assert_summary_consistent(result)


@pytest.mark.asyncio
async def test_one_failing_push_is_isolated_and_fails_the_run(db):
    make_store(db, "Loja 1", "0001")
    make_store(db, "Loja 2", "0002")
    source = FakeSource({
        "0001": [SourceProduct(code=1, price=2.0, final_price=1.0)],
        "0002": [SourceProduct(code=2, price=4.0, final_price=3.0)],
    })
    target = FakeTarget(push_errors={"0001": IntegrationError("CresceVendas HTTP 500 error")})

    result = await build_service(db, source, target).run_sync(REQUEST)

    failed, succeeded = result.stores_processed
    assert failed.status == StoreStatus.FAILED
    assert failed.error == "CresceVendas HTTP 500 error"
    assert succeeded.status == StoreStatus.SUCCESS
    assert source.calls == ["0001", "0002"]
    assert result.summary.failed_stores == 1
    assert result.summary.successful_stores == 1
    assert result.status == ExecutionStatus.FAILED
    assert_summary_consistent(result)


@pytest.mark.asyncio
async def test_source_failure_is_contained(db):
    make_store(db, "Loja 1", "0001")
    make_store(db, "Loja 2", "0002")
    source = FakeSource(
        {"0002": [SourceProduct(code=2, price=4.0, final_price=3.0)]},
        errors={"0001": IntegrationError("RP authentication failed")},
    )

    result = await build_service(db, source, FakeTarget()).run_sync(REQUEST)

    assert [r.status for r in result.stores_processed] == [StoreStatus.FAILED, StoreStatus.SUCCESS]
    assert result.stores_processed[0].error == "RP authentication failed"


@pytest.mark.asyncio
async def test_slow_store_times_out_and_loop_continues(db):
    make_store(db, "Loja 1", "0001")
    make_store(db, "Loja 2", "0002")

    class SlowSource(FakeSource):
        async def fetch_discounted_products(self, store_identifier):
            if store_identifier == "0001":
                await asyncio.sleep(5)
            return await super().fetch_discounted_products(store_identifier)

    source = SlowSource({"0002": [SourceProduct(code=2, price=4.0, final_price=3.0)]})
    service = build_service(db, source, FakeTarget(), store_timeout=0.05)

    result = await service.run_sync(REQUEST)

    slow, fast = result.stores_processed
    assert slow.status == StoreStatus.FAILED
    assert "timed out" in slow.error
    assert fast.status == StoreStatus.SUCCESS


@pytest.mark.asyncio
async def test_comparison_failure_yields_zero_valued_result(db):
    make_store(db, "Loja 1", "0001")
    make_store(db, "Loja 2", "0002")
    source = FakeSource({
        "0001": [SourceProduct(code=1, price=2.0, final_price=1.0)],
        "0002": [SourceProduct(code=2, price=4.0, final_price=3.0)],
    })
    target = FakeTarget(fetch_errors={"0001": IntegrationError("CresceVendas request error")})

    result = await build_service(db, source, target).run_sync(REQUEST)

    broken, fine = result.comparison_results
    assert broken.error == "CresceVendas request error"
    assert broken.differences_found == 0
    assert fine.error is None
    assert result.status == ExecutionStatus.SUCCESS


@pytest.mark.asyncio
async def test_skip_comparison_option(db):
    make_store(db, "Loja 1", "0001")
    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})
    request = REQUEST.model_copy(update={"options": SyncOptions(skip_comparison=True)})

    result = await build_service(db, source, FakeTarget()).run_sync(request)

    assert result.comparison_results is None


@pytest.mark.asyncio
async def test_setup_failure_is_recorded_as_failed_run(db):
    make_store(db, "Loja 1", "0001")
    source, target = FakeSource(), FakeTarget()
    service = build_service(db, source, target, registry_error=IntegrationNotFoundError("Source integration 1 not found"))

    result = await service.run_sync(REQUEST)

    assert result.status == ExecutionStatus.FAILED
    assert result.stores_processed == []
    assert result.error_details["type"] == "IntegrationNotFoundError"
    assert source.calls == []

    row = db.query(SyncExecution).one()
    assert row.status == "FAILED"
    assert row.stores_processed == []
    assert row.finished_at is not None


@pytest.mark.asyncio
async def test_no_active_stores_is_a_setup_failure(db):
    make_store(db, "Inactive", "0001", active=False)
    make_store(db, "Deleted", "0002", deleted_at=datetime.now(timezone.utc))
    notifier = RecordingNotifier()

    result = await build_service(db, FakeSource(), FakeTarget(), notifier=notifier).run_sync(REQUEST)

    assert result.status == ExecutionStatus.FAILED
    assert result.stores_processed == []
    assert "No active stores" in result.error_details["message"]
    assert len(notifier.messages) == 1
    assert "Sync failed" in notifier.messages[0]


@pytest.mark.asyncio
async def test_explicit_store_ids_are_filtered_to_active_stores(db):
    first = make_store(db, "Loja 1", "0001")
    inactive = make_store(db, "Loja 2", "0002", active=False)
    make_store(db, "Loja 3", "0003")
    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})
    request = REQUEST.model_copy(update={"store_ids": [first.id, inactive.id]})

    result = await build_service(db, source, FakeTarget()).run_sync(request)

    assert [r.store_id for r in result.stores_processed] == [first.id]
    assert source.calls == ["0001"]


@pytest.mark.asyncio
async def test_notifications_for_start_and_completion(db):
    make_store(db, "Loja 1", "0001")
    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})
    notifier = RecordingNotifier()

    result = await build_service(db, source, FakeTarget(), notifier=notifier).run_sync(REQUEST)

    assert len(notifier.messages) == 2
    assert "Sync started" in notifier.messages[0]
    assert result.execution_id in notifier.messages[0]
    assert "Sync completed" in notifier.messages[1]
    assert "Loja 1" in notifier.messages[1]


@pytest.mark.asyncio
async def test_all_stores_failed_sends_error_notification(db):
    make_store(db, "Loja 1", "0001")
    source = FakeSource(errors={"0001": IntegrationError("RP down")})
    notifier = RecordingNotifier()

    result = await build_service(db, source, FakeTarget(), notifier=notifier).run_sync(REQUEST)

    assert result.status == ExecutionStatus.FAILED
    assert "Sync failed" in notifier.messages[-1]
    assert "RP down" in notifier.messages[-1]


@pytest.mark.asyncio
async def test_notification_failure_never_affects_the_run(db):
    make_store(db, "Loja 1", "0001")
    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})

    result = await build_service(db, source, FakeTarget(), notifier=RecordingNotifier(fail=True)).run_sync(REQUEST)

    assert result.status == ExecutionStatus.SUCCESS


@pytest.mark.asyncio
async def test_run_is_persisted_once_with_logs_and_audit_trail(db):
    store = make_store(db, "Loja 1", "0001")
    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})

    result = await build_service(db, source, FakeTarget()).run_sync(REQUEST)

    row = db.query(SyncExecution).one()
    assert row.id == result.execution_id
    assert row.status == "SUCCESS"
    assert row.summary["total_products"] == 1
    assert row.stores_processed[0]["status"] == "SUCCESS"
    assert row.comparison_results[0]["missing_products"] == 0
    assert row.run_key == SyncService.run_key(REQUEST, [store])
    assert any("Sync finished" in entry["message"] for entry in row.execution_logs)

    entries = db.query(LogEntry).filter(LogEntry.session_id == result.execution_id).all()
    assert {e.category for e in entries} >= {"SYNC", "COMPARE"}
    assert any(e.level == "SUCCESS" for e in entries)


@pytest.mark.asyncio
async def test_concurrent_run_for_same_stores_is_refused(db):
    store = make_store(db, "Loja 1", "0001")
    source, target = FakeSource(), FakeTarget()
    service = build_service(db, source, target)
    ExecutionStore(db).create(
        service_running_result("other-run"),
        run_key=SyncService.run_key(REQUEST, [store]),
    )

    with pytest.raises(SyncAlreadyRunningError):
        await service.run_sync(REQUEST)

    assert source.calls == []
    assert source.closed and target.closed
    assert db.query(SyncExecution).count() == 1


@pytest.mark.asyncio
async def test_force_sync_takes_over_running_guard(db):
    store = make_store(db, "Loja 1", "0001")
    service = build_service(db, FakeSource(), FakeTarget())
    ExecutionStore(db).create(service_running_result("other-run"), run_key=SyncService.run_key(REQUEST, [store]))
    request = REQUEST.model_copy(update={"options": SyncOptions(force_sync=True)})

    result = await service.run_sync(request)

    assert result.status == ExecutionStatus.SUCCESS
    assert db.get(SyncExecution, "other-run").status == "FAILED"


@pytest.mark.asyncio
async def test_saved_configuration_fills_the_request(db):
    first = make_store(db, "Loja 1", "0001")
    make_store(db, "Loja 2", "0002")
    rp = make_integration(db, "RP", {})
    cv = make_integration(db, "CRESCEVENDAS", {})
    channel = make_channel(db, "TELEGRAM", {"chat_id": "42"})
    config = SyncConfiguration(
        name="Morning sync",
        source_integration_id=rp.id,
        target_integration_id=cv.id,
        notification_channel_id=channel.id,
        store_ids=[first.id],
        options={"skip_comparison": True},
        active=True,
    )
    db.add(config)
    db.commit()

    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})
    notifier = RecordingNotifier()
    service = build_service(db, source, FakeTarget(), notifier=notifier)

    result = await service.run_sync(SyncRequest(sync_config_id=config.id))

    assert service.registry.requested == [("source", rp.id), ("target", cv.id)]
    assert service.channels.requested == [channel.id]
    assert [r.store_id for r in result.stores_processed] == [first.id]
    assert result.comparison_results is None
    assert result.sync_config_id == config.id
    assert "Morning sync" in notifier.messages[0]
    assert db.query(SyncExecution).one().run_key == f"config:{config.id}"


@pytest.mark.asyncio
async def test_unknown_configuration_is_a_setup_failure(db):
    result = await build_service(db, FakeSource(), FakeTarget()).run_sync(SyncRequest(sync_config_id=404))
    assert result.status == ExecutionStatus.FAILED
    assert result.error_details["type"] == "SyncConfigurationNotFoundError"
    assert result.error_details["sync_config_id"] == 404
    assert result.sync_config_id is None


@pytest.mark.asyncio
async def test_inactive_configuration_fails_but_keeps_its_history_link(db):
    make_store(db, "Loja 1", "0001")
    rp = make_integration(db, "RP", {})
    cv = make_integration(db, "CRESCEVENDAS", {})
    config = SyncConfiguration(name="Paused", source_integration_id=rp.id, target_integration_id=cv.id, active=False)
    db.add(config)
    db.commit()

    result = await build_service(db, FakeSource(), FakeTarget()).run_sync(SyncRequest(sync_config_id=config.id))

    assert result.status == ExecutionStatus.FAILED
    assert result.error_details["type"] == "SyncConfigurationInactiveError"
    assert result.sync_config_id == config.id
    assert db.get(SyncExecution, result.execution_id).sync_config_id == config.id


@pytest.mark.asyncio
async def test_connectors_are_closed_after_run(db):
    make_store(db, "Loja 1", "0001")
    source, target = FakeSource(), FakeTarget()
    await build_service(db, source, target).run_sync(REQUEST)
    assert source.closed and target.closed


@pytest.mark.asyncio
async def test_compare_only_uses_cached_snapshot(db):
    store = make_store(db, "Loja 1", "0001")
    db.add_all([
        CachedProduct(code=1, price=10.0, final_price=8.0, limit=1000, store_id=store.id),
        CachedProduct(code=2, price=5.0, final_price=4.0, limit=1000, store_id=store.id),
    ])
    db.commit()
    target = FakeTarget(active={"0001": [TargetProduct(code=1, price=10.0, final_price=9.0)]})
    notifier = RecordingNotifier()

    comparisons = await build_service(db, FakeSource(), target, notifier=notifier).run_compare_only(REQUEST)

    assert len(comparisons) == 1
    assert comparisons[0].missing_products == 1
    assert comparisons[0].price_differences == 1
    assert target.closed
    assert "comparison" in notifier.messages[0]
    assert db.query(SyncExecution).count() == 0


@pytest.mark.asyncio
async def test_compare_only_raises_setup_errors(db):
    with pytest.raises(SyncConfigurationNotFoundError):
        await build_service(db, FakeSource(), FakeTarget()).run_compare_only(SyncRequest(sync_config_id=1))


@pytest.mark.parametrize("failed,successful,expected", [
    (0, 0, ExecutionStatus.SUCCESS),
    (0, 3, ExecutionStatus.SUCCESS),
    (1, 2, ExecutionStatus.FAILED),
    (3, 0, ExecutionStatus.FAILED),
])
def test_overall_status_is_strict(failed, successful, expected):
    summary = Summary(total_stores=failed + successful + 1, failed_stores=failed, successful_stores=successful)
    assert SyncService.overall_status(summary) == expected


def service_running_result(execution_id):
    return SyncExecutionResult(
        execution_id=execution_id,
        status=ExecutionStatus.RUNNING,
        started_at=datetime.now(timezone.utc),
    )


def test_run_key_fits_the_column_for_large_store_sets():
    stores = [SimpleNamespace(id=i) for i in range(100, 180)]
    key = SyncService.run_key(SyncRequest(), stores)
    assert key.startswith("stores:")
    assert len(key) <= SyncExecution.__table__.c.run_key.type.length


def test_run_key_depends_only_on_the_store_set():
    first = [SimpleNamespace(id=i) for i in (3, 1, 2)]
    same = [SimpleNamespace(id=i) for i in (1, 2, 3, 2)]
    other = [SimpleNamespace(id=i) for i in (1, 2)]

    assert SyncService.run_key(SyncRequest(), first) == SyncService.run_key(SyncRequest(), same)
    assert SyncService.run_key(SyncRequest(), first) != SyncService.run_key(SyncRequest(), other)
    assert SyncService.run_key(SyncRequest(sync_config_id=7), first) == "config:7"


@pytest.mark.asyncio
async def test_all_stores_run_with_many_stores_is_guarded(db):
    for i in range(80):
        make_store(db, f"Loja {i}", f"{i:04d}")

    result = await build_service(db, FakeSource(), FakeTarget()).run_sync(REQUEST)

    row = db.get(SyncExecution, result.execution_id)
    assert result.summary.total_stores == 80
    assert len(row.run_key) <= SyncExecution.__table__.c.run_key.type.length


@pytest.mark.asyncio
async def test_unexpected_error_after_start_releases_the_running_row(db):
    make_store(db, "Loja 1", "0001")
    source = FakeSource({"0001": [SourceProduct(code=1, price=2.0, final_price=1.0)]})
    service = build_service(db, source, FakeTarget())
    real_update = service.executions.update
    patches = []

    def failing_first_update(execution_id, patch):
        patches.append(patch)
        if len(patches) == 1:
            raise SQLAlchemyError("connection lost")
        return real_update(execution_id, patch)

    service.executions.update = failing_first_update

    with pytest.raises(SQLAlchemyError):
        await service.run_sync(REQUEST)

    row = db.query(SyncExecution).one()
    assert row.status == "FAILED"
    assert row.finished_at is not None
    assert row.error_details == {"type": "SQLAlchemyError", "message": "connection lost"}
    assert source.closed
    # The guard is free again
    result = await build_service(db, source, FakeTarget()).run_sync(REQUEST)
    assert result.status == ExecutionStatus.SUCCESS
