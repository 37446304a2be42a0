"""Tests for sync run orchestration."""

import logging
import time

import httpx

from stocksync.catalog_client import RemoteCatalogClient
from stocksync.coordinator import RunState, SyncCoordinator
from stocksync.exceptions import HTTPError
from stocksync.repositories.memory import InMemoryLedgerRepository
from stocksync.sync_lock import SYNC_LOCK_NAME

from conftest import RecordingLedger, StaticCatalog


def test_completed_run_applies_changes(sync_config, ledger, static_catalog):
    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    assert result.status == "completed"
    assert result.error is None
    assert result.counts.stock_updates == 4
    assert result.counts.minimum_updates == 1
    assert result.counts.price_updates == 3
    assert result.counts.aggregate_updates == 2

    assert ledger.get_stock(1, "stock_espana") == 5
    assert ledger.get_stock(2, "stock_sanber") == 7
    assert ledger.get_stock_record(2, "stock_espana").quantity == 0
    assert ledger.get_minimum(1) == 1
    prices = ledger.get_prices(2)
    assert (prices.regular_price, prices.sale_price, prices.effective_price) == (
        "25.50",
        "20.00",
        "20.00",
    )
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is None


def test_run_log_is_persisted(sync_config, ledger, static_catalog):
    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    logs = ledger.get_logs()
    assert logs == result.logs
    assert "Starting manual inventory sync" in logs[0]
    assert any("Products received: 4" in line for line in logs)
    assert any("Products matched by SKU: 2 of 4" in line for line in logs)
    assert logs[-1].endswith("Sync finished")
    assert all(line.startswith("[") and line[9] == "]" for line in logs)


def test_state_transitions(sync_config, ledger, static_catalog):
    coordinator = SyncCoordinator(sync_config, ledger, static_catalog)
    coordinator.run(manual=True)

    assert coordinator.transitions == [
        RunState.LOCKED,
        RunState.FETCHING,
        RunState.RESOLVING,
        RunState.DIFFING,
        RunState.PERSISTING,
        RunState.COMPLETED,
        RunState.IDLE,
    ]
    assert coordinator.state == RunState.IDLE


def test_second_run_is_idempotent(sync_config, ledger, static_catalog):
    SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)
    writes_after_first = ledger.write_count

    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    assert result.status == "completed"
    assert result.counts.total == 0
    assert ledger.write_count == writes_after_first
    assert any("No changes required" in line for line in result.logs)


def test_http_error_fails_run_and_releases_lock(sync_config, ledger):
    catalog = StaticCatalog(error=HTTPError(500))
    coordinator = SyncCoordinator(sync_config, ledger, catalog)

    result = coordinator.run(manual=False)

    assert result.status == "failed"
    assert result.error == "HTTPError: HTTP 500 from catalog API"
    assert any("ERROR [HTTPError]" in line for line in result.logs)
    assert RunState.FAILED in coordinator.transitions
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is None
    assert ledger.write_count == 0
    assert ledger.get_logs() == result.logs


def test_overlapping_automatic_run_is_skipped(sync_config, ledger, catalog_rows):
    nested = {}

    def trigger_second_run():
        second = SyncCoordinator(sync_config, ledger, StaticCatalog(rows=catalog_rows))
        nested["result"] = second.run(manual=False)
        nested["catalog_calls"] = second.catalog.calls

    first = SyncCoordinator(
        sync_config,
        ledger,
        StaticCatalog(rows=catalog_rows, on_fetch=trigger_second_run),
    )
    result = first.run(manual=False)

    skipped = nested["result"]
    assert skipped.status == "skipped"
    assert skipped.counts.total == 0
    assert nested["catalog_calls"] == 0
    assert any("skipping this run" in line for line in skipped.logs)
    assert result.status == "completed"
    assert ledger.get_logs() == result.logs


def test_skipped_run_leaves_lock_and_logs(sync_config, static_catalog):
    ledger = InMemoryLedgerRepository()
    ledger.persist_log(["[00:00:00] previous run"])
    ledger.set_lock_expiry(SYNC_LOCK_NAME, time.time() + 30)

    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=False)

    assert result.status == "skipped"
    assert static_catalog.calls == 0
    assert ledger.get_logs() == ["[00:00:00] previous run"]
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is not None


def test_manual_run_ignores_active_lock(sync_config, ledger, static_catalog):
    ledger.set_lock_expiry(SYNC_LOCK_NAME, time.time() + 30)

    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    assert result.status == "completed"
    assert static_catalog.calls == 1
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is None


def test_expired_lock_does_not_block_automatic_run(sync_config, ledger, static_catalog):
    ledger.set_lock_expiry(SYNC_LOCK_NAME, time.time() - 1)

    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=False)

    assert result.status == "completed"


def test_sku_lookup_failure_fails_run(sync_config, static_catalog):
    class BrokenLedger(InMemoryLedgerRepository):
        def sku_index(self):
            raise RuntimeError("products table missing")

    ledger = BrokenLedger()
    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    assert result.status == "failed"
    assert result.error.startswith("SkuLookupError")
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is None


def test_lock_read_failure_reports_failed_run(sync_config, static_catalog):
    class LockSlotUnavailable(InMemoryLedgerRepository):
        def __init__(self):
            super().__init__()
            self.lock_deletes = 0

        def get_lock_expiry(self, name):
            raise RuntimeError("database is locked")

        def delete_lock(self, name):
            self.lock_deletes += 1
            super().delete_lock(name)

    ledger = LockSlotUnavailable()
    coordinator = SyncCoordinator(sync_config, ledger, static_catalog)

    result = coordinator.run(manual=False)

    assert result.status == "failed"
    assert result.error == "RuntimeError: database is locked"
    assert RunState.FAILED in coordinator.transitions
    assert coordinator.state == RunState.IDLE
    assert static_catalog.calls == 0
    assert ledger.lock_deletes == 0
    assert ledger.get_logs() == result.logs
    assert result.logs[-1].endswith("Sync finished")


def test_reused_coordinator_persists_one_run_per_log(sync_config, ledger, static_catalog):
    coordinator = SyncCoordinator(sync_config, ledger, static_catalog)

    first = coordinator.run(manual=False)
    second = coordinator.run(manual=False)

    persisted = ledger.get_logs()
    assert persisted == second.logs
    assert sum("Starting automatic inventory sync" in line for line in persisted) == 1
    assert len(second.logs) < len(first.logs)


def test_skip_line_not_carried_into_next_run(sync_config, ledger, static_catalog):
    coordinator = SyncCoordinator(sync_config, ledger, static_catalog)
    ledger.set_lock_expiry(SYNC_LOCK_NAME, time.time() + 30)
    assert coordinator.run(manual=False).status == "skipped"

    ledger.delete_lock(SYNC_LOCK_NAME)
    result = coordinator.run(manual=False)

    assert result.status == "completed"
    assert not any("skipping this run" in line for line in ledger.get_logs())


def test_log_persist_failure_is_only_logged(sync_config, static_catalog, caplog):
    class LogSlotUnavailable(InMemoryLedgerRepository):
        def persist_log(self, entries):
            raise RuntimeError("log slot unavailable")

    ledger = LogSlotUnavailable()
    ledger.add_product(1, "A1")
    ledger.add_product(2, "B2")

    with caplog.at_level(logging.ERROR, logger="stocksync.coordinator"):
        result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    assert result.status == "completed"
    assert result.error is None
    assert "Failed to persist sync log" in caplog.text
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is None
    assert ledger.get_stock(2, "stock_sanber") == 7


def test_batch_failure_fails_run_and_keeps_committed_rows(sync_config, static_catalog):
    ledger = RecordingLedger(fail_on_batch=1)
    ledger.add_product(1, "A1")
    ledger.add_product(2, "B2")
    sync_config.batch_size = 1

    result = SyncCoordinator(sync_config, ledger, static_catalog).run(manual=True)

    assert result.status == "failed"
    assert result.error.startswith("PersistenceError")
    assert any("ERROR [PersistenceError]" in line for line in result.logs)
    assert ledger.get_lock_expiry(SYNC_LOCK_NAME) is None
    assert ledger.get_stock(1, "stock_espana") == 5
    assert ledger.get_stock_record(2, "stock_espana") is None
    assert ledger.get_aggregate_stock(1).total_quantity == 5
    assert ledger.get_logs() == result.logs


def test_dropped_catalog_rows_reported_in_log(sync_config, ledger):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"codigo": "A1", "stock_espana": 1}, "junk"])

    catalog = RemoteCatalogClient(
        sync_config, client=httpx.Client(transport=httpx.MockTransport(handler))
    )

    result = SyncCoordinator(sync_config, ledger, catalog).run(manual=True)

    assert result.status == "completed"
    assert any(
        "Skipped 1 catalog rows that are not objects" in line for line in result.logs
    )
