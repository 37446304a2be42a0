"""Sync run orchestration: lock, fetch, resolve, diff, persist, log."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Protocol

from stocksync.config import SyncConfig
from stocksync.models import RemoteCatalogEntry, SyncCounts, SyncRunResult
from stocksync.repositories.base import LedgerRepository
from stocksync.run_log import SyncLogCollector
from stocksync.services.delta_service import compute_deltas
from stocksync.services.persist_service import BatchPersister
from stocksync.services.resolver import build_index, resolve
from stocksync.sync_lock import SyncLock

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    LOCKED = "locked"
    FETCHING = "fetching"
    RESOLVING = "resolving"
    DIFFING = "diffing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


class CatalogSource(Protocol):
    # Rows skipped by the last fetch because they were not JSON objects.
    dropped_rows: int

    def fetch(self) -> list[RemoteCatalogEntry]:
        ...


class SyncCoordinator:
    """Runs the reconciliation pipeline and never raises past `run`."""

    def __init__(
        self,
        config: SyncConfig,
        repository: LedgerRepository,
        catalog: CatalogSource,
        *,
        log: Optional[SyncLogCollector] = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.catalog = catalog
        self.log = log or SyncLogCollector()
        self.lock = SyncLock(repository, ttl_sec=config.lock_ttl_sec)
        self.state = RunState.IDLE
        self.transitions: list[RunState] = []

    def _enter(self, state: RunState) -> None:
        self.state = state
        self.transitions.append(state)
        logger.debug("sync state -> %s", state.value)

    def run(self, manual: bool = False) -> SyncRunResult:
        """Execute one sync run; the outcome is reported in the result and log."""
        started_at = datetime.now(timezone.utc)
        self.transitions = []

        # Every run persists a log of its own lines only.
        self.log.reset()
        kind = "manual" if manual else "automatic"
        self.log.add(f"[STOCK SYNC] Starting {kind} inventory sync")

        branches = self.config.get_branches()
        self.log.add(f"Configured branches: {', '.join(branches)}")

        counts = SyncCounts()
        error: Optional[str] = None
        acquired = False
        skipped = False
        try:
            if not manual and self.lock.is_held():
                skipped = True
                self.log.add("Sync already running, skipping this run")
            else:
                self.lock.acquire()
                acquired = True
                self._enter(RunState.LOCKED)
                counts = self._run_pipeline(branches)
                self._enter(RunState.COMPLETED)
        except Exception as exc:
            self._enter(RunState.FAILED)
            error = f"{type(exc).__name__}: {exc}"
            self.log.error(f"ERROR [{type(exc).__name__}]: {exc}")
            logger.debug("sync run failed", exc_info=True)
        finally:
            if skipped:
                # Leave the holder's lock and the last persisted log untouched.
                self._enter(RunState.IDLE)
            else:
                self._cleanup(release_lock=acquired)

        if skipped:
            status = "skipped"
        elif error:
            status = "failed"
        else:
            status = "completed"
        return SyncRunResult(
            status=status,
            manual=manual,
            counts=counts,
            logs=self.log.entries,
            error=error,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    def _run_pipeline(self, branches: list[str]) -> SyncCounts:
        self._enter(RunState.FETCHING)
        self.log.add("Connecting to catalog API...")
        entries = self.catalog.fetch()
        self.log.add(f"Catalog API connected. Products received: {len(entries)}")
        if self.catalog.dropped_rows:
            self.log.warning(
                f"Skipped {self.catalog.dropped_rows} catalog rows that are not objects"
            )

        self._enter(RunState.RESOLVING)
        self.log.add("Loading SKU -> product ID index...")
        index = build_index(self.repository)
        self.log.add(f"Local SKUs found: {len(index)}")
        resolution = resolve(entries, index)
        self.log.add(
            f"Products matched by SKU: {resolution.matched_count} of {len(entries)}"
            f" from the API ({resolution.unmatched_count} unmatched,"
            f" {resolution.empty_code_count} without code)"
        )

        self._enter(RunState.DIFFING)
        self.log.add("Computing required changes...")
        deltas = compute_deltas(resolution.entries, branches, self.repository)
        for slug, rows in deltas.stock.items():
            if rows:
                self.log.add(f"Branch '{slug}': {len(rows)} pending stock changes")
        if deltas.is_empty():
            self.log.add("No changes required. Ledger is up to date")
            return SyncCounts()

        self._enter(RunState.PERSISTING)
        self.log.add("Applying changes to the ledger...")
        persister = BatchPersister(
            self.repository,
            batch_size=self.config.batch_size,
            sync_aggregate_stock=self.config.sync_aggregate_stock,
        )
        counts = persister.apply(deltas)

        self.log.add("Sync completed successfully")
        if counts.stock_updates:
            self.log.add(f"Stock records written: {counts.stock_updates}")
        if counts.minimum_updates:
            self.log.add(f"Products with minimum stock updated: {counts.minimum_updates}")
        if counts.price_updates:
            self.log.add(f"Price fields updated: {counts.price_updates}")
        if counts.aggregate_updates:
            self.log.add(f"Aggregate stock refreshed for {counts.aggregate_updates} products")
        return counts

    def _cleanup(self, *, release_lock: bool) -> None:
        if release_lock:
            try:
                self.lock.release()
            except Exception:
                logger.exception("Failed to release sync lock")

        self.log.add("Sync finished")
        try:
            self.repository.persist_log(self.log.entries)
        except Exception:
            logger.exception("Failed to persist sync log")

        self._enter(RunState.IDLE)
