"""Apply computed deltas to the ledger."""

import logging

from stocksync.exceptions import PersistenceError
from stocksync.models import SyncCounts
from stocksync.repositories.base import LedgerRepository
from stocksync.services.delta_service import DeltaSet

logger = logging.getLogger(__name__)


class BatchPersister:
    """
    Writes deltas with idempotent upserts.

    Persistence is best-effort and not atomic across the run: each stock
    batch commits on its own, so a failing batch leaves earlier batches
    committed and aborts the rest. Aggregate stock is still refreshed for
    the products in committed batches before the error propagates.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        *,
        batch_size: int,
        sync_aggregate_stock: bool = True,
    ) -> None:
        self.repository = repository
        self.batch_size = batch_size
        self.sync_aggregate_stock = sync_aggregate_stock

    def apply(self, deltas: DeltaSet) -> SyncCounts:
        counts = SyncCounts()

        for minimum in deltas.minimums:
            self.repository.set_minimum(minimum.product_id, minimum.minimum_quantity)
            counts.minimum_updates += 1

        for price in deltas.prices:
            self.repository.set_prices(
                price.product_id,
                regular=price.regular_price,
                sale=price.sale_price,
                effective=price.effective_price,
            )
            counts.price_updates += price.changed_fields

        touched: set[int] = set()
        try:
            self._write_stock(deltas, counts, touched)
        except Exception:
            # Earlier batches stay committed; keep their aggregates in step.
            if self.sync_aggregate_stock:
                try:
                    self._refresh_aggregates(touched, counts)
                except Exception:
                    logger.exception("Failed to refresh aggregate stock after a failed batch")
            raise

        if self.sync_aggregate_stock:
            self._refresh_aggregates(touched, counts)

        return counts

    def _write_stock(
        self, deltas: DeltaSet, counts: SyncCounts, touched: set[int]
    ) -> None:
        for slug, rows in deltas.stock.items():
            if not rows:
                continue
            for start in range(0, len(rows), self.batch_size):
                batch = rows[start : start + self.batch_size]
                try:
                    self.repository.upsert_stock_batch(
                        slug, [(row.product_id, row.quantity) for row in batch]
                    )
                except PersistenceError:
                    raise
                except Exception as exc:
                    raise PersistenceError(
                        f"Upsert failed for branch {slug}: {exc}"
                    ) from exc
                counts.stock_updates += len(batch)
                touched.update(row.product_id for row in batch)
                logger.debug("Committed %d stock rows for branch %s", len(batch), slug)

    def _refresh_aggregates(self, touched: set[int], counts: SyncCounts) -> None:
        for product_id in sorted(touched):
            total = sum(self.repository.get_product_stock(product_id).values())
            self.repository.set_aggregate_stock(product_id, total)
            counts.aggregate_updates += 1
