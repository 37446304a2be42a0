"""In-memory ledger repository for embedding and tests."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from stocksync.repositories.base import (
    AggregateStock,
    LedgerRepository,
    PriceAttributes,
    StockRecord,
)


class InMemoryLedgerRepository(LedgerRepository):
    """Thread-safe in-memory storage."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Reset all in-memory state (used by tests)."""
        with self._lock:
            self._skus: dict[int, str] = {}
            self._stock: dict[tuple[int, str], StockRecord] = {}
            self._updated_at: dict[tuple[int, str], datetime] = {}
            self._minimums: dict[int, int] = {}
            self._prices: dict[int, PriceAttributes] = {}
            self._aggregates: dict[int, AggregateStock] = {}
            self._logs: list[str] = []
            self._locks: dict[str, float] = {}
            self.write_count = 0

    def add_product(self, product_id: int, sku: Optional[str]) -> None:
        """Register a local product and its SKU."""
        with self._lock:
            self._skus[product_id] = sku or ""

    def sku_index(self) -> dict[str, int]:
        with self._lock:
            index: dict[str, int] = {}
            for product_id, sku in sorted(self._skus.items()):
                sku = sku.strip()
                if sku:
                    index[sku] = product_id
            return index

    def get_stock(self, product_id: int, branch_slug: str) -> int:
        with self._lock:
            record = self._stock.get((product_id, branch_slug))
            return record.quantity if record else 0

    def get_stock_record(
        self, product_id: int, branch_slug: str
    ) -> Optional[StockRecord]:
        with self._lock:
            return self._stock.get((product_id, branch_slug))

    def get_updated_at(self, product_id: int, branch_slug: str) -> Optional[datetime]:
        with self._lock:
            return self._updated_at.get((product_id, branch_slug))

    def get_stock_levels(
        self, product_ids: Iterable[int], branches: Iterable[str]
    ) -> dict[tuple[int, str], int]:
        wanted_products = set(product_ids)
        wanted_branches = set(branches)
        with self._lock:
            return {
                key: record.quantity
                for key, record in self._stock.items()
                if key[0] in wanted_products and key[1] in wanted_branches
            }

    def get_product_stock(self, product_id: int) -> dict[str, int]:
        with self._lock:
            return {
                slug: record.quantity
                for (pid, slug), record in self._stock.items()
                if pid == product_id
            }

    def get_branch_stock(self, branch_slug: str) -> dict[int, int]:
        with self._lock:
            return {
                pid: record.quantity
                for (pid, slug), record in self._stock.items()
                if slug == branch_slug
            }

    def upsert_stock(self, product_id: int, branch_slug: str, quantity: int) -> None:
        self.upsert_stock_batch(branch_slug, [(product_id, quantity)])

    def upsert_stock_batch(
        self, branch_slug: str, rows: Sequence[tuple[int, int]]
    ) -> int:
        now = datetime.now(timezone.utc)
        with self._lock:
            for product_id, quantity in rows:
                key = (product_id, branch_slug)
                current = self._stock.get(key)
                if current is None or current.quantity != quantity:
                    self._updated_at[key] = now
                self._stock[key] = StockRecord(
                    product_id=product_id,
                    branch_slug=branch_slug,
                    quantity=max(0, int(quantity)),
                )
            self.write_count += 1
            return len(rows)

    def get_minimum(self, product_id: int) -> int:
        with self._lock:
            return self._minimums.get(product_id, 0)

    def get_minimums(self, product_ids: Iterable[int]) -> dict[int, int]:
        wanted = set(product_ids)
        with self._lock:
            return {pid: v for pid, v in self._minimums.items() if pid in wanted}

    def set_minimum(self, product_id: int, value: int) -> None:
        with self._lock:
            self._minimums[product_id] = max(0, int(value))
            self.write_count += 1

    def get_prices(self, product_id: int) -> PriceAttributes:
        with self._lock:
            return self._prices.get(product_id, PriceAttributes())

    def get_price_map(self, product_ids: Iterable[int]) -> dict[int, PriceAttributes]:
        wanted = set(product_ids)
        with self._lock:
            return {pid: p for pid, p in self._prices.items() if pid in wanted}

    def set_prices(
        self,
        product_id: int,
        *,
        regular: Optional[str],
        sale: Optional[str],
        effective: Optional[str],
    ) -> None:
        with self._lock:
            self._prices[product_id] = PriceAttributes(
                regular_price=regular,
                sale_price=sale,
                effective_price=effective,
            )
            self.write_count += 1

    def set_aggregate_stock(self, product_id: int, total_quantity: int) -> None:
        with self._lock:
            self._aggregates[product_id] = AggregateStock(
                product_id=product_id,
                total_quantity=total_quantity,
                in_stock=total_quantity > 0,
            )
            self.write_count += 1

    def get_aggregate_stock(self, product_id: int) -> Optional[AggregateStock]:
        with self._lock:
            return self._aggregates.get(product_id)

    def persist_log(self, entries: Sequence[str]) -> None:
        with self._lock:
            self._logs = list(entries)

    def get_logs(self) -> list[str]:
        with self._lock:
            return list(self._logs)

    def clear_logs(self) -> None:
        with self._lock:
            self._logs = []

    def get_lock_expiry(self, name: str) -> Optional[float]:
        with self._lock:
            return self._locks.get(name)

    def set_lock_expiry(self, name: str, expires_at: float) -> None:
        with self._lock:
            self._locks[name] = expires_at

    def delete_lock(self, name: str) -> None:
        with self._lock:
            self._locks.pop(name, None)
