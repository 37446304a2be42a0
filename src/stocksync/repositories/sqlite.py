"""SQLite-backed ledger repository."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from stocksync.exceptions import PersistenceError, SkuLookupError
from stocksync.repositories.base import (
    AggregateStock,
    LedgerRepository,
    PriceAttributes,
)

SCHEMA_SQL = r"""
-- Local product catalog (SKU, minimum stock, prices, aggregate stock)
CREATE TABLE IF NOT EXISTS products (
  product_id INTEGER PRIMARY KEY,
  sku TEXT NOT NULL DEFAULT '',
  minimum_stock INTEGER,
  regular_price TEXT,
  sale_price TEXT,
  effective_price TEXT,
  stock_total INTEGER,
  stock_status TEXT
);

CREATE INDEX IF NOT EXISTS idx_products_sku ON products(sku);

-- Stock per product and branch
CREATE TABLE IF NOT EXISTS branch_stock (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  product_id INTEGER NOT NULL,
  branch_slug TEXT NOT NULL,
  stock_quantity INTEGER NOT NULL DEFAULT 0 CHECK (stock_quantity >= 0),
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE (product_id, branch_slug)
);

CREATE INDEX IF NOT EXISTS idx_branch_stock_branch ON branch_stock(branch_slug);

-- Single-slot key/value settings (last run log, sync lock)
CREATE TABLE IF NOT EXISTS sync_state (
  name TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

_UPSERT_STOCK_SQL = """
INSERT INTO branch_stock (product_id, branch_slug, stock_quantity, created_at, updated_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT (product_id, branch_slug) DO UPDATE SET
  stock_quantity = excluded.stock_quantity,
  updated_at = CASE
    WHEN excluded.stock_quantity <> branch_stock.stock_quantity THEN excluded.updated_at
    ELSE branch_stock.updated_at
  END
"""

_LOG_KEY = "last_run_log"
_LOCK_PREFIX = "lock:"


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


class SQLiteLedgerRepository(LedgerRepository):
    """Ledger stored in a single SQLite database file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn = _connect(self.db_path)
        ensure_schema(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(sql, tuple(params))
            rows = cur.fetchall()
            cur.close()
            return rows

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(sql, tuple(params))
            except sqlite3.Error as exc:
                raise PersistenceError(f"Ledger write failed: {exc}") from exc

    def add_product(self, product_id: int, sku: Optional[str]) -> None:
        """Register a local product and its SKU."""
        self._execute(
            """
            INSERT INTO products (product_id, sku) VALUES (?, ?)
            ON CONFLICT (product_id) DO UPDATE SET sku = excluded.sku
            """,
            (product_id, (sku or "").strip()),
        )

    def sku_index(self) -> dict[str, int]:
        try:
            rows = self._query(
                "SELECT product_id, sku FROM products WHERE sku <> '' ORDER BY product_id"
            )
        except sqlite3.Error as exc:
            raise SkuLookupError(f"Error querying SKUs: {exc}") from exc

        index: dict[str, int] = {}
        for row in rows:
            sku = str(row["sku"]).strip()
            if sku:
                index[sku] = int(row["product_id"])
        return index

    def get_stock(self, product_id: int, branch_slug: str) -> int:
        rows = self._query(
            "SELECT stock_quantity FROM branch_stock WHERE product_id=? AND branch_slug=?",
            (product_id, branch_slug),
        )
        return int(rows[0]["stock_quantity"]) if rows else 0

    def get_updated_at(self, product_id: int, branch_slug: str) -> Optional[str]:
        rows = self._query(
            "SELECT updated_at FROM branch_stock WHERE product_id=? AND branch_slug=?",
            (product_id, branch_slug),
        )
        return rows[0]["updated_at"] if rows else None

    def get_stock_levels(
        self, product_ids: Iterable[int], branches: Iterable[str]
    ) -> dict[tuple[int, str], int]:
        pids = [int(p) for p in product_ids]
        slugs = list(branches)
        if not pids or not slugs:
            return {}

        levels: dict[tuple[int, str], int] = {}
        # Chunk the IN list to stay under SQLite's bound-parameter limit.
        for start in range(0, len(pids), 500):
            chunk = pids[start : start + 500]
            rows = self._query(
                f"""
                SELECT product_id, branch_slug, stock_quantity
                FROM branch_stock
                WHERE product_id IN ({_placeholders(chunk)})
                  AND branch_slug IN ({_placeholders(slugs)})
                """,
                [*chunk, *slugs],
            )
            for row in rows:
                levels[(int(row["product_id"]), row["branch_slug"])] = int(
                    row["stock_quantity"]
                )
        return levels

    def get_product_stock(self, product_id: int) -> dict[str, int]:
        rows = self._query(
            "SELECT branch_slug, stock_quantity FROM branch_stock WHERE product_id=?",
            (product_id,),
        )
        return {row["branch_slug"]: int(row["stock_quantity"]) for row in rows}

    def get_branch_stock(self, branch_slug: str) -> dict[int, int]:
        rows = self._query(
            "SELECT product_id, stock_quantity FROM branch_stock WHERE branch_slug=?",
            (branch_slug,),
        )
        return {int(row["product_id"]): int(row["stock_quantity"]) for row in rows}

    def upsert_stock(self, product_id: int, branch_slug: str, quantity: int) -> None:
        self.upsert_stock_batch(branch_slug, [(product_id, quantity)])

    def upsert_stock_batch(
        self, branch_slug: str, rows: Sequence[tuple[int, int]]
    ) -> int:
        if not rows:
            return 0
        now = _now()
        params = [
            (int(pid), branch_slug, max(0, int(qty)), now, now) for pid, qty in rows
        ]
        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(_UPSERT_STOCK_SQL, params)
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"Upsert failed for branch {branch_slug}: {exc}"
                ) from exc
        return len(params)

    def get_minimum(self, product_id: int) -> int:
        rows = self._query(
            "SELECT minimum_stock FROM products WHERE product_id=?", (product_id,)
        )
        if not rows or rows[0]["minimum_stock"] is None:
            return 0
        return int(rows[0]["minimum_stock"])

    def get_minimums(self, product_ids: Iterable[int]) -> dict[int, int]:
        pids = [int(p) for p in product_ids]
        minimums: dict[int, int] = {}
        for start in range(0, len(pids), 500):
            chunk = pids[start : start + 500]
            rows = self._query(
                f"""
                SELECT product_id, minimum_stock FROM products
                WHERE product_id IN ({_placeholders(chunk)})
                  AND minimum_stock IS NOT NULL
                """,
                chunk,
            )
            for row in rows:
                minimums[int(row["product_id"])] = int(row["minimum_stock"])
        return minimums

    def set_minimum(self, product_id: int, value: int) -> None:
        self._execute(
            """
            INSERT INTO products (product_id, minimum_stock) VALUES (?, ?)
            ON CONFLICT (product_id) DO UPDATE SET minimum_stock = excluded.minimum_stock
            """,
            (product_id, max(0, int(value))),
        )

    @staticmethod
    def _row_prices(row: sqlite3.Row) -> PriceAttributes:
        return PriceAttributes(
            regular_price=row["regular_price"],
            sale_price=row["sale_price"],
            effective_price=row["effective_price"],
        )

    def get_prices(self, product_id: int) -> PriceAttributes:
        rows = self._query(
            """
            SELECT regular_price, sale_price, effective_price
            FROM products WHERE product_id=?
            """,
            (product_id,),
        )
        return self._row_prices(rows[0]) if rows else PriceAttributes()

    def get_price_map(self, product_ids: Iterable[int]) -> dict[int, PriceAttributes]:
        pids = [int(p) for p in product_ids]
        prices: dict[int, PriceAttributes] = {}
        for start in range(0, len(pids), 500):
            chunk = pids[start : start + 500]
            rows = self._query(
                f"""
                SELECT product_id, regular_price, sale_price, effective_price
                FROM products WHERE product_id IN ({_placeholders(chunk)})
                """,
                chunk,
            )
            for row in rows:
                prices[int(row["product_id"])] = self._row_prices(row)
        return prices

    def set_prices(
        self,
        product_id: int,
        *,
        regular: Optional[str],
        sale: Optional[str],
        effective: Optional[str],
    ) -> None:
        self._execute(
            """
            INSERT INTO products (product_id, regular_price, sale_price, effective_price)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (product_id) DO UPDATE SET
              regular_price = excluded.regular_price,
              sale_price = excluded.sale_price,
              effective_price = excluded.effective_price
            """,
            (product_id, regular, sale, effective),
        )

    def set_aggregate_stock(self, product_id: int, total_quantity: int) -> None:
        status = "instock" if total_quantity > 0 else "outofstock"
        self._execute(
            """
            INSERT INTO products (product_id, stock_total, stock_status) VALUES (?, ?, ?)
            ON CONFLICT (product_id) DO UPDATE SET
              stock_total = excluded.stock_total,
              stock_status = excluded.stock_status
            """,
            (product_id, total_quantity, status),
        )

    def get_aggregate_stock(self, product_id: int) -> Optional[AggregateStock]:
        rows = self._query(
            "SELECT stock_total, stock_status FROM products WHERE product_id=?",
            (product_id,),
        )
        if not rows or rows[0]["stock_total"] is None:
            return None
        return AggregateStock(
            product_id=product_id,
            total_quantity=int(rows[0]["stock_total"]),
            in_stock=rows[0]["stock_status"] == "instock",
        )

    def _get_state(self, name: str) -> Optional[str]:
        rows = self._query("SELECT value FROM sync_state WHERE name=?", (name,))
        return rows[0]["value"] if rows else None

    def _set_state(self, name: str, value: str) -> None:
        self._execute(
            """
            INSERT INTO sync_state (name, value) VALUES (?, ?)
            ON CONFLICT (name) DO UPDATE SET value = excluded.value
            """,
            (name, value),
        )

    def _delete_state(self, name: str) -> None:
        self._execute("DELETE FROM sync_state WHERE name=?", (name,))

    def persist_log(self, entries: Sequence[str]) -> None:
        self._set_state(_LOG_KEY, json.dumps(list(entries), ensure_ascii=False))

    def get_logs(self) -> list[str]:
        raw = self._get_state(_LOG_KEY)
        if raw is None:
            return []
        logs = json.loads(raw)
        return [str(line) for line in logs] if isinstance(logs, list) else []

    def clear_logs(self) -> None:
        self._delete_state(_LOG_KEY)

    def get_lock_expiry(self, name: str) -> Optional[float]:
        raw = self._get_state(_LOCK_PREFIX + name)
        return float(raw) if raw is not None else None

    def set_lock_expiry(self, name: str, expires_at: float) -> None:
        self._set_state(_LOCK_PREFIX + name, repr(float(expires_at)))

    def delete_lock(self, name: str) -> None:
        self._delete_state(_LOCK_PREFIX + name)
