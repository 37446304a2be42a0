"""Repository interfaces for the branch stock ledger."""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence


@dataclass(frozen=True)
class StockRecord:
    """Persisted stock of one product in one branch."""

    product_id: int
    branch_slug: str
    quantity: int


@dataclass(frozen=True)
class PriceAttributes:
    """Persisted price fields of a product (two-decimal strings)."""

    regular_price: Optional[str] = None
    sale_price: Optional[str] = None
    effective_price: Optional[str] = None


@dataclass(frozen=True)
class AggregateStock:
    """Total stock across branches, mirrored onto the product."""

    product_id: int
    total_quantity: int
    in_stock: bool


class LedgerRepository(Protocol):
    """Persistence operations required by the sync pipeline and its readers."""

    def sku_index(self) -> dict[str, int]:
        ...

    def get_stock(self, product_id: int, branch_slug: str) -> int:
        ...

    def get_stock_levels(
        self, product_ids: Iterable[int], branches: Iterable[str]
    ) -> dict[tuple[int, str], int]:
        ...

    def get_product_stock(self, product_id: int) -> dict[str, int]:
        ...

    def get_branch_stock(self, branch_slug: str) -> dict[int, int]:
        ...

    def upsert_stock(self, product_id: int, branch_slug: str, quantity: int) -> None:
        ...

    def upsert_stock_batch(
        self, branch_slug: str, rows: Sequence[tuple[int, int]]
    ) -> int:
        ...

    def get_minimum(self, product_id: int) -> int:
        ...

    def get_minimums(self, product_ids: Iterable[int]) -> dict[int, int]:
        ...

    def set_minimum(self, product_id: int, value: int) -> None:
        ...

    def get_prices(self, product_id: int) -> PriceAttributes:
        ...

    def get_price_map(self, product_ids: Iterable[int]) -> dict[int, PriceAttributes]:
        ...

    def set_prices(
        self,
        product_id: int,
        *,
        regular: Optional[str],
        sale: Optional[str],
        effective: Optional[str],
    ) -> None:
        ...

    def set_aggregate_stock(self, product_id: int, total_quantity: int) -> None:
        ...

    def get_aggregate_stock(self, product_id: int) -> Optional[AggregateStock]:
        ...

    def persist_log(self, entries: Sequence[str]) -> None:
        ...

    def get_logs(self) -> list[str]:
        ...

    def clear_logs(self) -> None:
        ...

    def get_lock_expiry(self, name: str) -> Optional[float]:
        ...

    def set_lock_expiry(self, name: str, expires_at: float) -> None:
        ...

    def delete_lock(self, name: str) -> None:
        ...
