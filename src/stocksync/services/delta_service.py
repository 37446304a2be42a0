"""Change detection between the catalog snapshot and the ledger."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from stocksync.models import RemoteCatalogEntry
from stocksync.normalizer import (
    effective_price,
    normalize_price,
    normalize_quantity,
)
from stocksync.repositories.base import LedgerRepository, PriceAttributes


@dataclass(frozen=True)
class StockDelta:
    """New quantity for one (product, branch) pair."""

    product_id: int
    branch_slug: str
    quantity: int


@dataclass(frozen=True)
class MinimumDelta:
    """New minimum-stock threshold for a product."""

    product_id: int
    minimum_quantity: int


@dataclass(frozen=True)
class PriceDelta:
    """Full price state to write for a product whose prices changed."""

    product_id: int
    regular_price: Optional[str]
    sale_price: Optional[str]
    effective_price: Optional[str]
    regular_changed: bool
    sale_changed: bool

    @property
    def changed_fields(self) -> int:
        return int(self.regular_changed) + int(self.sale_changed)


@dataclass
class DeltaSet:
    """All changes computed for one run."""

    stock: dict[str, list[StockDelta]] = field(default_factory=dict)
    minimums: list[MinimumDelta] = field(default_factory=list)
    prices: list[PriceDelta] = field(default_factory=list)

    @property
    def stock_count(self) -> int:
        return sum(len(rows) for rows in self.stock.values())

    @property
    def total(self) -> int:
        return self.stock_count + len(self.minimums) + len(self.prices)

    def is_empty(self) -> bool:
        return self.total == 0


def compute_stock_deltas(
    resolved: dict[int, RemoteCatalogEntry],
    branches: list[str],
    current: dict[tuple[int, str], int],
) -> dict[str, list[StockDelta]]:
    """Emit a delta per branch field whose quantity differs or has no record."""
    deltas: dict[str, list[StockDelta]] = {}
    for product_id, entry in resolved.items():
        for slug in branches:
            if slug not in entry.branch_fields:
                continue
            quantity = normalize_quantity(entry.branch_fields[slug])
            if quantity is None:
                continue

            stored = current.get((product_id, slug))
            if stored is None or stored != quantity:
                deltas.setdefault(slug, []).append(
                    StockDelta(product_id=product_id, branch_slug=slug, quantity=quantity)
                )
    return deltas


def compute_minimum_deltas(
    resolved: dict[int, RemoteCatalogEntry], current: dict[int, int]
) -> list[MinimumDelta]:
    """Missing stored minimums compare as 0."""
    deltas: list[MinimumDelta] = []
    for product_id, entry in resolved.items():
        minimum = normalize_quantity(entry.stockmin)
        if minimum is None:
            continue
        if current.get(product_id, 0) != minimum:
            deltas.append(MinimumDelta(product_id=product_id, minimum_quantity=minimum))
    return deltas


def compute_price_delta(
    product_id: int, entry: RemoteCatalogEntry, current: PriceAttributes
) -> Optional[PriceDelta]:
    """
    Diff the regular/sale price pair of one product.

    A positive promo price replaces a different stored sale price. A zero,
    empty or unparsable promo price clears any stored sale price. The
    effective price is recomputed from the resulting pair whenever either
    price changes.
    """
    regular = current.regular_price
    sale = current.sale_price
    regular_changed = False
    sale_changed = False

    incoming_regular = normalize_price(entry.precioventa)
    if incoming_regular is not None and incoming_regular != (regular or ""):
        regular = incoming_regular
        regular_changed = True

    incoming_sale = normalize_price(entry.preciopromo)
    if incoming_sale is not None and Decimal(incoming_sale) > 0:
        if incoming_sale != (sale or ""):
            sale = incoming_sale
            sale_changed = True
    elif sale:
        sale = None
        sale_changed = True

    if not (regular_changed or sale_changed):
        return None

    return PriceDelta(
        product_id=product_id,
        regular_price=regular,
        sale_price=sale,
        effective_price=effective_price(regular, sale),
        regular_changed=regular_changed,
        sale_changed=sale_changed,
    )


def compute_deltas(
    resolved: dict[int, RemoteCatalogEntry],
    branches: list[str],
    repository: LedgerRepository,
) -> DeltaSet:
    """Read current ledger state for the resolved products and diff all attributes."""
    if not resolved:
        return DeltaSet()

    product_ids = list(resolved)
    stock_levels = repository.get_stock_levels(product_ids, branches)
    minimums = repository.get_minimums(product_ids)
    prices = repository.get_price_map(product_ids)

    price_deltas: list[PriceDelta] = []
    for product_id, entry in resolved.items():
        delta = compute_price_delta(
            product_id, entry, prices.get(product_id, PriceAttributes())
        )
        if delta is not None:
            price_deltas.append(delta)

    return DeltaSet(
        stock=compute_stock_deltas(resolved, branches, stock_levels),
        minimums=compute_minimum_deltas(resolved, minimums),
        prices=price_deltas,
    )
