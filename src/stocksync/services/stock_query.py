"""Read-side queries over the branch stock ledger."""

from typing import Optional

from stocksync.models import BranchStock, ProductStockResponse
from stocksync.repositories.base import LedgerRepository


class StockQueryService:
    """Stock figures for downstream consumers (storefront, admin, API)."""

    def __init__(
        self,
        repository: LedgerRepository,
        branch_labels: Optional[dict[str, str]] = None,
    ) -> None:
        self.repository = repository
        self.branch_labels = branch_labels or {}

    def get_stock(self, product_id: int, branch_slug: str) -> int:
        return self.repository.get_stock(product_id, branch_slug)

    def get_total_stock(self, product_id: int) -> int:
        return sum(self.repository.get_product_stock(product_id).values())

    def get_minimum_stock(self, product_id: int) -> int:
        return self.repository.get_minimum(product_id)

    def get_available_stock(self, product_id: int, branch_slug: str) -> int:
        """Sellable stock: quantity minus the product minimum, never negative."""
        available = self.get_stock(product_id, branch_slug) - self.get_minimum_stock(
            product_id
        )
        return max(0, available)

    def has_sufficient_stock(
        self, product_id: int, branch_slug: str, required_quantity: int = 1
    ) -> bool:
        return self.get_available_stock(product_id, branch_slug) >= required_quantity

    def products_with_available_stock(self, branch_slug: str) -> list[int]:
        """Products whose stock in the branch exceeds their minimum."""
        stock = self.repository.get_branch_stock(branch_slug)
        minimums = self.repository.get_minimums(stock)
        return sorted(
            pid for pid, qty in stock.items() if qty > minimums.get(pid, 0)
        )

    def get_product_stock_summary(
        self, product_id: int, branch_slug: Optional[str] = None
    ) -> ProductStockResponse:
        """Per-branch quantity, minimum and available stock for a product."""
        stock = self.repository.get_product_stock(product_id)
        minimum = self.get_minimum_stock(product_id)

        slugs = list(self.branch_labels) or sorted(stock)
        for slug in sorted(stock):
            if slug not in slugs:
                slugs.append(slug)
        if branch_slug is not None:
            slugs = [branch_slug]

        branches = [
            BranchStock(
                branch=slug,
                label=self.branch_labels.get(slug, slug),
                stock_quantity=stock.get(slug, 0),
                minimum_stock=minimum,
                available_stock=max(0, stock.get(slug, 0) - minimum),
            )
            for slug in slugs
        ]
        return ProductStockResponse(
            product_id=product_id,
            total_stock=sum(stock.values()),
            branches=branches,
        )
