"""Pydantic data models for catalog entries and sync results."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

CATALOG_FIELDS = ("codigo", "stockmin", "precioventa", "preciopromo")


class RemoteCatalogEntry(BaseModel):
    """One product row of the supplier catalog snapshot."""

    code: str = Field("", description="Supplier product code (codigo)")
    stockmin: Any = Field(None, description="Minimum stock, loosely typed")
    precioventa: Any = Field(None, description="Regular price, loosely typed")
    preciopromo: Any = Field(None, description="Promotional price, loosely typed")
    branch_fields: Dict[str, Any] = Field(
        default_factory=dict,
        description="Every other remote key, expected to be branch stock columns",
    )

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> "RemoteCatalogEntry":
        """Build an entry from a decoded JSON object."""
        raw_code = row.get("codigo")
        code = "" if raw_code is None else str(raw_code).strip()
        return cls(
            code=code,
            stockmin=row.get("stockmin"),
            precioventa=row.get("precioventa"),
            preciopromo=row.get("preciopromo"),
            branch_fields={k: v for k, v in row.items() if k not in CATALOG_FIELDS},
        )


class SyncCounts(BaseModel):
    """Writes performed by a sync run."""

    stock_updates: int = 0
    minimum_updates: int = 0
    price_updates: int = 0
    aggregate_updates: int = 0

    @property
    def total(self) -> int:
        return (
            self.stock_updates
            + self.minimum_updates
            + self.price_updates
            + self.aggregate_updates
        )


class SyncRunResult(BaseModel):
    """Outcome of one coordinator run."""

    status: Literal["completed", "failed", "skipped"]
    manual: bool
    counts: SyncCounts = Field(default_factory=SyncCounts)
    logs: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class SyncLogsResponse(BaseModel):
    """Last persisted run log."""

    logs: List[str]


class BranchStock(BaseModel):
    """Stock figures of one product in one branch."""

    branch: str
    label: str
    stock_quantity: int = Field(..., ge=0)
    minimum_stock: int = Field(..., ge=0)
    available_stock: int = Field(..., ge=0)


class ProductStockResponse(BaseModel):
    """Per-branch stock summary for a product."""

    product_id: int
    total_stock: int
    branches: List[BranchStock]
