"""Shared test fixtures."""

from collections.abc import Callable, Generator
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from stocksync.api import create_app, limiter
from stocksync.config import SyncConfig
from stocksync.dependencies import AppResources, get_catalog_client
from stocksync.models import RemoteCatalogEntry
from stocksync.repositories.memory import InMemoryLedgerRepository

TEST_API_KEY = "test-api-key"
TEST_BRANCHES = ("stock_espana", "stock_sanber")


class StaticCatalog:
    """Catalog source serving fixed rows, or raising a fixed error."""

    def __init__(
        self,
        rows: Optional[list[dict[str, Any]]] = None,
        error: Optional[Exception] = None,
        on_fetch: Optional[Callable[[], None]] = None,
    ) -> None:
        self.rows = rows or []
        self.error = error
        self.on_fetch = on_fetch
        self.calls = 0
        self.dropped_rows = 0

    def fetch(self) -> list[RemoteCatalogEntry]:
        self.calls += 1
        if self.on_fetch is not None:
            self.on_fetch()
        if self.error is not None:
            raise self.error
        return [RemoteCatalogEntry.from_payload(row) for row in self.rows]


class RecordingLedger(InMemoryLedgerRepository):
    """Records stock batch sizes and optionally fails on the n-th batch."""

    def __init__(self, fail_on_batch: Optional[int] = None) -> None:
        super().__init__()
        self.batches: list[tuple[str, int]] = []
        self.fail_on_batch = fail_on_batch

    def upsert_stock_batch(self, branch_slug, rows):
        if self.fail_on_batch is not None and len(self.batches) == self.fail_on_batch:
            raise RuntimeError("disk full")
        self.batches.append((branch_slug, len(rows)))
        return super().upsert_stock_batch(branch_slug, rows)


@pytest.fixture
def sync_config() -> SyncConfig:
    """Provide a test-owned config instance independent of the environment."""
    return SyncConfig(
        _env_file=None,
        catalog_api_url="https://catalog.example/articulo.php",
        catalog_api_key="test-key",
        branches=",".join(TEST_BRANCHES),
        branch_labels="stock_espana:Asunción,stock_sanber:San Bernardino",
        batch_size=200,
        lock_ttl_sec=60,
        api_keys=TEST_API_KEY,
        dev_bypass_api_key=False,
    )


@pytest.fixture
def ledger() -> InMemoryLedgerRepository:
    """In-memory ledger with three registered products."""
    repository = InMemoryLedgerRepository()
    repository.add_product(1, "A1")
    repository.add_product(2, "B2")
    repository.add_product(3, "C3")
    return repository


@pytest.fixture
def catalog_rows() -> list[dict[str, Any]]:
    """Catalog snapshot matching the seeded ledger products."""
    return [
        {
            "codigo": "A1",
            "stock_espana": "5",
            "stock_sanber": 2,
            "stockmin": "1",
            "precioventa": "10.00",
            "preciopromo": "0",
        },
        {
            "codigo": "B2",
            "stock_espana": 0,
            "stock_sanber": "7",
            "stockmin": 0,
            "precioventa": "25,5",
            "preciopromo": "20",
        },
        {"codigo": "ZZ9", "stock_espana": 3},
        {"codigo": "", "stock_espana": 1},
    ]


@pytest.fixture
def static_catalog(catalog_rows: list[dict[str, Any]]) -> StaticCatalog:
    return StaticCatalog(rows=catalog_rows)


@pytest.fixture
def api_test_app(
    monkeypatch: pytest.MonkeyPatch,
    sync_config: SyncConfig,
    ledger: InMemoryLedgerRepository,
    static_catalog: StaticCatalog,
) -> Generator[Any, None, None]:
    """Create a fresh FastAPI app over the in-memory ledger."""
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:5173")
    limiter.reset()
    app = create_app(AppResources(config=sync_config, repository=ledger))
    app.dependency_overrides[get_catalog_client] = lambda: static_catalog
    try:
        yield app
    finally:
        app.dependency_overrides.clear()
        limiter.reset()


@pytest.fixture
def api_test_client(api_test_app: Any) -> Generator[TestClient, None, None]:
    """Create a TestClient for the overridden API app."""
    with TestClient(api_test_app) as client:
        yield client
