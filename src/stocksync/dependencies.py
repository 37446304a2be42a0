"""Shared FastAPI app resource container and provider dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import cast

from fastapi import Depends, HTTPException, Request, status

from stocksync.catalog_client import RemoteCatalogClient
from stocksync.config import SyncConfig
from stocksync.coordinator import CatalogSource, SyncCoordinator
from stocksync.repositories.base import LedgerRepository
from stocksync.services.stock_query import StockQueryService


@dataclass
class AppResources:
    """App-scoped resources initialized during FastAPI lifespan."""

    config: SyncConfig
    repository: LedgerRepository


def get_app_resources(request: Request) -> AppResources:
    """Return initialized app resources from state."""
    resources = getattr(request.app.state, "stocksync_resources", None)
    if resources is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Application resources are not initialized",
        )
    return cast(AppResources, resources)


def get_app_config(resources: AppResources = Depends(get_app_resources)) -> SyncConfig:
    """Get app-scoped config instance."""
    return resources.config


def get_repository(
    resources: AppResources = Depends(get_app_resources),
) -> LedgerRepository:
    """Get app-scoped ledger repository."""
    return resources.repository


def get_catalog_client(config: SyncConfig = Depends(get_app_config)) -> CatalogSource:
    """Get catalog client instance (per-request)."""
    return RemoteCatalogClient(config)


def get_coordinator(
    config: SyncConfig = Depends(get_app_config),
    repository: LedgerRepository = Depends(get_repository),
    catalog: CatalogSource = Depends(get_catalog_client),
) -> SyncCoordinator:
    """Get a coordinator for a manual run (per-request)."""
    return SyncCoordinator(config, repository, catalog)


def get_stock_query_service(
    config: SyncConfig = Depends(get_app_config),
    repository: LedgerRepository = Depends(get_repository),
) -> StockQueryService:
    """Get ledger query service."""
    return StockQueryService(repository, config.get_branch_labels())
