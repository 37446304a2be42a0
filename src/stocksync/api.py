"""FastAPI application exposing the manual sync trigger and ledger queries."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from stocksync.auth import verify_api_key
from stocksync.config import SyncConfig, get_config
from stocksync.coordinator import SyncCoordinator
from stocksync.dependencies import (
    AppResources,
    get_app_config,
    get_coordinator,
    get_repository,
    get_stock_query_service,
)
from stocksync.exceptions import ContractError
from stocksync.models import ProductStockResponse, SyncLogsResponse, SyncRunResult
from stocksync.repositories.base import LedgerRepository
from stocksync.services.stock_query import StockQueryService

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
    swallow_errors=True,
)


def get_allowed_origins() -> list[str]:
    """Get allowed CORS origins from environment."""
    origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173")
    return [origin.strip() for origin in origins.split(",") if origin.strip()]


def build_resources(config: SyncConfig) -> AppResources:
    """Open the SQLite ledger configured for this process."""
    from stocksync.repositories.sqlite import SQLiteLedgerRepository

    return AppResources(
        config=config,
        repository=SQLiteLedgerRepository(config.database_path),
    )


def create_app(resources: Optional[AppResources] = None) -> FastAPI:
    """Build the API app; resources default to the configured SQLite ledger."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = None if resources is not None else build_resources(get_config())
        app.state.stocksync_resources = resources or owned
        try:
            yield
        finally:
            if owned is not None:
                owned.repository.close()

    app = FastAPI(
        title="Branch Stock Sync Service",
        description="Reconcile supplier catalog stock, minimums and prices per branch",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    @limiter.exempt
    async def health_check() -> Dict[str, Any]:
        """Health check endpoint for container orchestration."""
        return {
            "status": "healthy",
            "service": "branch-stock-sync",
            "version": "1.0.0",
        }

    @app.post(
        "/sync",
        response_model=SyncRunResult,
        status_code=status.HTTP_200_OK,
        responses={
            401: {"description": "Missing or invalid API key"},
            429: {"description": "Rate limit exceeded"},
        },
    )
    @limiter.limit("6/minute")
    async def trigger_sync(
        request: Request,
        user: dict[str, Any] = Depends(verify_api_key),
        coordinator: SyncCoordinator = Depends(get_coordinator),
    ) -> SyncRunResult:
        """Run a manual sync and return its full log."""
        _ = user
        result = await run_in_threadpool(coordinator.run, True)
        logger.info(
            "manual sync finished: status=%s writes=%d",
            result.status,
            result.counts.total,
        )
        return result

    @app.get("/sync/logs", response_model=SyncLogsResponse)
    async def get_sync_logs(
        user: dict[str, Any] = Depends(verify_api_key),
        repository: LedgerRepository = Depends(get_repository),
    ) -> SyncLogsResponse:
        """Return the log of the last persisted run."""
        _ = user
        return SyncLogsResponse(logs=await run_in_threadpool(repository.get_logs))

    @app.delete("/sync/logs", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_sync_logs(
        user: dict[str, Any] = Depends(verify_api_key),
        repository: LedgerRepository = Depends(get_repository),
    ) -> Response:
        """Clear the last-run log slot."""
        _ = user
        await run_in_threadpool(repository.clear_logs)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/products/{product_id}/stock", response_model=ProductStockResponse)
    async def get_product_stock(
        product_id: int,
        branch: Optional[str] = Query(None, description="Restrict to one branch slug"),
        user: dict[str, Any] = Depends(verify_api_key),
        config: SyncConfig = Depends(get_app_config),
        query_service: StockQueryService = Depends(get_stock_query_service),
    ) -> ProductStockResponse:
        """Per-branch stock, minimum and available stock of a product."""
        _ = user
        if branch is not None and branch not in config.get_branches():
            raise ContractError(
                "UNKNOWN_BRANCH",
                f"Unknown branch: {branch}",
                status_code=404,
                details={"branches": config.get_branches()},
            )
        return await run_in_threadpool(
            query_service.get_product_stock_summary, product_id, branch
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exceeded_handler(
        request: Request, exc: RateLimitExceeded
    ) -> JSONResponse:
        """Rate limit exceeded handler."""
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Please try again later."},
        )

    @app.exception_handler(ContractError)
    async def contract_error_handler(request: Request, exc: ContractError) -> JSONResponse:
        """Map domain contract errors to stable API error payload."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    return app


app = create_app()
