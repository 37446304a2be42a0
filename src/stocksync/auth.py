"""API key authentication helpers for FastAPI endpoints."""

import secrets
from typing import Any, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from stocksync.config import SyncConfig
from stocksync.dependencies import get_app_config

bearer_scheme = HTTPBearer(auto_error=False)
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _get_api_keys(config: SyncConfig) -> set[str]:
    return {k.strip() for k in config.api_keys.split(",") if k.strip()}


def _matches_any(token: str, keys: set[str]) -> bool:
    return any(secrets.compare_digest(token, key) for key in keys)


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    header_key: Optional[str] = Security(api_key_header),
    config: SyncConfig = Depends(get_app_config),
) -> dict[str, Any]:
    """Accept an API key from X-API-Key or an Authorization: Bearer header."""
    if config.dev_bypass_api_key:
        return {"id": "dev-bypass", "auth": "bypass"}

    api_keys = _get_api_keys(config)
    if not api_keys:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service is not configured",
        )

    token = header_key
    if token is None and credentials is not None:
        if credentials.scheme.lower() == "bearer":
            token = credentials.credentials

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )

    if not _matches_any(token, api_keys):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return {"id": "api-key-user", "auth": "api_key"}
