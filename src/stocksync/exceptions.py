"""Custom exceptions for sync failures and API contract errors."""

from typing import Any, Dict, Optional


class SyncError(Exception):
    """Fatal error that aborts a sync run."""


class TransportError(SyncError):
    """Catalog endpoint could not be reached."""


class HTTPError(SyncError):
    """Catalog endpoint answered with a non-200 status."""

    def __init__(self, code: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"HTTP {code} from catalog API")
        self.code = code


class ParseError(SyncError):
    """Catalog body is not a JSON array."""


class EmptyResultError(SyncError):
    """Catalog returned an empty array."""


class SkuLookupError(SyncError):
    """Local SKU index could not be built."""


class PersistenceError(SyncError):
    """A ledger write failed."""


class ContractError(Exception):
    """Error that maps to a stable API error payload."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
