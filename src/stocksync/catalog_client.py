"""HTTP client for the supplier catalog snapshot."""

import json
import logging
from typing import Any, Optional

import httpx

from .config import SyncConfig
from .exceptions import EmptyResultError, HTTPError, ParseError, TransportError
from .models import RemoteCatalogEntry

logger = logging.getLogger(__name__)


class RemoteCatalogClient:
    """Fetch the supplier catalog with a single bounded-timeout GET."""

    def __init__(
        self, config: SyncConfig, client: Optional[httpx.Client] = None
    ) -> None:
        self.config = config
        self._client = client
        self.dropped_rows = 0

    def fetch(self) -> list[RemoteCatalogEntry]:
        """
        Download and decode the catalog.

        Raises:
            TransportError: the endpoint could not be reached
            HTTPError: status code other than 200
            ParseError: body is not JSON or not a JSON array
            EmptyResultError: the array has no elements
        """
        self.dropped_rows = 0
        params = {"apikey": self.config.catalog_api_key or ""}
        try:
            if self._client is not None:
                response = self._client.get(
                    self.config.catalog_api_url,
                    params=params,
                    timeout=self.config.request_timeout_sec,
                )
            else:
                with httpx.Client(timeout=self.config.request_timeout_sec) as client:
                    response = client.get(self.config.catalog_api_url, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Catalog request failed: {e}")
            raise TransportError(f"Catalog request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Catalog API error {response.status_code}")
            raise HTTPError(response.status_code)

        try:
            payload = json.loads(response.content)
        except (ValueError, UnicodeDecodeError) as e:
            raise ParseError("Invalid JSON response from catalog API") from e

        return self._parse_payload(payload)

    def _parse_payload(self, payload: Any) -> list[RemoteCatalogEntry]:
        if not isinstance(payload, list):
            raise ParseError(
                f"Catalog API returned {type(payload).__name__}, expected an array"
            )
        if not payload:
            raise EmptyResultError("Catalog API returned an empty array")

        entries: list[RemoteCatalogEntry] = []
        for row in payload:
            if not isinstance(row, dict):
                self.dropped_rows += 1
                continue
            entries.append(RemoteCatalogEntry.from_payload(row))

        return entries
