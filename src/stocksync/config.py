"""Configuration management for the branch stock reconciler."""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_BRANCHES = ("stock_espana", "stock_sanber")
DEFAULT_CATALOG_API_URL = "https://webser.uno/webservice/boutique_api/articulo.php"
MAX_BATCH_SIZE = 200


class SyncConfig(BaseSettings):
    """Configuration for catalog sync runs."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    catalog_api_url: str = Field(
        default=DEFAULT_CATALOG_API_URL,
        description="Fully-qualified supplier catalog endpoint",
    )

    catalog_api_key: Optional[str] = Field(
        default=None,
        description="Supplier API key sent as the apikey query parameter",
    )

    request_timeout_sec: float = Field(
        default=8.0,
        ge=1.0,
        le=60.0,
        description="Catalog request timeout in seconds",
    )

    branches: str = Field(
        default=",".join(DEFAULT_BRANCHES),
        description="Comma-separated branch slugs (one remote field per branch)",
    )

    branch_labels: str = Field(
        default="stock_espana:Asunción,stock_sanber:San Bernardino",
        description="Comma-separated slug:label pairs used for display",
    )

    lock_ttl_sec: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Expiry of the advisory sync lock in seconds",
    )

    batch_size: int = Field(
        default=MAX_BATCH_SIZE,
        ge=1,
        le=MAX_BATCH_SIZE,
        description="Maximum stock rows written per upsert batch",
    )

    sync_aggregate_stock: bool = Field(
        default=True,
        description="Recompute per-product total stock after stock updates",
    )

    database_path: Path = Field(
        default=Path.cwd() / "stocksync.db",
        description="SQLite ledger location",
    )

    api_host: str = Field(
        default="0.0.0.0",
        description="API host address",
    )

    api_port: int = Field(
        default=8000,
        description="API port",
    )

    api_keys: str = Field(
        default="",
        description="Comma-separated API keys for authentication",
    )

    dev_bypass_api_key: bool = Field(
        default=False,
        description="Bypass API key verification for local development only",
    )

    @field_validator("branches")
    @classmethod
    def validate_branch_slugs(cls, v: str) -> str:
        """Reject slugs with characters outside [a-z0-9_-]."""
        for slug in (s.strip() for s in v.split(",")):
            if not slug:
                continue
            if not all(ch.isalnum() or ch in "_-" for ch in slug):
                raise ValueError(
                    f"Invalid branch slug: '{slug}'. "
                    "Use letters, digits, '_' or '-'."
                )
        return v

    def get_branches(self) -> list[str]:
        """Parse configured branch slugs, keeping order and dropping duplicates."""
        slugs: list[str] = []
        for raw in self.branches.split(","):
            slug = raw.strip()
            if slug and slug not in slugs:
                slugs.append(slug)

        if not slugs:
            logger.warning(
                "BRANCHES produced empty list (value: '%s'). Using defaults: %s",
                self.branches,
                ", ".join(DEFAULT_BRANCHES),
            )
            return list(DEFAULT_BRANCHES)

        return slugs

    def get_branch_labels(self) -> dict[str, str]:
        """Map each configured branch slug to its display label."""
        labels: dict[str, str] = {}
        for pair in self.branch_labels.split(","):
            slug, sep, label = pair.partition(":")
            if sep and slug.strip() and label.strip():
                labels[slug.strip()] = label.strip()
        return {slug: labels.get(slug, slug) for slug in self.get_branches()}

    def validate_config(self) -> None:
        """Validate configuration at startup. Raises ValueError if invalid."""
        errors = []

        parsed = urlparse(self.catalog_api_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append("CATALOG_API_URL must be an absolute http(s) URL")

        if not self.catalog_api_key:
            errors.append("CATALOG_API_KEY is required")

        if self.batch_size < 1 or self.batch_size > MAX_BATCH_SIZE:
            errors.append(f"BATCH_SIZE must be between 1 and {MAX_BATCH_SIZE}")

        if self.lock_ttl_sec < 1:
            errors.append("LOCK_TTL_SEC must be positive")

        if errors:
            raise ValueError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


_config_instance = None


def get_config() -> SyncConfig:
    """Get or create global configuration instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = SyncConfig()
        _config_instance.validate_config()
        logger.info("Configuration validated successfully")
    return _config_instance


def get_config_unvalidated() -> SyncConfig:
    """Get or create global configuration instance without validation."""
    global _config_instance
    if _config_instance is None:
        _config_instance = SyncConfig()
    return _config_instance


def reload_config() -> SyncConfig:
    """Reload configuration (useful for testing)."""
    global _config_instance
    _config_instance = SyncConfig()
    return _config_instance
