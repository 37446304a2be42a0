"""Tests for SyncConfig."""

import pytest
from pydantic import ValidationError

from stocksync.config import (
    DEFAULT_BRANCHES,
    SyncConfig,
    get_config,
    get_config_unvalidated,
    reload_config,
)


def test_get_branches_keeps_order():
    config = SyncConfig(_env_file=None, branches="stock_sanber,stock_espana")
    assert config.get_branches() == ["stock_sanber", "stock_espana"]


def test_get_branches_trims_and_dedups():
    """Whitespace and repeated slugs are dropped."""
    config = SyncConfig(_env_file=None, branches=" a , b ,a,, c ")
    assert config.get_branches() == ["a", "b", "c"]


def test_get_branches_empty_falls_back_to_defaults():
    config = SyncConfig(_env_file=None, branches=" , ")
    assert config.get_branches() == list(DEFAULT_BRANCHES)


def test_invalid_branch_slug_rejected():
    with pytest.raises(ValidationError):
        SyncConfig(_env_file=None, branches="stock espana")


def test_branch_labels_default_to_slug():
    config = SyncConfig(
        _env_file=None,
        branches="stock_espana,stock_new",
        branch_labels="stock_espana:Asunción,bogus",
    )
    assert config.get_branch_labels() == {
        "stock_espana": "Asunción",
        "stock_new": "stock_new",
    }


def test_defaults(monkeypatch):
    """Defaults match the documented runtime values."""
    for name in ("CATALOG_API_KEY", "BATCH_SIZE", "LOCK_TTL_SEC", "REQUEST_TIMEOUT_SEC"):
        monkeypatch.delenv(name, raising=False)
    config = SyncConfig(_env_file=None)
    assert config.catalog_api_key is None
    assert config.batch_size == 200
    assert config.lock_ttl_sec == 60
    assert config.request_timeout_sec == 8.0
    assert config.sync_aggregate_stock is True


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("CATALOG_API_KEY", "env-key")
    monkeypatch.setenv("BRANCHES", "north,south")
    monkeypatch.setenv("BATCH_SIZE", "50")
    config = SyncConfig(_env_file=None)
    assert config.catalog_api_key == "env-key"
    assert config.get_branches() == ["north", "south"]
    assert config.batch_size == 50


def test_batch_size_upper_bound():
    with pytest.raises(ValidationError):
        SyncConfig(_env_file=None, batch_size=201)


def test_validate_config_missing_api_key():
    config = SyncConfig(_env_file=None, catalog_api_key=None)
    with pytest.raises(ValueError, match="CATALOG_API_KEY is required"):
        config.validate_config()


def test_validate_config_relative_url():
    config = SyncConfig(
        _env_file=None, catalog_api_key="k", catalog_api_url="/articulo.php"
    )
    with pytest.raises(ValueError, match="absolute http"):
        config.validate_config()


def test_validate_config_valid():
    config = SyncConfig(_env_file=None, catalog_api_key="k")
    config.validate_config()


def test_config_singleton(monkeypatch):
    monkeypatch.setenv("CATALOG_API_KEY", "singleton-key")
    monkeypatch.setattr("stocksync.config._config_instance", None)
    first = get_config()
    second = get_config()
    assert first is second
    assert get_config_unvalidated() is first


def test_get_config_raises_when_invalid(monkeypatch):
    monkeypatch.delenv("CATALOG_API_KEY", raising=False)
    monkeypatch.setenv("CATALOG_API_URL", "not-a-url")
    monkeypatch.setattr("stocksync.config._config_instance", None)
    with pytest.raises(ValueError, match="Configuration validation failed"):
        get_config()


def test_reload_config(monkeypatch):
    monkeypatch.setattr("stocksync.config._config_instance", None)
    monkeypatch.setenv("BATCH_SIZE", "10")
    first = reload_config()
    monkeypatch.setenv("BATCH_SIZE", "20")
    second = reload_config()
    assert first is not second
    assert second.batch_size == 20
