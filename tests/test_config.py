"""Tests for core/config.py."""

from vulnfeed.core.config import DEFAULT_OSV_ECOSYSTEMS, Settings


def test_default_settings():
    s = Settings()
    assert s.app_port == 8000
    assert s.app_host == "0.0.0.0"
    assert s.log_level == "INFO"
    assert s.database_url  # non-empty


def test_sync_db_url():
    s = Settings(database_url="postgresql+asyncpg://user:pw@localhost/db")
    assert "+asyncpg" not in s.sync_database_url
    assert "postgresql" in s.sync_database_url


def test_sync_engine_defaults():
    s = Settings()
    assert s.osv_ecosystems == DEFAULT_OSV_ECOSYSTEMS
    assert s.upsert_batch_size == 500
    assert s.full_sync_interval_days == 7
    assert s.hash_batch_size == 10
    assert s.hash_batch_delay_ms == 200
    assert s.nvd_years[0] == 2020


def test_ecosystem_list_from_env(monkeypatch):
    monkeypatch.setenv("OSV_ECOSYSTEMS", '["npm", "PyPI"]')
    s = Settings()
    assert s.osv_ecosystems == ["npm", "PyPI"]


def test_default_list_is_not_shared():
    a = Settings()
    a.osv_ecosystems.append("Hex")
    assert "Hex" not in Settings().osv_ecosystems
