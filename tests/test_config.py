"""Tests for saveit.config: TOML configuration."""

import pytest

from saveit.config import (
    CONFIG_FILENAME, ENVIRONMENT_URLS, SaveitConfig, get_config_dir, load_config,
    load_or_create_config, save_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SAVEIT_API_URL", "SAVEIT_ENV", "SAVEIT_CONFIG_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_creates_default_config(tmp_path):
    config = load_or_create_config(tmp_path)
    assert (tmp_path / CONFIG_FILENAME).exists()
    assert config.environment == "production"
    assert config.cache_ttl_ms == 300_000
    assert config.cache_db_path == tmp_path / "cache.db"
    assert config.api_url == ENVIRONMENT_URLS["production"]


def test_round_trip(tmp_path):
    config = SaveitConfig(
        path=tmp_path,
        environment="staging",
        url="https://custom.example.com",
        cache_backend="memory",
        cache_ttl_seconds=60,
        cache_path=tmp_path / "other.db",
        similarity_threshold=0.7,
        page_limit=20,
        sort="oldest",
    )
    save_config(config)
    loaded = load_config(tmp_path)
    assert loaded.environment == "staging"
    assert loaded.api_url == "https://custom.example.com"
    assert loaded.cache_backend == "memory"
    assert loaded.cache_ttl_ms == 60_000
    assert loaded.cache_db_path == tmp_path / "other.db"
    assert loaded.similarity_threshold == 0.7
    assert loaded.page_limit == 20
    assert loaded.sort == "oldest"


def test_env_overrides(tmp_path, monkeypatch):
    save_config(SaveitConfig(path=tmp_path))
    monkeypatch.setenv("SAVEIT_ENV", "development")
    monkeypatch.setenv("SAVEIT_API_URL", "http://localhost:9999")
    config = load_config(tmp_path)
    assert config.environment == "development"
    assert config.api_url == "http://localhost:9999"


def test_partial_file_uses_defaults(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text('[discovery]\nrefresh_delay = 2.0\n')
    config = load_config(tmp_path)
    assert config.refresh_delay == 2.0
    assert config.page_limit == 50
    assert config.cache_backend == "sqlite"


@pytest.mark.parametrize("body, message", [
    ('[api]\nenvironment = "moon"\n', "Unknown environment"),
    ('[cache]\nbackend = "redis"\n', "Unknown cache backend"),
    ('[discovery]\nsort = "random"\n', "Unknown sort order"),
    ('[discovery]\nsimilarity_threshold = 1.5\n', "between 0 and 1"),
    ('[saveit]\nversion = 99\n', "newer than supported"),
])
def test_invalid_config(tmp_path, body, message):
    (tmp_path / CONFIG_FILENAME).write_text(body)
    with pytest.raises(ValueError, match=message):
        load_config(tmp_path)


def test_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path)


def test_config_dir_override(tmp_path, monkeypatch):
    monkeypatch.setenv("SAVEIT_CONFIG_DIR", str(tmp_path / "cfg"))
    assert get_config_dir() == tmp_path / "cfg"
