"""
Configuration management for saveit.

The configuration is stored as a TOML file in the config directory
(``SAVEIT_CONFIG_DIR``, default ``~/.saveit``). It selects the backend
environment and tunes the cache and discovery behaviour.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w


CONFIG_FILENAME = "saveit.toml"
CONFIG_VERSION = 1

# Backend URL per deployment environment
ENVIRONMENT_URLS = {
    "development": "http://localhost:8080",
    "staging": "https://saveit-staging-5pu7ljvnuq-uc.a.run.app",
    "production": "https://saveit-5pu7ljvnuq-uc.a.run.app",
}
DEFAULT_ENVIRONMENT = "production"

CACHE_BACKENDS = ("sqlite", "memory")
SORT_ORDERS = ("newest", "oldest")


def get_config_dir() -> Path:
    """Config directory, respecting SAVEIT_CONFIG_DIR."""
    override = os.environ.get("SAVEIT_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".saveit"


@dataclass
class SaveitConfig:
    """Complete configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # [api]
    environment: str = DEFAULT_ENVIRONMENT
    url: Optional[str] = None          # overrides the environment's URL
    timeout: float = 30.0

    # [cache]
    cache_backend: str = "sqlite"
    cache_ttl_seconds: int = 300
    cache_path: Optional[Path] = None  # default: <path>/cache.db

    # [discovery]
    similarity_threshold: float = 0.5
    refresh_delay: float = 0.5
    page_limit: int = 50
    sort: str = "newest"

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def api_url(self) -> str:
        """Effective backend URL: SAVEIT_API_URL, then ``url``, then the environment."""
        env_url = os.environ.get("SAVEIT_API_URL")
        if env_url:
            return env_url
        if self.url:
            return self.url
        return ENVIRONMENT_URLS[self.environment]

    @property
    def cache_db_path(self) -> Path:
        return self.cache_path or (self.path / "cache.db")

    @property
    def cache_ttl_ms(self) -> int:
        return int(self.cache_ttl_seconds * 1000)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def _validate(config: SaveitConfig) -> None:
    if config.environment not in ENVIRONMENT_URLS:
        raise ValueError(
            f"Unknown environment {config.environment!r} "
            f"(expected one of {', '.join(ENVIRONMENT_URLS)})"
        )
    if config.cache_backend not in CACHE_BACKENDS:
        raise ValueError(f"Unknown cache backend {config.cache_backend!r}")
    if config.sort not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order {config.sort!r}")
    if config.cache_ttl_seconds < 0:
        raise ValueError("cache.ttl_seconds must not be negative")
    if not 0.0 <= config.similarity_threshold <= 1.0:
        raise ValueError("discovery.similarity_threshold must be between 0 and 1")


def create_default_config(config_dir: Path) -> SaveitConfig:
    """Create a new config with defaults, honouring SAVEIT_ENV."""
    config = SaveitConfig(path=config_dir)
    env = os.environ.get("SAVEIT_ENV")
    if env:
        config.environment = env
    _validate(config)
    return config


def load_config(config_dir: Path) -> SaveitConfig:
    """
    Load configuration from a config directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = config_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("saveit", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    api = data.get("api", {})
    cache = data.get("cache", {})
    discovery = data.get("discovery", {})

    config = SaveitConfig(
        path=config_dir,
        version=version,
        created=data.get("saveit", {}).get("created", ""),
        environment=os.environ.get("SAVEIT_ENV") or api.get("environment", DEFAULT_ENVIRONMENT),
        url=api.get("url"),
        timeout=float(api.get("timeout", 30.0)),
        cache_backend=cache.get("backend", "sqlite"),
        cache_ttl_seconds=int(cache.get("ttl_seconds", 300)),
        cache_path=Path(cache["path"]).expanduser() if cache.get("path") else None,
        similarity_threshold=float(discovery.get("similarity_threshold", 0.5)),
        refresh_delay=float(discovery.get("refresh_delay", 0.5)),
        page_limit=int(discovery.get("page_limit", 50)),
        sort=discovery.get("sort", "newest"),
    )
    _validate(config)
    return config


def save_config(config: SaveitConfig) -> None:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    api: dict = {"environment": config.environment, "timeout": config.timeout}
    if config.url:
        api["url"] = config.url
    cache: dict = {"backend": config.cache_backend, "ttl_seconds": config.cache_ttl_seconds}
    if config.cache_path:
        cache["path"] = str(config.cache_path)

    data = {
        "saveit": {
            "version": config.version,
            "created": config.created,
        },
        "api": api,
        "cache": cache,
        "discovery": {
            "similarity_threshold": config.similarity_threshold,
            "refresh_delay": config.refresh_delay,
            "page_limit": config.page_limit,
            "sort": config.sort,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(config_dir: Optional[Path] = None) -> SaveitConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_dir = config_dir or get_config_dir()
    config_path = config_dir / CONFIG_FILENAME

    if config_path.exists():
        return load_config(config_dir)
    config = create_default_config(config_dir)
    save_config(config)
    return config
