"""
Configuration management for mirror stores.

The configuration is stored as a TOML file in the store directory.
It selects the content fetcher and tunes refresh, hierarchy and search.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore


CONFIG_FILENAME = "docmirror.toml"
CONFIG_VERSION = 1

VIEW_MODES = ("tree", "flat")


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class MirrorConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Id of the container the whole collection lives in (items whose parent
    # is this id are shown at top level)
    collection_root_id: Optional[str] = None

    # Bulk refresh
    concurrency: int = 5
    batch_delay: float = 0.1

    # Search and presentation
    search_threshold: float = 0.6
    view_mode: str = "tree"

    fetcher: ProviderConfig = field(
        default_factory=lambda: ProviderConfig("directory", {"root": "export"})
    )

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def cache_path(self) -> Path:
        """Path to the persistent content cache database."""
        from .content_cache import CACHE_FILENAME
        return self.path / CACHE_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ValueError: On the first invalid setting
        """
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.batch_delay < 0:
            raise ValueError(f"batch_delay must not be negative, got {self.batch_delay}")
        if not 0.0 < self.search_threshold <= 1.0:
            raise ValueError(f"search_threshold must be in (0, 1], got {self.search_threshold}")
        if self.view_mode not in VIEW_MODES:
            raise ValueError(f"view_mode must be one of {VIEW_MODES}, got {self.view_mode!r}")


def get_default_store_path() -> Path:
    """
    Default store directory.

    DOCMIRROR_STORE_PATH overrides the default of ~/.docmirror.
    """
    env = os.environ.get("DOCMIRROR_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".docmirror"


def load_config(store_path: Path) -> MirrorConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    def parse_provider(section: dict) -> ProviderConfig:
        return ProviderConfig(
            name=section.get("name", ""),
            params={k: v for k, v in section.items() if k != "name"},
        )

    refresh = data.get("refresh", {})
    search = data.get("search", {})
    view = data.get("view", {})

    config = MirrorConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        collection_root_id=store.get("collection_root_id") or None,
        concurrency=int(refresh.get("concurrency", 5)),
        batch_delay=float(refresh.get("batch_delay", 0.1)),
        search_threshold=float(search.get("threshold", 0.6)),
        view_mode=view.get("mode", "tree"),
        fetcher=parse_provider(data.get("fetcher", {"name": "directory", "root": "export"})),
    )
    config.validate()
    return config


def save_config(config: MirrorConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    # Ensure directory exists
    config.path.mkdir(parents=True, exist_ok=True)

    fetcher = {"name": config.fetcher.name}
    fetcher.update(config.fetcher.params)

    store: dict[str, Any] = {
        "version": config.version,
        "created": config.created,
    }
    # TOML has no null
    if config.collection_root_id:
        store["collection_root_id"] = config.collection_root_id

    data = {
        "store": store,
        "refresh": {
            "concurrency": config.concurrency,
            "batch_delay": config.batch_delay,
        },
        "search": {"threshold": config.search_threshold},
        "view": {"mode": config.view_mode},
        "fetcher": fetcher,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> MirrorConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = MirrorConfig(path=store_path)
        save_config(config)
        return config
