"""
Configuration management for quote archives.

The configuration is stored as a TOML file in the config directory
(``$QUOTH_CONFIG_DIR``, default ``~/.quoth``). It records where the archive
lives and how strictly index values are decoded.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w


CONFIG_FILENAME = "quoth.toml"
CONFIG_VERSION = 1
DB_FILENAME = "quoth.db"


def get_config_dir() -> Path:
    """Config directory: ``$QUOTH_CONFIG_DIR`` or ``~/.quoth``."""
    env_dir = os.environ.get("QUOTH_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return Path.home() / ".quoth"


@dataclass
class StoreConfig:
    """Complete archive configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Archive location; None means the config directory itself
    store_path: Optional[Path] = None

    # Fail on corrupt index lists rather than skipping bad entries
    strict_decode: bool = True

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path(config: StoreConfig) -> Path:
    """
    Resolve the archive directory.

    Priority:
    1. QUOTH_STORE_PATH environment variable
    2. ``[store] path`` from the config
    3. The config directory
    """
    env_path = os.environ.get("QUOTH_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    if config.store_path is not None:
        return config.store_path
    return config.path


def load_config(config_dir: Path) -> StoreConfig:
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

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    strict = data.get("index", {}).get("strict_decode", True)
    if not isinstance(strict, bool):
        raise ValueError(f"[index] strict_decode must be true or false, got {strict!r}")

    store_path = store.get("path")
    return StoreConfig(
        path=config_dir,
        version=version,
        created=store.get("created", ""),
        store_path=Path(store_path).expanduser() if store_path else None,
        strict_decode=strict,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    store: dict = {
        "version": config.version,
        "created": config.created,
    }
    if config.store_path is not None:
        store["path"] = str(config.store_path)

    data = {
        "store": store,
        "index": {"strict_decode": config.strict_decode},
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(config_dir: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = config_dir / CONFIG_FILENAME

    if config_path.exists():
        return load_config(config_dir)
    else:
        config = StoreConfig(path=config_dir)
        save_config(config)
        return config
