"""
Configuration management for daylog stores.

The configuration is stored as a TOML file in the store directory.
It holds the defaults the CLI and Journal use when the caller doesn't
say otherwise.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w

from .combine import UPDATE_STRATEGIES
from .ids import DEFAULT_HUMAN_ID_LENGTH
from .output import Show

CONFIG_FILENAME = "daylog.toml"
CONFIG_VERSION = 1


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Merge strategy for `update` when none is given
    default_strategy: str = "update"
    human_id_length: int = DEFAULT_HUMAN_ID_LENGTH
    show: Show = Show.STANDARD

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the document database."""
        return self.path / "documents.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_config_dir() -> Path:
    """Store directory: DAYLOG_STORE_PATH, or ~/.daylog."""
    env = os.environ.get("DAYLOG_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".daylog"


def load_config(store_path: Path) -> StoreConfig:
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

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    defaults = data.get("defaults", {})
    strategy = defaults.get("strategy", "update")
    if strategy not in UPDATE_STRATEGIES:
        raise ValueError(f"Unknown default strategy in {config_path}: {strategy!r}")
    human_id_length = defaults.get("human_id_length", DEFAULT_HUMAN_ID_LENGTH)
    if not isinstance(human_id_length, int) or human_id_length < 4:
        raise ValueError(f"human_id_length must be an integer >= 4, got {human_id_length!r}")
    try:
        show = Show(defaults.get("show", Show.STANDARD.value))
    except ValueError:
        raise ValueError(f"Unknown show level in {config_path}: {defaults.get('show')!r}") from None

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        default_strategy=strategy,
        human_id_length=human_id_length,
        show=show,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "defaults": {
            "strategy": config.default_strategy,
            "human_id_length": config.human_id_length,
            "show": config.show.value,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
