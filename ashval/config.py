"""
Configuration management for ashval stores.

The configuration is stored as a TOML file in the store directory. It
holds the AI writer preferences (key mode, model, auto-lore) and the
prompt budgets.
"""

import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w

from .context import ContextBudget
from .routing import DEFAULT_MODEL
from .types import ApiKeyMode


CONFIG_FILENAME = "ashval.toml"
CONFIG_VERSION = 1
DATABASE_FILENAME = "ashval.db"

STORE_PATH_ENV = "ASHVAL_STORE_PATH"
API_KEY_ENV = "ASHVAL_API_KEY"


@dataclass
class WriterConfig:
    """AI writer preferences."""
    api_key_mode: ApiKeyMode = ApiKeyMode.SERVER_DEFAULT
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    auto_add_lore: bool = False
    max_exchanges: int = 5
    repetition_threshold: int = 3
    custom_instruction: str = ""


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    writer: WriterConfig = field(default_factory=WriterConfig)
    budget: ContextBudget = field(default_factory=ContextBudget)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        return self.path / DATABASE_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def effective_api_key(self) -> Optional[str]:
        """The API key to use: ASHVAL_API_KEY overrides the saved one."""
        return os.environ.get(API_KEY_ENV) or self.writer.api_key


def get_default_store_path() -> Path:
    """Store directory: ASHVAL_STORE_PATH, else ~/.ashval."""
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".ashval"


def _pick(cls, section: dict) -> dict:
    """Keep only the keys that are fields of ``cls``."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in section.items() if k in names}


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

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    writer = _pick(WriterConfig, data.get("writer", {}))
    try:
        writer["api_key_mode"] = ApiKeyMode(writer.get("api_key_mode", ApiKeyMode.SERVER_DEFAULT))
    except ValueError:
        raise ValueError(f"Invalid api_key_mode in {config_path}: {writer['api_key_mode']!r}") from None

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        writer=WriterConfig(**writer),
        budget=ContextBudget(**_pick(ContextBudget, data.get("budget", {}))),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    writer = asdict(config.writer)
    writer["api_key_mode"] = config.writer.api_key_mode.value
    # TOML has no null
    writer = {k: v for k, v in writer.items() if v is not None}

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "writer": writer,
        "budget": asdict(config.budget),
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
