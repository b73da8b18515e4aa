"""NekoChat application configuration.

Loads settings from a single YAML file:
  * nekochat.settings.yaml: non-secret configuration

The settings path can be overridden with the NEKOCHAT_SETTINGS environment
variable. A missing file is not an error; every section has defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("nekochat.settings.yaml")
SETTINGS_ENV_VAR = "NEKOCHAT_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve_storage_path(raw_path: str, settings_path: Path) -> str:
    """Resolve a relative storage path against the settings location.

    When the settings file lives in a ``config/`` directory the project
    root (its parent) is used, otherwise the settings file's own directory.
    """
    if raw_path == ":memory:":
        return raw_path
    path = Path(raw_path)
    if path.is_absolute():
        return str(path)
    settings_dir = settings_path.resolve().parent
    base = settings_dir.parent if settings_dir.name == "config" else settings_dir
    return str(base / path)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:           str  = "0.0.0.0"
    port:           int  = 1999
    public_domain:  str  = "nekochat.example"
    enforce_origin: bool = True


class ChatSettings(BaseModel):
    """Limits applied by the room controller."""
    max_history:               int   = 200
    history_on_join:           int   = 100
    max_username_length:       int   = 20
    max_message_length:        int   = 500
    rate_limit_window_seconds: float = 10.0
    rate_limit_max_messages:   int   = 5
    send_timeout_seconds:      float = 5.0
    outbound_queue_size:       int   = 256


class StorageSettings(BaseModel):
    backend: Literal["duckdb", "memory"] = "duckdb"
    path:    str                         = "nekochat_state.duckdb"


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings into a single *AppConfig* object."""
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    config = AppConfig(**_load_yaml(settings_path))
    config.storage.path = _resolve_storage_path(config.storage.path, settings_path)

    logger.info(
        "Settings loaded (server=%s:%s, storage=%s:%s)",
        config.server.host,
        config.server.port,
        config.storage.backend,
        config.storage.path,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
