"""
DocStore Configuration — Load and validate docstore.yaml.

Usage:
    from docstore.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from docstore.engine.errors import ConfigError

CONFIG_FILENAME = "docstore.yaml"

BACKEND_TYPES = ("memory", "redis", "sql")
ID_POLICIES = ("timestamp", "sequence")


# ---------------------------------------------------------------------------
# Pydantic models for docstore.yaml
# ---------------------------------------------------------------------------

class StoreConfig(BaseModel):
    doc_table: str = "docs"
    revision_table: str = "revisions"
    id_policy: str = "timestamp"
    id_suffix_bytes: int = 4
    log_write_retries: int = 2
    advance_retries: int = 16

    @field_validator("id_policy")
    @classmethod
    def validate_id_policy(cls, v: str) -> str:
        if v not in ID_POLICIES:
            raise ValueError(f"id_policy must be timestamp/sequence, got '{v}'")
        return v

    @field_validator("id_suffix_bytes", "log_write_retries")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must be >= 0, got {v}")
        return v

    @field_validator("advance_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"advance_retries must be >= 1, got {v}")
        return v


class RedisConfig(BaseModel):
    url: str = "redis://localhost:6379/0"
    prefix: str = "docstore:"
    socket_timeout: int = 5


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///docstore.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    create_tables: bool = True


class BackendConfig(BaseModel):
    type: str = "memory"
    redis: RedisConfig = RedisConfig()
    database: DatabaseConfig = DatabaseConfig()

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in BACKEND_TYPES:
            raise ValueError(f"backend type must be memory/redis/sql, got '{v}'")
        return v


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".docstore/logs"
    structured: bool = True
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()


class DocStoreConfig(BaseModel):
    """Root model for docstore.yaml."""
    store: StoreConfig = StoreConfig()
    backend: BackendConfig = BackendConfig()
    logging: LoggingConfig = LoggingConfig()


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[DocStoreConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for docstore.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> DocStoreConfig:
    """
    Load and validate docstore.yaml.

    Args:
        config_path: Explicit path to docstore.yaml. If None, auto-discovers.

    Returns:
        Validated DocStoreConfig instance.

    Raises:
        ConfigError: if the file is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        # Return defaults if no config file
        _config = DocStoreConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw: Dict[str, Any] = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}", config_path=str(path)) from e

    # docstore.yaml may wrap everything under a top-level "docstore:" key
    data = raw.get("docstore", raw)

    try:
        _config = DocStoreConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}", config_path=str(path)) from e
    return _config


def get_config() -> DocStoreConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
