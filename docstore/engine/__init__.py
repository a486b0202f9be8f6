"""DocStore Engine — Errors, configuration, structured logging."""

from docstore.engine.config import DocStoreConfig, get_config, load_config  # noqa: F401
from docstore.engine.errors import DocStoreError  # noqa: F401

__all__ = [
    "DocStoreConfig",
    "DocStoreError",
    "get_config",
    "load_config",
]
