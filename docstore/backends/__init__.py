"""
DocStore Backends — Key-value implementations of the store's capability set.

    MemoryBackend — in-process, lock-guarded (tests, embedding)
    RedisBackend  — Lua-scripted atomic operations on Redis
    SQLBackend    — SQLAlchemy table with compare-and-swap updates
"""

from __future__ import annotations

from typing import Optional

from docstore.backends.base import Copy, Increment, KeyValueBackend, ScanPage
from docstore.backends.memory_store import MemoryBackend
from docstore.engine.config import BackendConfig


def create_backend(config: Optional[BackendConfig] = None) -> KeyValueBackend:
    """Build the backend named by ``config.type``."""
    config = config or BackendConfig()

    if config.type == "redis":
        from docstore.backends.redis_store import RedisBackend

        backend = RedisBackend(
            redis_url=config.redis.url,
            prefix=config.redis.prefix,
            socket_timeout=config.redis.socket_timeout,
        )
        backend.connect()
        return backend

    if config.type == "sql":
        from docstore.backends.sql_store import SQLBackend

        db = config.database
        return SQLBackend(
            url=db.url,
            create_tables=db.create_tables,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
        )

    return MemoryBackend()


__all__ = [
    "Copy",
    "Increment",
    "KeyValueBackend",
    "MemoryBackend",
    "ScanPage",
    "create_backend",
]
