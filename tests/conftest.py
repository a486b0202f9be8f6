"""
DocStore Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Mapping, Optional
from unittest.mock import MagicMock

import pytest

from docstore.backends.memory_store import MemoryBackend
from docstore.engine.config import StoreConfig
from docstore.engine.errors import BackendUnavailableError
from docstore.store import DocumentStore


# ---------------------------------------------------------------------------
# Environment setup: no real Redis or database server in unit tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset module singletons between tests."""
    import docstore.engine.config as cfg_mod
    import docstore.engine.logging as log_mod

    cfg_mod._config = None
    yield
    log_mod.shutdown_logging()
    cfg_mod._config = None


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def store(memory_backend):
    """DocumentStore on a fresh in-memory backend with default settings."""
    return DocumentStore(memory_backend)


@pytest.fixture
def sequence_store(memory_backend):
    return DocumentStore(memory_backend, StoreConfig(id_policy="sequence"))


class FlakyBackend(MemoryBackend):
    """
    MemoryBackend that fails the next ``fail_puts`` put_item calls on one
    table with BackendUnavailableError. ``land_before_failing`` stores the
    item first, imitating a write that succeeded but whose reply was lost.
    """

    name = "flaky"

    def __init__(self, table: str = "revisions"):
        super().__init__()
        self.table = table
        self.fail_puts = 0
        self.land_before_failing = False
        self.put_attempts = 0

    def put_item(
        self,
        table: str,
        key: Mapping[str, Any],
        attributes: Mapping[str, Any],
        if_not_exists: bool = False,
    ) -> None:
        if table == self.table:
            self.put_attempts += 1
            if self.fail_puts > 0:
                self.fail_puts -= 1
                if self.land_before_failing:
                    super().put_item(table, key, attributes, if_not_exists)
                raise BackendUnavailableError(
                    "simulated outage", backend=self.name, operation="put_item", table=table
                )
        super().put_item(table, key, attributes, if_not_exists)


@pytest.fixture
def flaky_backend():
    return FlakyBackend()


@pytest.fixture
def flaky_store(flaky_backend):
    return DocumentStore(flaky_backend)


class LostReplyBackend(MemoryBackend):
    """
    MemoryBackend whose next ``lose_updates`` update_item calls on one table
    raise BackendUnavailableError. With ``apply_before_failing`` (the default)
    the update is applied first, as when a reply times out after the server
    ran it.
    """

    name = "lost-reply"

    def __init__(self, table: str = "docs"):
        super().__init__()
        self.table = table
        self.lose_updates = 0
        self.apply_before_failing = True

    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        changes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        if table == self.table and self.lose_updates > 0:
            self.lose_updates -= 1
            if self.apply_before_failing:
                super().update_item(table, key, changes, condition)
            raise BackendUnavailableError(
                "reply lost", backend=self.name, operation="update_item", table=table
            )
        return super().update_item(table, key, changes, condition)


@pytest.fixture
def lost_reply_backend():
    return LostReplyBackend()


@pytest.fixture
def sql_backend(tmp_path):
    """SQLBackend on a throwaway SQLite file; engine name is unique per test."""
    from docstore.backends.sql_store import SQLBackend

    backend = SQLBackend(
        url=f"sqlite:///{tmp_path / 'docstore.db'}",
        engine_name=f"test_{uuid.uuid4().hex[:8]}",
    )
    yield backend
    backend.close()


@pytest.fixture
def mock_redis():
    """
    Return a mock Redis client.

    register_script hands out one MagicMock per script, in registration order
    (PUT first, then UPDATE), exposed as ``client.scripts``.
    """
    client = MagicMock()
    client.ping.return_value = True
    client.get.return_value = None
    client.zrangebylex.return_value = []
    client.mget.return_value = []
    client.scripts = []

    def _register(script: str):
        mock_script = MagicMock(name=f"script_{len(client.scripts)}")
        client.scripts.append(mock_script)
        return mock_script

    client.register_script.side_effect = _register
    return client


@pytest.fixture
def config_file(tmp_path):
    """Write a docstore.yaml and return its path."""

    def _write(content: Optional[Dict[str, Any]] = None, text: Optional[str] = None):
        path = tmp_path / "docstore.yaml"
        if text is not None:
            path.write_text(text, encoding="utf-8")
        else:
            import yaml

            path.write_text(yaml.safe_dump(content or {}), encoding="utf-8")
        return path

    return _write
