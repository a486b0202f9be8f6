"""
DocStore SQL Backend — Key-value items in one SQLAlchemy table.

Relational databases have no "update and return old value" primitive that is
portable, so update_item is an optimistic compare-and-swap: read the row and
its ``version``, compute the new item, then
``UPDATE ... WHERE version = :read_version``. Zero affected rows means another
writer won; re-read and try again. The same loop covers first-write races via
the primary key (a losing INSERT raises IntegrityError and retries as an
update).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from docstore.backends.base import (
    KeyValueBackend,
    ScanPage,
    apply_update,
    decode_item,
    encode_item,
    encode_key,
)
from docstore.db.base import Base, StoreItem, engine_registry
from docstore.db.session import session_scope
from docstore.engine.errors import BackendUnavailableError, ConditionFailedError

logger = logging.getLogger("docstore.backends.sql")

DEFAULT_ENGINE_NAME = "docstore"


class SQLBackend(KeyValueBackend):
    """SQLAlchemy-backed key-value backend."""

    name = "sql"

    def __init__(
        self,
        url: str = "sqlite:///docstore.db",
        engine_name: str = DEFAULT_ENGINE_NAME,
        create_tables: bool = True,
        max_cas_attempts: int = 64,
        **engine_options: Any,
    ):
        self._engine_name = engine_name
        self._max_cas_attempts = max_cas_attempts
        try:
            engine_registry.register(engine_name, url, **engine_options)
            if create_tables:
                Base.metadata.create_all(engine_registry.get(engine_name))
        except SQLAlchemyError as e:
            raise BackendUnavailableError(
                f"Database initialisation failed: {e}", backend=self.name, operation="connect"
            ) from e
        self._factory = engine_registry.get_session_factory(engine_name)
        logger.info(f"SQL backend ready: engine '{engine_name}'")

    def _unavailable(self, e: Exception, operation: str, table: str) -> BackendUnavailableError:
        logger.warning(f"SQL {operation} on '{table}' failed: {e}")
        return BackendUnavailableError(
            f"SQL {operation} failed: {e}",
            backend=self.name,
            operation=operation,
            table=table,
        )

    def _read(self, table: str, storage_key: str):
        """Return (attributes, version) or (None, None)."""
        with session_scope(self._factory) as session:
            row = session.get(StoreItem, (table, storage_key))
            if row is None:
                return None, None
            return json.loads(row.data), row.version

    # ── Primitives ──

    def get_item(self, table: str, key: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            data, _ = self._read(table, encode_key(key))
        except SQLAlchemyError as e:
            raise self._unavailable(e, "get_item", table) from e
        return decode_item(data) if data is not None else None

    def put_item(
        self,
        table: str,
        key: Mapping[str, Any],
        attributes: Mapping[str, Any],
        if_not_exists: bool = False,
    ) -> None:
        storage_key = encode_key(key)
        payload = json.dumps(encode_item({**attributes, **key}), separators=(",", ":"))
        try:
            if self._insert(table, storage_key, payload):
                return
            if if_not_exists:
                raise ConditionFailedError(
                    f"Item {table}/{storage_key} already exists",
                    table=table,
                    key=dict(key),
                )
            with session_scope(self._factory) as session:
                session.execute(
                    update(StoreItem)
                    .where(StoreItem.table_name == table, StoreItem.item_key == storage_key)
                    .values(
                        data=payload,
                        version=StoreItem.version + 1,
                        updated_at=datetime.now(timezone.utc),
                    )
                )
        except SQLAlchemyError as e:
            raise self._unavailable(e, "put_item", table) from e

    def _insert(self, table: str, storage_key: str, payload: str) -> bool:
        """INSERT a new row. Returns False if the primary key already exists."""
        try:
            with session_scope(self._factory) as session:
                session.add(StoreItem(table_name=table, item_key=storage_key, data=payload, version=1))
            return True
        except IntegrityError:
            return False

    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        changes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        storage_key = encode_key(key)
        try:
            for attempt in range(1, self._max_cas_attempts + 1):
                data, version = self._read(table, storage_key)
                current = decode_item(data) if data is not None else None
                old, new = apply_update(table, key, current, changes, condition)
                payload = json.dumps(encode_item(new), separators=(",", ":"))

                if version is None:
                    if self._insert(table, storage_key, payload):
                        return old
                else:
                    with session_scope(self._factory) as session:
                        result = session.execute(
                            update(StoreItem)
                            .where(
                                StoreItem.table_name == table,
                                StoreItem.item_key == storage_key,
                                StoreItem.version == version,
                            )
                            .values(
                                data=payload,
                                version=version + 1,
                                updated_at=datetime.now(timezone.utc),
                            )
                        )
                        if result.rowcount == 1:
                            return old
                logger.debug(f"CAS conflict on {table}/{storage_key} (attempt {attempt})")
        except SQLAlchemyError as e:
            raise self._unavailable(e, "update_item", table) from e

        raise BackendUnavailableError(
            f"Gave up on {table}/{storage_key} after {self._max_cas_attempts} conflicting updates",
            backend=self.name,
            operation="update_item",
            table=table,
        )

    def scan(
        self,
        table: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> ScanPage:
        stmt = select(StoreItem).where(StoreItem.table_name == table)
        if prefix:
            stmt = stmt.where(StoreItem.item_key.startswith(prefix, autoescape=True))
        if start_after is not None:
            stmt = stmt.where(StoreItem.item_key > start_after)
        stmt = stmt.order_by(StoreItem.item_key)
        if limit is not None:
            stmt = stmt.limit(limit + 1)

        try:
            with session_scope(self._factory) as session:
                rows = [(row.item_key, row.data) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise self._unavailable(e, "scan", table) from e

        more = limit is not None and len(rows) > limit
        if more:
            rows = rows[:limit]
        return ScanPage(
            items=[decode_item(json.loads(data)) for _, data in rows],
            last_key=rows[-1][0] if rows else None,
            more=more,
        )

    # ── Health & Management ──

    def ping(self) -> bool:
        return engine_registry.health_check(self._engine_name)

    def close(self) -> None:
        engine_registry.dispose(self._engine_name)
