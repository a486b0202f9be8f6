"""In-process backend: one dict per table guarded by a single lock."""

from __future__ import annotations

import bisect
import copy
import threading
from typing import Any, Dict, List, Mapping, Optional

from docstore.backends.base import (
    KeyValueBackend,
    ScanPage,
    apply_update,
    encode_key,
)
from docstore.engine.errors import ConditionFailedError


class MemoryBackend(KeyValueBackend):
    """
    Thread-safe in-memory backend.

    Every primitive runs under one lock, which gives update_item the same
    atomicity a hosted KV store provides server-side. Items are deep-copied on
    the way in and out so callers can never mutate stored history.
    """

    name = "memory"

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._sorted_keys: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._tables:
            self._tables[table] = {}
            self._sorted_keys[table] = []
        return self._tables[table]

    def _store(self, table: str, storage_key: str, item: Dict[str, Any]) -> None:
        rows = self._table(table)
        if storage_key not in rows:
            bisect.insort(self._sorted_keys[table], storage_key)
        rows[storage_key] = item

    def get_item(self, table: str, key: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._table(table).get(encode_key(key))
            return copy.deepcopy(item) if item is not None else None

    def put_item(
        self,
        table: str,
        key: Mapping[str, Any],
        attributes: Mapping[str, Any],
        if_not_exists: bool = False,
    ) -> None:
        storage_key = encode_key(key)
        item = copy.deepcopy({**attributes, **key})
        with self._lock:
            if if_not_exists and storage_key in self._table(table):
                raise ConditionFailedError(
                    f"Item {table}/{storage_key} already exists",
                    table=table,
                    key=dict(key),
                )
            self._store(table, storage_key, item)

    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        changes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        storage_key = encode_key(key)
        with self._lock:
            current = self._table(table).get(storage_key)
            old, new = apply_update(table, key, current, changes, condition)
            self._store(table, storage_key, new)
        return old

    def scan(
        self,
        table: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> ScanPage:
        with self._lock:
            rows = self._table(table)
            keys = self._sorted_keys[table]
            start = bisect.bisect_left(keys, prefix) if prefix else 0
            if start_after is not None:
                start = max(start, bisect.bisect_right(keys, start_after))

            items: List[Dict[str, Any]] = []
            last_key: Optional[str] = None
            more = False
            for storage_key in keys[start:]:
                if prefix and not storage_key.startswith(prefix):
                    break
                if limit is not None and len(items) >= limit:
                    more = True
                    break
                items.append(copy.deepcopy(rows[storage_key]))
                last_key = storage_key
        return ScanPage(items=items, last_key=last_key, more=more)

    def clear(self) -> None:
        """Drop every table."""
        with self._lock:
            self._tables.clear()
            self._sorted_keys.clear()
