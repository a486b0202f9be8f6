"""
DocStore Backend Contract — The key-value capability set the store is built on.

Any backend offering these primitives can host a DocStore:

    get_item(table, key)                         -> item | None
    put_item(table, key, attrs, if_not_exists)   -> None | ConditionFailedError
    update_item(table, key, changes, condition)  -> attributes before the update
    scan(table, start_after, limit, prefix)      -> ScanPage

``update_item`` MUST be a single atomic server-side operation: it is the only
coordination point between concurrent writers of a document.

Change values for update_item:
    literal        — set the attribute
    Copy("attr")   — set to the pre-update value of another attribute
    Increment(n)   — add n to a numeric attribute (missing counts as 0)

Keys are ordered mappings (e.g. {"doc_id": ..., "id": ...}); their values are
joined with "/" into the storage key, so scans are ordered by key and a
document's revisions share the prefix "<doc_id>/".
"""

from __future__ import annotations

import base64
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from docstore.engine.errors import ConditionFailedError

KEY_SEPARATOR = "/"
_BYTES_TAG = "__b64__"


@dataclass(frozen=True)
class Copy:
    """Copy the pre-update value of ``source`` into the target attribute."""
    source: str


@dataclass(frozen=True)
class Increment:
    """Add ``amount`` to a numeric attribute."""
    amount: int = 1


@dataclass
class ScanPage:
    """One page of a table scan, ordered by storage key."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    last_key: Optional[str] = None
    more: bool = False


class KeyValueBackend(ABC):
    """Abstract key-value backend. Implementations must be thread-safe."""

    name = "abstract"

    @abstractmethod
    def get_item(self, table: str, key: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Point lookup. Returns the full item (key attributes included) or None."""

    @abstractmethod
    def put_item(
        self,
        table: str,
        key: Mapping[str, Any],
        attributes: Mapping[str, Any],
        if_not_exists: bool = False,
    ) -> None:
        """Write an item. With if_not_exists, raise ConditionFailedError if the key exists."""

    @abstractmethod
    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        changes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Atomically apply ``changes`` and return the attributes stored before
        the update ({} if the item was created by this call).
        """

    @abstractmethod
    def scan(
        self,
        table: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> ScanPage:
        """Return items ordered by storage key, strictly after ``start_after``."""

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


# ---------------------------------------------------------------------------
# Helpers shared by the Python-side implementations
# ---------------------------------------------------------------------------

def encode_key(key: Mapping[str, Any]) -> str:
    """Join key values in order: {"doc_id": "a", "id": "r1"} -> "a/r1"."""
    return KEY_SEPARATOR.join(str(v) for v in key.values())


def encode_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    """Make an item JSON-safe (bytes become tagged base64 strings)."""
    out: Dict[str, Any] = {}
    for name, value in item.items():
        if isinstance(value, (bytes, bytearray)):
            out[name] = {_BYTES_TAG: base64.b64encode(bytes(value)).decode("ascii")}
        else:
            out[name] = value
    return out


def decode_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    """Inverse of encode_item."""
    out: Dict[str, Any] = {}
    for name, value in item.items():
        if isinstance(value, dict) and set(value) == {_BYTES_TAG}:
            out[name] = base64.b64decode(value[_BYTES_TAG])
        else:
            out[name] = value
    return out


def check_condition(
    table: str,
    key: Mapping[str, Any],
    current: Optional[Mapping[str, Any]],
    condition: Optional[Mapping[str, Any]],
) -> None:
    """Raise ConditionFailedError unless every expected attribute matches."""
    if not condition:
        return
    current = current or {}
    for attr, expected in condition.items():
        if current.get(attr) != expected:
            raise ConditionFailedError(
                f"Condition on '{attr}' failed for {table}/{encode_key(key)}",
                table=table,
                key=dict(key),
                attribute=attr,
                expected=expected,
                actual=current.get(attr),
            )


def apply_update(
    table: str,
    key: Mapping[str, Any],
    current: Optional[Mapping[str, Any]],
    changes: Mapping[str, Any],
    condition: Optional[Mapping[str, Any]] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Compute (old_attributes, new_item) for an update against ``current``.

    Copy sources are always read from the pre-update item, so
    {"latest": "r2", "previous": Copy("latest")} swaps in one step.
    """
    check_condition(table, key, current, condition)

    old: Dict[str, Any] = copy.deepcopy(dict(current)) if current else {}
    new: Dict[str, Any] = dict(old)
    new.update(key)

    for attr, change in changes.items():
        if isinstance(change, Copy):
            if old.get(change.source) is None:
                new.pop(attr, None)
            else:
                new[attr] = old[change.source]
        elif isinstance(change, Increment):
            new[attr] = (old.get(attr) or 0) + change.amount
        else:
            new[attr] = change
    return old, new
