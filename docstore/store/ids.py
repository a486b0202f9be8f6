"""
Revision id policies.

timestamp — "YYYYMMDDTHHMMSS.ffffffZ" (UTC, microseconds), optionally
            followed by "-<hex>" random suffix. Fixed width, so ids sort
            lexicographically in creation order. With suffix_bytes=0 two
            writes in the same microsecond produce the same id; the store
            reports that as RevisionCollisionError.
sequence  — 12-digit zero-padded counter derived from the current pointer
            inside an optimistic read/compare-and-swap loop. Unique and
            gap-free per document.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from docstore.engine.errors import ConfigError

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S.%fZ"
SEQUENCE_WIDTH = 12


class TimestampIdGenerator:
    """Wall-clock ids with an optional random suffix."""

    policy = "timestamp"

    def __init__(self, suffix_bytes: int = 4, clock: Optional[Callable[[], datetime]] = None):
        self._suffix_bytes = suffix_bytes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def new_id(self) -> str:
        stamp = self._clock().astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
        if self._suffix_bytes:
            return f"{stamp}-{secrets.token_hex(self._suffix_bytes)}"
        return stamp


class SequenceIdGenerator:
    """Per-document counter; the next id is computed from the current one."""

    policy = "sequence"

    def next_id(self, current: str) -> str:
        number = int(current) if current else 0
        return str(number + 1).zfill(SEQUENCE_WIDTH)


def create_id_generator(policy: str = "timestamp", suffix_bytes: int = 4):
    """Factory for the configured id policy."""
    if policy == "timestamp":
        return TimestampIdGenerator(suffix_bytes=suffix_bytes)
    if policy == "sequence":
        return SequenceIdGenerator()
    raise ConfigError(f"Unknown revision id policy '{policy}'", policy=policy)
