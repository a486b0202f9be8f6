"""Unit tests for docstore.store.ids — revision id policies."""

import re
from datetime import datetime, timedelta, timezone

import pytest

from docstore.engine.errors import ConfigError
from docstore.store.ids import (
    SequenceIdGenerator,
    TimestampIdGenerator,
    create_id_generator,
)

FIXED = datetime(2026, 3, 14, 15, 9, 26, 535897, tzinfo=timezone.utc)


class TestTimestampIds:
    def test_format_without_suffix(self):
        gen = TimestampIdGenerator(suffix_bytes=0, clock=lambda: FIXED)
        assert gen.new_id() == "20260314T150926.535897Z"

    def test_suffix_is_hex(self):
        gen = TimestampIdGenerator(suffix_bytes=4, clock=lambda: FIXED)
        assert re.fullmatch(r"20260314T150926\.535897Z-[0-9a-f]{8}", gen.new_id())

    def test_same_instant_ids_differ_with_suffix(self):
        gen = TimestampIdGenerator(suffix_bytes=4, clock=lambda: FIXED)
        assert len({gen.new_id() for _ in range(200)}) == 200

    def test_ids_sort_in_time_order(self):
        times = iter([FIXED, FIXED + timedelta(microseconds=1), FIXED + timedelta(days=400)])
        gen = TimestampIdGenerator(suffix_bytes=2, clock=lambda: next(times))
        ids = [gen.new_id() for _ in range(3)]
        assert ids == sorted(ids)

    def test_converts_to_utc(self):
        local = FIXED.astimezone(timezone(timedelta(hours=5)))
        gen = TimestampIdGenerator(suffix_bytes=0, clock=lambda: local)
        assert gen.new_id() == "20260314T150926.535897Z"

    def test_ids_are_valid_doc_id_characters(self):
        gen = TimestampIdGenerator()
        assert re.fullmatch(r"[A-Za-z0-9._-]+", gen.new_id())


class TestSequenceIds:
    def test_first(self):
        assert SequenceIdGenerator().next_id("") == "000000000001"

    def test_increments(self):
        assert SequenceIdGenerator().next_id("000000000041") == "000000000042"

    def test_lexicographic_order_matches_numeric(self):
        gen = SequenceIdGenerator()
        ids, current = [], ""
        for _ in range(120):
            current = gen.next_id(current)
            ids.append(current)
        assert ids == sorted(ids)


class TestFactory:
    def test_timestamp(self):
        assert isinstance(create_id_generator("timestamp"), TimestampIdGenerator)

    def test_sequence(self):
        assert isinstance(create_id_generator("sequence"), SequenceIdGenerator)

    def test_unknown(self):
        with pytest.raises(ConfigError):
            create_id_generator("uuid")
