"""
Tests for decode sessions over queue entries.

CRITICAL TESTS:
1. test_end_to_end_tuple - announcement, cache lookup, data record
2. test_schema_switch - a new announcement replaces the active schema
3. test_first_error_aborts - nothing after a failure is decoded
"""

import pytest

from destore.cache import SchemaCache
from destore.core.errors import (
    DecodeMismatch,
    EmptyEntry,
    NoActiveSchema,
    SchemaMismatch,
    SchemaNotFound,
)
from destore.decoding import DecodeSession, decode_partition
from destore.formats import FlashBuffer, encode_announcement, iter_queue
from destore.schema import fingerprint

from conftest import CLASSIC, ENUMS, TUPLE_U8_U16_U32, build_queue_image


TUPLE_RECORD = bytes([0x03, 0xE8, 0x07, 0xF0, 0xA2, 0x04])
CLASSIC_RECORD = b'\x2a\x07\x01'

PAGE = 256


def announce(schema) -> bytes:
    return encode_announcement(fingerprint(schema))


@pytest.fixture
def cache(cache_dir):
    cache = SchemaCache(cache_dir)
    cache.store(TUPLE_U8_U16_U32)
    cache.store(CLASSIC)
    return cache


class TestDecodeSession:
    """Test the active-schema state machine."""

    def test_end_to_end_tuple(self, cache):
        """Announced schema is resolved from the cache and applied."""
        session = DecodeSession(cache=cache)
        records = list(session.run([announce(TUPLE_U8_U16_U32), TUPLE_RECORD]))

        assert len(records) == 1
        assert records[0].value == (3, 1000, 70000)
        assert records[0].index == 1
        assert records[0].fingerprint == fingerprint(TUPLE_U8_U16_U32)
        assert records[0].offset is None

    def test_announcement_emits_nothing(self, cache):
        """Schema entries produce no output."""
        session = DecodeSession(cache=cache)
        assert session.feed(announce(CLASSIC)) is None
        assert session.active_schema == CLASSIC

    def test_schema_switch(self, cache):
        """Later announcements replace the active schema."""
        entries = [
            announce(TUPLE_U8_U16_U32), TUPLE_RECORD,
            announce(CLASSIC), CLASSIC_RECORD, CLASSIC_RECORD,
        ]
        values = [r.value for r in DecodeSession(cache=cache).run(entries)]

        assert values == [
            (3, 1000, 70000),
            {'a': 42, 'b': 7, 'c': True},
            {'a': 42, 'b': 7, 'c': True},
        ]

    def test_empty_entry(self, cache):
        """An empty entry is fatal."""
        session = DecodeSession(cache=cache)
        with pytest.raises(EmptyEntry):
            session.feed(b'')

    def test_data_before_announcement(self, cache):
        """Data with no active schema raises NoActiveSchema."""
        with pytest.raises(NoActiveSchema):
            DecodeSession(cache=cache).feed(TUPLE_RECORD)

    def test_unknown_schema(self, cache):
        """Fingerprint missing from the cache raises SchemaNotFound."""
        with pytest.raises(SchemaNotFound):
            DecodeSession(cache=cache).feed(announce(ENUMS))

    def test_no_cache(self):
        """Without cache or supplied schema announcements cannot resolve."""
        with pytest.raises(SchemaNotFound):
            DecodeSession().feed(announce(CLASSIC))

    def test_first_error_aborts(self, cache):
        """Iteration stops at the first failure."""
        entries = [announce(CLASSIC), CLASSIC_RECORD, b'\x2a', CLASSIC_RECORD]
        iterator = DecodeSession(cache=cache).run(entries)

        assert next(iterator).value == {'a': 42, 'b': 7, 'c': True}
        with pytest.raises(DecodeMismatch):
            next(iterator)

    def test_unclassified_entry(self, cache, monkeypatch):
        """An entry that is neither announcement nor data raises TypeError."""
        monkeypatch.setattr('destore.decoding.session.classify', lambda data: object())
        session = DecodeSession(cache=cache, schema=CLASSIC)

        with pytest.raises(TypeError):
            session.feed(CLASSIC_RECORD)
        assert session.records_decoded == 0


class TestSuppliedSchema:
    """Test sessions seeded with an out-of-band schema."""

    def test_preseeded(self):
        """Data decodes before any announcement."""
        session = DecodeSession(schema=TUPLE_U8_U16_U32)
        assert session.feed(TUPLE_RECORD).value == (3, 1000, 70000)

    def test_matching_announcement(self):
        """Announcement of the supplied schema is accepted."""
        session = DecodeSession(schema=CLASSIC)
        records = list(session.run([announce(CLASSIC), CLASSIC_RECORD]))
        assert records[0].value['a'] == 42

    def test_mismatching_announcement(self, cache):
        """Announcement of another schema raises SchemaMismatch, even when cached."""
        session = DecodeSession(cache=cache, schema=CLASSIC)
        with pytest.raises(SchemaMismatch):
            session.feed(announce(TUPLE_U8_U16_U32))


class TestDecodePartition:
    """Test decoding a whole flash image."""

    def test_partition(self, cache):
        """Queue entries flow through the session with their offsets."""
        image = build_queue_image(
            [announce(TUPLE_U8_U16_U32), TUPLE_RECORD, TUPLE_RECORD], PAGE, 2,
        )
        records = list(decode_partition(FlashBuffer(image, PAGE), cache=cache))

        assert [r.value for r in records] == [(3, 1000, 70000)] * 2
        assert records[0].offset == 24
        assert records[1].offset == 40

    def test_partition_with_schema(self):
        """Supplied schema decodes without a cache."""
        image = build_queue_image([announce(CLASSIC), CLASSIC_RECORD], PAGE, 1)
        records = list(decode_partition(FlashBuffer(image, PAGE), schema=CLASSIC))
        assert len(records) == 1

    def test_queue_entries_accepted(self, cache):
        """Sessions take QueueEntry objects directly."""
        image = build_queue_image([announce(CLASSIC), CLASSIC_RECORD], PAGE, 1)
        session = DecodeSession(cache=cache)
        records = list(session.run(iter_queue(FlashBuffer(image, PAGE))))

        assert records[0].offset == 24
        assert session.entries_seen == 2
        assert session.records_decoded == 1
