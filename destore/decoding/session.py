"""
Decode sessions over a stream of queue entries.

A session keeps a single active-schema slot. Schema announcements set it,
data records are decoded against it:

    announcement  -> supplied schema? fingerprints must match
                     otherwise look the fingerprint up in the cache
    data record   -> decode against the active schema

The first error ends the session. Once the stream is out of sync with its
schema, later bytes cannot be reinterpreted, so nothing is skipped.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Union

from ..cache.store import SchemaCache
from ..core.errors import SchemaMismatch, SchemaNotFound
from ..formats.entry import DataRecord, SchemaAnnouncement, classify
from ..formats.flash import NorFlash
from ..formats.queue import DEFAULT_MAX_ENTRY_SIZE, QueueEntry, iter_queue
from ..schema.fingerprint import fingerprint, fingerprint_hex
from ..schema.types import SchemaNode
from .decoder import RecordDecoder, TypedValue

logger = logging.getLogger(__name__)


@dataclass
class DecodedRecord:
    """
    One decoded data record.

    Attributes:
        index: Position of the entry in the stream (announcements included)
        offset: Flash address of the entry, None when fed raw bytes
        fingerprint: Fingerprint of the schema used to decode it
        value: Decoded value
    """
    index: int
    offset: Optional[int]
    fingerprint: bytes
    value: TypedValue


class DecodeSession:
    """
    Stateful decoder for one log stream.

    Usage:
        session = DecodeSession(cache=SchemaCache(path))
        for record in session.run(iter_queue(flash)):
            print(record.value)
    """

    def __init__(
        self,
        cache: Optional[SchemaCache] = None,
        schema: Optional[SchemaNode] = None,
        decoder: Optional[RecordDecoder] = None,
    ):
        self.cache = cache
        self.supplied_schema = schema
        self.supplied_fingerprint = fingerprint(schema) if schema is not None else None
        self.decoder = decoder or RecordDecoder()

        self.active_schema: Optional[SchemaNode] = schema
        self.active_fingerprint: Optional[bytes] = self.supplied_fingerprint
        self.entries_seen = 0
        self.records_decoded = 0

    def resolve(self, schema_hash: bytes) -> SchemaNode:
        """Find the schema an announcement refers to."""
        if self.supplied_schema is not None:
            if schema_hash != self.supplied_fingerprint:
                raise SchemaMismatch(
                    f"announced {fingerprint_hex(schema_hash)}, "
                    f"supplied {fingerprint_hex(self.supplied_fingerprint)}"
                )
            logger.info("Schema matches")
            return self.supplied_schema

        schema = self.cache.lookup(schema_hash) if self.cache is not None else None
        if schema is None:
            raise SchemaNotFound(fingerprint_hex(schema_hash))
        return schema

    def feed(self, entry: Union[bytes, QueueEntry]) -> Optional[DecodedRecord]:
        """
        Process one entry.

        Returns:
            DecodedRecord for data records, None for schema announcements.
        """
        if isinstance(entry, QueueEntry):
            offset, data = entry.offset, entry.data
        else:
            offset, data = None, bytes(entry)

        index = self.entries_seen
        self.entries_seen += 1

        kind = classify(data)

        if isinstance(kind, SchemaAnnouncement):
            logger.info(f"Schema entry {fingerprint_hex(kind.fingerprint)}")
            self.active_schema = self.resolve(kind.fingerprint)
            self.active_fingerprint = kind.fingerprint
            return None

        if isinstance(kind, DataRecord):
            value = self.decoder.decode(kind.payload, self.active_schema)
            self.records_decoded += 1
            logger.debug(f"Data entry: {value!r}")
            return DecodedRecord(
                index=index,
                offset=offset,
                fingerprint=self.active_fingerprint,
                value=value,
            )

        raise TypeError(f"Unclassified entry: {kind!r}")

    def run(self, entries: Iterable[Union[bytes, QueueEntry]]) -> Iterator[DecodedRecord]:
        """Decode a stream lazily, yielding data records in order."""
        for entry in entries:
            record = self.feed(entry)
            if record is not None:
                yield record


def decode_partition(
    flash: NorFlash,
    cache: Optional[SchemaCache] = None,
    schema: Optional[SchemaNode] = None,
    page_size: Optional[int] = None,
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
) -> Iterator[DecodedRecord]:
    """Iterate the whole flash range and decode every record."""
    logger.info(f"partition size: {flash.capacity()}")
    if schema is not None:
        logger.info(
            f"Unpacking partition with schema {fingerprint_hex(fingerprint(schema))}: "
            f"{schema.to_pseudocode()}"
        )

    session = DecodeSession(cache=cache, schema=schema)
    entries = iter_queue(flash, page_size=page_size, max_entry_size=max_entry_size)
    return session.run(entries)
