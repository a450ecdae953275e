"""
Queue entry classification.

Every entry is either a schema announcement or a data record:

    [0xFF, h0..h7]   schema announcement, h = 8-byte fingerprint
    [b0, ...]        data record (b0 != 0xFF), postcard-encoded value

The marker is not guaranteed disjoint from the first byte of a data
record; entries are classified by the first byte alone.
"""

from dataclasses import dataclass
from typing import Union

from ..core.errors import DecodeMismatch, EmptyEntry
from ..schema.fingerprint import FINGERPRINT_SIZE, fingerprint_hex

# First byte of a schema announcement
SCHEMA_MARKER = 0xFF

ANNOUNCEMENT_SIZE = 1 + FINGERPRINT_SIZE


@dataclass(frozen=True)
class SchemaAnnouncement:
    fingerprint: bytes

    def __repr__(self) -> str:
        return f"SchemaAnnouncement({fingerprint_hex(self.fingerprint)})"


@dataclass(frozen=True)
class DataRecord:
    payload: bytes


LogEntry = Union[SchemaAnnouncement, DataRecord]


def classify(entry: bytes) -> LogEntry:
    """Classify raw entry bytes by their leading byte."""
    if len(entry) == 0:
        raise EmptyEntry()

    if entry[0] == SCHEMA_MARKER:
        if len(entry) != ANNOUNCEMENT_SIZE:
            raise DecodeMismatch(
                f"schema announcement of {len(entry)} bytes, expected {ANNOUNCEMENT_SIZE}"
            )
        return SchemaAnnouncement(bytes(entry[1:]))

    return DataRecord(bytes(entry))


def encode_announcement(schema_hash: bytes) -> bytes:
    """Entry payload announcing the schema of the records that follow."""
    if len(schema_hash) != FINGERPRINT_SIZE:
        raise ValueError(f"Fingerprint must be {FINGERPRINT_SIZE} bytes")
    return bytes([SCHEMA_MARKER]) + bytes(schema_hash)
