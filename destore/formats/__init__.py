"""Flash dump access: storage adapter, queue format and entry kinds."""

from .flash import NorFlash, FlashBuffer, ERASED, DEFAULT_PAGE_SIZE, is_erased
from .queue import (
    EntryHeader,
    QueueEntry,
    QueueIterator,
    HEADER_SIZE,
    WORD_SIZE,
    MARKER,
    DEFAULT_MAX_ENTRY_SIZE,
    PageState,
    page_state,
    crc16,
    length_crc,
    encode_entry,
    entry_checksum,
    iter_queue,
)
from .entry import (
    SCHEMA_MARKER,
    SchemaAnnouncement,
    DataRecord,
    LogEntry,
    classify,
    encode_announcement,
)

__all__ = [
    'NorFlash',
    'FlashBuffer',
    'ERASED',
    'DEFAULT_PAGE_SIZE',
    'is_erased',
    'EntryHeader',
    'QueueEntry',
    'QueueIterator',
    'HEADER_SIZE',
    'WORD_SIZE',
    'MARKER',
    'DEFAULT_MAX_ENTRY_SIZE',
    'PageState',
    'page_state',
    'crc16',
    'length_crc',
    'encode_entry',
    'entry_checksum',
    'iter_queue',
    'SCHEMA_MARKER',
    'SchemaAnnouncement',
    'DataRecord',
    'LogEntry',
    'classify',
    'encode_announcement',
]
