"""
Append-only flash queue format.

The device appends items with the sequential-storage queue. The range is
circular on the device, but a dump is read linearly, page by page, from the
start of the range.

Page layout (W = word size, 4 bytes on the target):

    Offset          Size  Field
    0               W     start marker   0x00 once the page holds items
    W               ...   items, back to back
    page_size - W   W     end marker     0x00 once the page is full

    start  end    state
    -      -      open          erased, nothing written yet
    set    -      partial open  the page currently being appended to
    set    set    closed        full, the next page continues the log
    -      set    corrupt

Item layout (4-byte aligned, never crosses a page):

    Offset  Size  Field
    0       4     data_crc      CRC-32 of the payload, 0 = popped item
    4       2     length        payload length in bytes
    6       2     length_crc    CRC-16 of the two length bytes
    8       n     payload       zero-padded to a multiple of 4

An item that does not fit in the rest of a page closes the page and is
written to the next one, so the entry stream continues across page
boundaries. An erased header ends the items of a page. The log ends at the
first open page or after the partially open one.
"""

import logging
import struct
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from ..core.errors import CorruptEntry
from .flash import NorFlash, is_erased

logger = logging.getLogger(__name__)

# Header layout: data crc, length, length crc
HEADER_FORMAT = '<IHH'
HEADER_SIZE = 8
ALIGNMENT = 4

# Page state marker word
WORD_SIZE = 4
MARKER = 0x00
# A marker word counts as written once half a byte worth of bits is cleared
HALF_MARKER_BITS = 4

# Data crc of an item that has been popped off the queue
POPPED_CHECKSUM = 0

MAX_LENGTH = 0xFFFE

# Entry buffer of the original reader
DEFAULT_MAX_ENTRY_SIZE = 1024


class PageState(Enum):
    OPEN = 'open'
    PARTIAL_OPEN = 'partial_open'
    CLOSED = 'closed'


def align_up(value: int, alignment: int = ALIGNMENT) -> int:
    return (value + alignment - 1) // alignment * alignment


def crc16(data: bytes) -> int:
    """CRC-16 (reflected polynomial 0xA001, initial value 0xFFFF)."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


def length_crc(length: int) -> int:
    return crc16(struct.pack('<H', length))


def entry_checksum(payload: bytes) -> int:
    """CRC-32 of a payload, with 0 (the popped marker) remapped to 1."""
    return (zlib.crc32(payload) & 0xFFFFFFFF) or 1


def _marked(word: bytes) -> bool:
    zero_bits = sum(8 - bin(byte).count('1') for byte in word)
    return zero_bits >= HALF_MARKER_BITS


def page_state(flash: NorFlash, page: int, page_size: int, word_size: int = WORD_SIZE) -> PageState:
    """Read the start and end marker words of the page at `page`."""
    start_marked = _marked(flash.read(page, word_size))
    end_marked = _marked(flash.read(page + page_size - word_size, word_size))

    if start_marked and end_marked:
        return PageState.CLOSED
    if start_marked:
        return PageState.PARTIAL_OPEN
    if end_marked:
        raise CorruptEntry("page closed without being opened", offset=page)
    return PageState.OPEN


@dataclass
class EntryHeader:
    """Item header preceding every payload."""

    checksum: int
    length: int
    length_check: int

    @classmethod
    def for_payload(cls, payload: bytes) -> 'EntryHeader':
        if len(payload) > MAX_LENGTH:
            raise ValueError(f"Entry too large: {len(payload)} > {MAX_LENGTH}")
        return cls(
            checksum=entry_checksum(payload),
            length=len(payload),
            length_check=length_crc(len(payload)),
        )

    @classmethod
    def decode(cls, data: bytes) -> 'EntryHeader':
        if len(data) < HEADER_SIZE:
            raise ValueError(f"Header too small: {len(data)} < {HEADER_SIZE}")
        checksum, length, length_check = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
        return cls(checksum=checksum, length=length, length_check=length_check)

    def encode(self) -> bytes:
        return struct.pack(HEADER_FORMAT, self.checksum, self.length, self.length_check)

    @property
    def length_valid(self) -> bool:
        return self.length_check == length_crc(self.length)

    @property
    def popped(self) -> bool:
        return self.checksum == POPPED_CHECKSUM

    @property
    def frame_size(self) -> int:
        return HEADER_SIZE + align_up(self.length)


def encode_entry(payload: bytes) -> bytes:
    """Frame a payload: header, payload, zero padding."""
    header = EntryHeader.for_payload(payload)
    padding = align_up(len(payload)) - len(payload)
    return header.encode() + bytes(payload) + b'\x00' * padding


@dataclass
class QueueEntry:
    """
    One queue entry as handed to the caller.

    Attributes:
        offset: Flash address of the item header
        data: Payload
    """
    offset: int
    data: bytes

    def __len__(self) -> int:
        return len(self.data)


class QueueIterator:
    """
    Forward-only iterator over the entries of a flash range.

    Usage:
        for entry in QueueIterator(flash, 0, flash.capacity()):
            handle(entry.data)

    Not restartable: once exhausted (or failed) it stays exhausted. Build
    a new iterator to read the range again.
    """

    def __init__(
        self,
        flash: NorFlash,
        start: int,
        end: int,
        page_size: Optional[int] = None,
        max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
    ):
        page_size = page_size or flash.erase_size
        self.word_size = max(flash.READ_SIZE, flash.WRITE_SIZE)

        if page_size % ALIGNMENT or page_size < 2 * self.word_size + HEADER_SIZE:
            raise ValueError(f"Invalid page size: {page_size}")
        if start % page_size or end % page_size:
            raise ValueError(
                f"Range {start:#x}..{end:#x} is not aligned to {page_size}-byte pages"
            )
        if not 0 <= start <= end <= flash.capacity():
            raise ValueError(
                f"Range {start:#x}..{end:#x} outside flash of {flash.capacity()} bytes"
            )

        self.flash = flash
        self.start = start
        self.end = end
        self.page_size = page_size
        self.max_entry_size = max_entry_size
        self._entries = self._iter_entries()

    def __iter__(self) -> 'QueueIterator':
        return self

    def __next__(self) -> QueueEntry:
        return next(self._entries)

    def _iter_entries(self) -> Iterator[QueueEntry]:
        for page in range(self.start, self.end, self.page_size):
            state = page_state(self.flash, page, self.page_size, self.word_size)
            if state is PageState.OPEN:
                logger.debug(f"Open page at {page:#x}, end of log")
                return

            yield from self._page_entries(page)

            if state is PageState.PARTIAL_OPEN:
                logger.debug(f"Partially open page at {page:#x}, end of log")
                return

    def _page_entries(self, page: int) -> Iterator[QueueEntry]:
        pos = page + self.word_size
        data_end = page + self.page_size - self.word_size

        while pos + HEADER_SIZE <= data_end:
            raw = self.flash.read(pos, HEADER_SIZE)
            if is_erased(raw):
                return

            header = EntryHeader.decode(raw)
            if not header.length_valid:
                raise CorruptEntry("length check failed", offset=pos, length=header.length)
            if pos + header.frame_size > data_end:
                raise CorruptEntry(
                    "entry runs past the end of its page",
                    offset=pos, length=header.length,
                )
            if header.length > self.max_entry_size:
                raise CorruptEntry(
                    f"entry of {header.length} bytes exceeds {self.max_entry_size}",
                    offset=pos,
                )

            data = self.flash.read(pos + HEADER_SIZE, header.length)

            entry_offset = pos
            pos += header.frame_size

            if header.popped:
                logger.debug(f"Skipping popped entry at {entry_offset:#x}")
                continue
            if header.checksum != entry_checksum(data):
                raise CorruptEntry("checksum mismatch", offset=entry_offset)

            yield QueueEntry(offset=entry_offset, data=data)


def iter_queue(
    flash: NorFlash,
    start: int = 0,
    end: Optional[int] = None,
    page_size: Optional[int] = None,
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
) -> Iterator[QueueEntry]:
    """Convenience wrapper: iterate a range (default: the whole flash)."""
    if end is None:
        end = flash.capacity()
    return QueueIterator(flash, start, end, page_size, max_entry_size)
