"""
Flash storage abstraction over in-memory dumps.

NorFlash describes the capabilities a queue parser may use. FlashBuffer
implements it over a byte buffer captured from a device. A dump is
evidence, not a device: write and erase exist only to complete the
interface and raise ReadOnlyFlashError, since no code path may modify it.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from ..core.errors import ReadOnlyFlashError, TruncatedRead

logger = logging.getLogger(__name__)

# Erased NOR flash reads as all bits set
ERASED = 0xFF

# Erase granularity of the device flash
DEFAULT_PAGE_SIZE = 4096


def is_erased(data: bytes) -> bool:
    """True when every byte is the erased value (empty input counts)."""
    return data.count(ERASED) == len(data)


class NorFlash(ABC):
    """
    Abstract NOR flash.

    Subclasses provide random reads; writes and erases work on WRITE_SIZE
    words and erase_size pages respectively.
    """

    READ_SIZE = 4
    WRITE_SIZE = 4

    @property
    @abstractmethod
    def erase_size(self) -> int:
        """Page (erase unit) size in bytes."""
        pass

    @abstractmethod
    def capacity(self) -> int:
        """Total size in bytes."""
        pass

    @abstractmethod
    def read(self, offset: int, length: int) -> bytes:
        """Read length bytes starting at offset."""
        pass

    @abstractmethod
    def write(self, offset: int, data: bytes) -> None:
        pass

    @abstractmethod
    def erase(self, start: int, end: int) -> None:
        pass


class FlashBuffer(NorFlash):
    """Read-only flash backed by a byte buffer."""

    def __init__(self, data: bytes, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size <= 0 or page_size % self.WRITE_SIZE:
            raise ValueError(f"Invalid page size: {page_size}")
        self._data = bytes(data)
        self._page_size = page_size

    @classmethod
    def load(cls, path: Path, page_size: int = DEFAULT_PAGE_SIZE) -> 'FlashBuffer':
        """
        Load a partition dump from disk.

        A partial trailing page is padded with erased bytes, which is what
        the unread remainder of the device page contained.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Partition file {path} does not exist")

        return cls.padded(path.read_bytes(), page_size)

    @classmethod
    def padded(cls, data: bytes, page_size: int = DEFAULT_PAGE_SIZE) -> 'FlashBuffer':
        """Wrap `data`, filling a partial trailing page with erased bytes."""
        data = bytes(data)
        tail = len(data) % page_size
        if tail:
            data += bytes([ERASED]) * (page_size - tail)
        return cls(data, page_size)

    @property
    def erase_size(self) -> int:
        return self._page_size

    @property
    def data(self) -> bytes:
        return self._data

    def capacity(self) -> int:
        return len(self._data)

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length < 0 or offset + length > len(self._data):
            raise TruncatedRead(offset=offset, length=length, size=len(self._data))
        chunk = self._data[offset:offset + length]
        logger.debug(f"read at {offset} len {length}: {chunk[:16].hex()}")
        return chunk

    def write(self, offset: int, data: bytes) -> None:
        raise ReadOnlyFlashError(f"tried to write at {offset} len {len(data)}")

    def erase(self, start: int, end: int) -> None:
        raise ReadOnlyFlashError(f"tried to erase from {start} to {end}")
