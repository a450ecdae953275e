"""
Flash reads from an attached device through esptool.

Each page is fetched with a separate `esptool.py read_flash` call into a
temporary file. Dumps stop after the first fully erased page, since the log
queue never has written data past it.
"""

import os
import logging
import subprocess
import tempfile
from typing import Callable, List, Optional

from ..core.errors import DeviceReadError
from ..formats.flash import DEFAULT_PAGE_SIZE, is_erased

logger = logging.getLogger(__name__)


class EsptoolReader:
    """
    Reads flash contents over the serial bootloader.

    Usage:
        reader = EsptoolReader(port='/dev/ttyUSB0')
        image = reader.dump(0x110000, 0x10000)
    """

    def __init__(
        self,
        port: Optional[str] = None,
        baud: int = 921600,
        chip: str = 'esp32c6',
        esptool: str = 'esptool.py',
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.port = port
        self.baud = baud
        self.chip = chip
        self.esptool = esptool
        self._run = runner

    def command(self, offset: int, size: int, output: str) -> List[str]:
        cmd = [self.esptool, '--chip', self.chip]
        if self.port:
            cmd += ['--port', self.port]
        cmd += [
            '--baud', str(self.baud),
            'read_flash',
            hex(offset), hex(size),
            output,
        ]
        return cmd

    def read_page(self, offset: int, size: int = DEFAULT_PAGE_SIZE) -> bytes:
        """Read `size` bytes starting at `offset`."""
        fd, tmp_path = tempfile.mkstemp(prefix='destore-', suffix='.bin')
        os.close(fd)
        try:
            cmd = self.command(offset, size, tmp_path)
            logger.debug(f"Running: {' '.join(cmd)}")

            try:
                result = self._run(cmd, capture_output=True, text=True)
            except OSError as e:
                raise DeviceReadError(
                    f"cannot run {self.esptool}: {e}", offset=offset
                ) from e

            if result.returncode != 0:
                raise DeviceReadError(
                    f"{self.esptool} exited with {result.returncode}: "
                    f"{(result.stderr or '').strip()}",
                    offset=offset,
                )

            with open(tmp_path, 'rb') as f:
                data = f.read()
        finally:
            os.unlink(tmp_path)

        if len(data) != size:
            raise DeviceReadError(
                f"short read: {len(data)} of {size} bytes", offset=offset
            )
        return data

    def dump(self, start: int, size: int, page_size: int = DEFAULT_PAGE_SIZE) -> bytes:
        """
        Read up to `size` bytes from `start`, page by page.

        The first entirely erased page is kept in the result and ends the
        dump early.
        """
        image = bytearray()
        offset = start
        rest = size

        while rest > 0:
            chunk = min(page_size, rest)
            page = self.read_page(offset, chunk)
            image.extend(page)
            logger.debug(f"Read {chunk} bytes at {offset:#x}")

            if is_erased(page):
                logger.info(f"Erased page at {offset:#x}, stopping")
                break

            rest -= chunk
            offset += chunk

        logger.info(f"Dumped {len(image)} bytes from {start:#x}")
        return bytes(image)
