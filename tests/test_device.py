"""
Tests for device flash reads through esptool.

esptool itself is replaced by a fake runner that writes the requested
bytes into the output file.
"""

import subprocess

import pytest

from destore.core.errors import DeviceReadError
from destore.device import EsptoolReader


class FakeEsptool:
    """Serves read_flash requests from an in-memory flash image."""

    def __init__(self, flash: bytes, base: int = 0, returncode: int = 0, short: bool = False):
        self.flash = flash
        self.base = base
        self.returncode = returncode
        self.short = short
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        index = cmd.index('read_flash')
        offset = int(cmd[index + 1], 0) - self.base
        size = int(cmd[index + 2], 0)
        output = cmd[index + 3]

        if self.returncode == 0:
            data = self.flash[offset:offset + size]
            if self.short:
                data = data[:-1]
            with open(output, 'wb') as f:
                f.write(data)

        return subprocess.CompletedProcess(cmd, self.returncode, '', 'A fatal error occurred')


PAGE = 4096


class TestEsptoolReader:
    """Test page reads and dumps."""

    def test_command_line(self):
        """read_flash invocation carries chip, port, baud and range."""
        reader = EsptoolReader(port='/dev/ttyUSB0', baud=460800, chip='esp32c6')
        cmd = reader.command(0x110000, 0x1000, '/tmp/out.bin')

        assert cmd == [
            'esptool.py', '--chip', 'esp32c6', '--port', '/dev/ttyUSB0',
            '--baud', '460800', 'read_flash', '0x110000', '0x1000', '/tmp/out.bin',
        ]

    def test_port_optional(self):
        """Without a port esptool auto-detects one."""
        assert '--port' not in EsptoolReader().command(0, 16, 'x')

    def test_read_page(self):
        """A page read returns the device bytes."""
        fake = FakeEsptool(bytes(range(256)) * 16)
        reader = EsptoolReader(runner=fake)
        assert reader.read_page(0x100, 16) == bytes(range(16))

    def test_dump_stops_at_erased_page(self):
        """The first erased page is kept and ends the dump."""
        flash = b'\x01' * PAGE + b'\xff' * PAGE + b'\x02' * PAGE
        fake = FakeEsptool(flash, base=0x110000)
        reader = EsptoolReader(runner=fake)

        image = reader.dump(0x110000, 3 * PAGE, PAGE)
        assert image == flash[:2 * PAGE]
        assert len(fake.calls) == 2

    def test_dump_full_size(self):
        """Without erased pages the whole range is read."""
        flash = b'\x01' * (2 * PAGE)
        reader = EsptoolReader(runner=FakeEsptool(flash))
        assert reader.dump(0, 2 * PAGE, PAGE) == flash

    def test_dump_partial_last_page(self):
        """Size not a page multiple reads only what was asked."""
        flash = b'\x01' * (2 * PAGE)
        reader = EsptoolReader(runner=FakeEsptool(flash))
        assert len(reader.dump(0, PAGE + 100, PAGE)) == PAGE + 100

    def test_failure_exit_code(self):
        """Non-zero esptool exit raises DeviceReadError."""
        reader = EsptoolReader(runner=FakeEsptool(bytes(PAGE), returncode=2))
        with pytest.raises(DeviceReadError) as exc:
            reader.read_page(0, PAGE)
        assert 'fatal error' in str(exc.value)

    def test_short_read(self):
        """Fewer bytes than requested raises DeviceReadError."""
        reader = EsptoolReader(runner=FakeEsptool(bytes(PAGE), short=True))
        with pytest.raises(DeviceReadError):
            reader.read_page(0, PAGE)

    def test_missing_esptool(self):
        """Missing executable raises DeviceReadError."""
        reader = EsptoolReader(esptool='/nonexistent/esptool.py')
        with pytest.raises(DeviceReadError):
            reader.read_page(0, 16)
