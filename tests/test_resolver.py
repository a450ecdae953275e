"""
Tests for address resolution and structured errors.
"""

import io

import pytest
from elftools.elf.elffile import ELFFile

from destore.core.errors import (
    ErrorCode,
    SectionOutOfBounds,
    SymbolNotFound,
    TruncatedRead,
)
from destore.elf import AddressResolver, Section, Symbol

from conftest import CLASSIC, RODATA_ADDR, build_elf


@pytest.fixture
def resolver():
    return AddressResolver(
        sections=[
            Section(0, '', 0, 0, 0, alloc=False),
            Section(1, '.rodata', 0x42000000, 0x100, 0x200),
            Section(2, '.data', 0x3FC80000, 0x300, 0x40),
            Section(3, '.comment', 0x42000000, 0x400, 0x80, alloc=False),
        ],
        symbols=[
            Symbol('', 0, None),
            Symbol('_DESTORE_SCHEMA', 0x42000010, 1),
            Symbol('_DESTORE_SCHEMA_TUPLE', 0x42000020, 1),
            Symbol('counter', 0x3FC80004, 2),
        ],
    )


class TestResolve:
    """Test virtual address to file offset mapping."""

    def test_resolve_in_section(self, resolver):
        """Offset is section offset plus distance from section start."""
        assert resolver.resolve(0x42000000) == 0x100
        assert resolver.resolve(0x42000123) == 0x223
        assert resolver.resolve(0x3FC80010) == 0x310

    def test_section_end_is_exclusive(self, resolver):
        """Address one past the section end does not resolve."""
        with pytest.raises(SectionOutOfBounds):
            resolver.resolve(0x42000200)

    def test_unmapped_address(self, resolver):
        """Address outside every section raises SectionOutOfBounds."""
        with pytest.raises(SectionOutOfBounds):
            resolver.resolve(0xDEADBEEF)

    def test_non_alloc_sections_ignored(self):
        """Sections not loaded at runtime never satisfy a pointer."""
        resolver = AddressResolver(
            sections=[
                Section(0, '.debug_info', 0x1000, 0x40, 0x100, alloc=False),
                Section(1, '.rodata', 0x1000, 0x200, 0x100),
            ],
            symbols=[],
        )
        assert resolver.resolve(0x1010) == 0x210


class TestSymbols:
    """Test symbol lookup."""

    def test_find_symbol(self, resolver):
        """Exact name lookup returns value and section."""
        symbol = resolver.find_symbol('_DESTORE_SCHEMA')
        assert symbol.value == 0x42000010
        assert symbol.section_index == 1

    def test_symbol_not_found(self, resolver):
        """Unknown name raises SymbolNotFound."""
        with pytest.raises(SymbolNotFound) as exc:
            resolver.find_symbol('_DESTORE')
        assert exc.value.code == ErrorCode.E1001_SYMBOL_NOT_FOUND

    def test_symbols_with_prefix(self, resolver):
        """Prefix match returns all schema exports."""
        names = [s.name for s in resolver.symbols_with_prefix('_DESTORE_SCHEMA')]
        assert names == ['_DESTORE_SCHEMA', '_DESTORE_SCHEMA_TUPLE']

    def test_section_offset(self, resolver):
        """Symbol address maps through its own section."""
        assert resolver.section_offset(1, 0x42000010) == 0x110

    def test_section_offset_bad_index(self, resolver):
        """Invalid section index raises SectionOutOfBounds."""
        with pytest.raises(SectionOutOfBounds):
            resolver.section_offset(9, 0x42000010)
        with pytest.raises(SectionOutOfBounds):
            resolver.section_offset(None, 0x42000010)

    def test_section_offset_outside_section(self, resolver):
        """Address outside the named section raises SectionOutOfBounds."""
        with pytest.raises(SectionOutOfBounds):
            resolver.section_offset(2, 0x42000010)


class TestFromElf:
    """Test table extraction through pyelftools."""

    def test_tables_loaded(self):
        """Sections and symbols come from the ELF headers."""
        elf = ELFFile(io.BytesIO(build_elf({'_DESTORE_SCHEMA': CLASSIC})))
        resolver = AddressResolver.from_elf(elf)

        rodata = [s for s in resolver.sections if s.name == '.rodata'][0]
        assert rodata.address == RODATA_ADDR
        assert rodata.alloc
        assert not [s for s in resolver.sections if s.name == '.symtab'][0].alloc

        symbol = resolver.find_symbol('_DESTORE_SCHEMA')
        assert symbol.section_index == rodata.index
        assert rodata.contains(symbol.value)


class TestErrors:
    """Test structured error reporting."""

    def test_error_dict(self):
        """Errors serialize code, message and context."""
        error = TruncatedRead(offset=0x1F0, length=4, size=0x1F2)
        data = error.to_dict()

        assert data['code'] == 'E1003'
        assert data['severity'] == 'error'
        assert data['context'] == {'offset': 0x1F0, 'length': 4, 'size': 0x1F2}
        assert not data['recoverable']

    def test_message_includes_detail(self):
        """Detail text is appended to the base message."""
        error = SymbolNotFound('_DESTORE_SCHEMA')
        assert '_DESTORE_SCHEMA' in str(error)
