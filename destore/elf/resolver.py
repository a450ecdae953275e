"""
Virtual address to file offset resolution.

Static data of a firmware image lives in several sections (initialized
and zero-initialized), and runtime addresses do not equal file offsets.
AddressResolver keeps a flat copy of the section and symbol tables and
answers two questions:

- where is symbol X?                 -> (section index, virtual address)
- where in the file is address A?    -> file offset

    file_offset = section.offset + (address - section.address)
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection

from ..core.errors import SymbolNotFound, SectionOutOfBounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Section:
    """
    One section header.

    Attributes:
        index: Position in the section header table
        name: Section name (from the section header string table)
        address: Virtual address at runtime
        offset: Byte offset of the section contents in the file
        size: Size in bytes
        alloc: Whether the section occupies memory at runtime
    """
    index: int
    name: str
    address: int
    offset: int
    size: int
    alloc: bool = True

    def contains(self, address: int) -> bool:
        return self.address <= address < self.address + self.size


@dataclass(frozen=True)
class Symbol:
    """Symbol table entry. section_index is None for special indices (ABS, UNDEF)."""
    name: str
    value: int
    section_index: Optional[int]


class AddressResolver:
    """
    Section-range lookup over a parsed binary.

    Usage:
        resolver = AddressResolver.from_elf(ELFFile(stream))
        symbol = resolver.find_symbol('_DESTORE_SCHEMA')
        offset = resolver.section_offset(symbol.section_index, symbol.value)
        target = resolver.resolve(pointer_value)
    """

    def __init__(self, sections: Iterable[Section], symbols: Iterable[Symbol]):
        self.sections: List[Section] = list(sections)
        self.symbols: List[Symbol] = list(symbols)

    @classmethod
    def from_elf(cls, elf: ELFFile) -> 'AddressResolver':
        """Build from a pyelftools ELFFile."""
        sections = []
        symbols = []

        for index, section in enumerate(elf.iter_sections()):
            sections.append(Section(
                index=index,
                name=section.name,
                address=section['sh_addr'],
                offset=section['sh_offset'],
                size=section['sh_size'],
                alloc=bool(section['sh_flags'] & SH_FLAGS.SHF_ALLOC),
            ))

            if isinstance(section, SymbolTableSection):
                for sym in section.iter_symbols():
                    shndx = sym['st_shndx']
                    symbols.append(Symbol(
                        name=sym.name,
                        value=sym['st_value'],
                        section_index=shndx if isinstance(shndx, int) else None,
                    ))

        logger.debug(f"Loaded {len(sections)} sections, {len(symbols)} symbols")
        return cls(sections, symbols)

    def find_symbol(self, name: str) -> Symbol:
        """Linear scan of the symbol table by exact name."""
        for symbol in self.symbols:
            if symbol.name == name:
                return symbol
        raise SymbolNotFound(name)

    def symbols_with_prefix(self, prefix: str) -> List[Symbol]:
        return [s for s in self.symbols if s.name.startswith(prefix)]

    def section(self, index: Optional[int]) -> Section:
        if index is None or not 0 <= index < len(self.sections):
            raise SectionOutOfBounds(f"section index {index}")
        return self.sections[index]

    def section_offset(self, index: Optional[int], address: int) -> int:
        """File offset of an address known to lie in the given section."""
        section = self.section(index)
        if not section.contains(address):
            raise SectionOutOfBounds(
                f"address {address:#x} outside section {section.name or index}"
            )
        return section.offset + address - section.address

    def resolve(self, address: int) -> int:
        """File offset of a virtual address; first containing section wins."""
        for section in self.sections:
            if section.alloc and section.contains(address):
                logger.debug(
                    f"Resolving address {address:#x} in section "
                    f"{section.name} ({section.index})"
                )
                return section.offset + address - section.address

        raise SectionOutOfBounds(f"could not resolve pointer address {address:#x}")
