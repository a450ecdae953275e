"""Pytest fixtures and builders for destore tests."""

import struct
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from destore.core.wire import encode_varint, encode_zigzag
from destore.elf.layout import COMPOSITE_TAGS, PRIMITIVE_TAGS, TagKind
from destore.formats.queue import MARKER, WORD_SIZE, encode_entry
from destore.schema.types import (
    SchemaNode,
    DataShape,
    Primitive,
    OptionOf,
    SeqOf,
    TupleOf,
    MapOf,
    StructType,
    EnumType,
    SchemaMarker,
    UnitShape,
    NewtypeShape,
    TupleShape,
    StructShape,
    NamedField,
    Variant,
    U8,
    U16,
    U32,
    U64,
    BOOL,
    STRING,
)


RODATA_ADDR = 0x42000000
NODE_SIZE = 20

TAG_FOR_PRIMITIVE = {kind: tag for tag, kind in PRIMITIVE_TAGS.items()}
TAG_FOR_COMPOSITE = {kind: tag for tag, kind in COMPOSITE_TAGS.items()}

SHAPE_DISCRIMINANT = {
    UnitShape: 0,
    NewtypeShape: 1,
    TupleShape: 2,
    StructShape: 3,
}

# ELF constants
SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHF_ALLOC = 0x2
SHN_ABS = 0xFFF1
EM_RISCV = 243


class DescriptorImage:
    """
    Lays out schema descriptors the way the firmware compiler does, inside
    a single .rodata section, and writes them out as an ELF32 file.

    Usage:
        image = DescriptorImage()
        image.export('_DESTORE_SCHEMA', image.node(CLASSIC))
        elf_bytes = image.to_elf()
    """

    def __init__(self, base: int = RODATA_ADDR):
        self.base = base
        self.data = bytearray()
        self.symbols: List[Tuple[str, int, int]] = []

    # === Raw allocation ===

    def next_address(self) -> int:
        self._align()
        return self.base + len(self.data)

    def _align(self) -> None:
        while len(self.data) % 4:
            self.data.append(0)

    def raw(self, payload: bytes) -> int:
        """Place bytes at the next aligned address and return that address."""
        address = self.next_address()
        self.data.extend(payload)
        return address

    def offset_of(self, address: int) -> int:
        """Offset of an address inside the section contents."""
        return address - self.base

    # === Descriptor pieces ===

    def string(self, text: str) -> bytes:
        raw = text.encode('utf-8')
        if not raw:
            return struct.pack('<II', 0, 0)
        return struct.pack('<II', self.raw(raw), len(raw))

    def slice(self, addresses: Sequence[int]) -> bytes:
        if not addresses:
            return struct.pack('<II', 0, 0)
        array = self.raw(b''.join(struct.pack('<I', a) for a in addresses))
        return struct.pack('<II', array, len(addresses))

    def shape(self, shape: DataShape) -> bytes:
        discriminant = SHAPE_DISCRIMINANT[type(shape)]
        if isinstance(shape, UnitShape):
            payload = bytes(8)
        elif isinstance(shape, NewtypeShape):
            payload = struct.pack('<II', self.node(shape.inner), 0)
        elif isinstance(shape, TupleShape):
            payload = self.slice([self.node(e) for e in shape.elements])
        else:
            payload = self.slice([self.named_field(f) for f in shape.fields])
        return struct.pack('<I', discriminant) + payload

    def named_field(self, field: NamedField) -> int:
        name = self.string(field.name)
        ty = self.node(field.ty)
        return self.raw(name + struct.pack('<I', ty))

    def variant(self, variant: Variant) -> int:
        body = self.shape(variant.body)
        name = self.string(variant.name)
        return self.raw(body + name)

    def node(self, node: SchemaNode) -> int:
        """Write a node (children first) and return its address."""
        if isinstance(node, StructType):
            body = self.shape(node.body)
            return self._node(body + self.string(node.name))

        if isinstance(node, Primitive):
            return self._node(self._tag(TAG_FOR_PRIMITIVE[node.kind]))

        if isinstance(node, (OptionOf, SeqOf)):
            kind = TagKind.OPTION if isinstance(node, OptionOf) else TagKind.SEQ
            inner = self.node(node.inner)
            return self._node(self._tag(TAG_FOR_COMPOSITE[kind]) + struct.pack('<I', inner))

        if isinstance(node, TupleOf):
            elements = self.slice([self.node(e) for e in node.elements])
            return self._node(self._tag(TAG_FOR_COMPOSITE[TagKind.TUPLE]) + elements)

        if isinstance(node, MapOf):
            key = self.node(node.key)
            val = self.node(node.val)
            return self._node(
                self._tag(TAG_FOR_COMPOSITE[TagKind.MAP]) + struct.pack('<II', key, val)
            )

        if isinstance(node, EnumType):
            variants = self.slice([self.variant(v) for v in node.variants])
            name = self.string(node.name)
            return self._node(self._tag(TAG_FOR_COMPOSITE[TagKind.ENUM]) + name + variants)

        if isinstance(node, SchemaMarker):
            return self._node(self._tag(TAG_FOR_COMPOSITE[TagKind.SCHEMA]))

        raise TypeError(f"Not a schema node: {node!r}")

    @staticmethod
    def _tag(tag: int) -> bytes:
        return struct.pack('<I', tag)

    def _node(self, payload: bytes) -> int:
        assert len(payload) <= NODE_SIZE
        return self.raw(payload + bytes(NODE_SIZE - len(payload)))

    # === Symbols ===

    def export(self, name: str, node_address: int) -> int:
        """Export a pointer cell holding node_address under name."""
        cell = self.raw(struct.pack('<I', node_address))
        self.symbols.append((name, cell, 1))
        return cell

    def add_symbol(self, name: str, value: int, shndx: int = 1) -> None:
        self.symbols.append((name, value, shndx))

    # === ELF output ===

    def to_elf(self) -> bytes:
        self._align()
        rodata = bytes(self.data)

        strtab = bytearray(b'\x00')
        symtab = bytearray(bytes(16))
        for name, value, shndx in self.symbols:
            name_offset = len(strtab)
            strtab.extend(name.encode() + b'\x00')
            # STB_GLOBAL | STT_OBJECT
            symtab.extend(struct.pack('<IIIBBH', name_offset, value, 4, 0x11, 0, shndx))

        names = ['', '.rodata', '.symtab', '.strtab', '.shstrtab']
        shstrtab = bytearray()
        name_offsets = []
        for name in names:
            name_offsets.append(len(shstrtab))
            shstrtab.extend(name.encode() + b'\x00')

        out = bytearray(64)
        sections = []

        def place(content: bytes) -> int:
            while len(out) % 4:
                out.append(0)
            offset = len(out)
            out.extend(content)
            return offset

        rodata_off = place(rodata)
        symtab_off = place(bytes(symtab))
        strtab_off = place(bytes(strtab))
        shstrtab_off = place(bytes(shstrtab))

        # name, type, flags, addr, offset, size, link, info, addralign, entsize
        sections.append((0, 0, 0, 0, 0, 0, 0, 0, 0, 0))
        sections.append((name_offsets[1], SHT_PROGBITS, SHF_ALLOC, self.base,
                         rodata_off, len(rodata), 0, 0, 4, 0))
        sections.append((name_offsets[2], SHT_SYMTAB, 0, 0,
                         symtab_off, len(symtab), 3, 1, 4, 16))
        sections.append((name_offsets[3], SHT_STRTAB, 0, 0,
                         strtab_off, len(strtab), 0, 0, 1, 0))
        sections.append((name_offsets[4], SHT_STRTAB, 0, 0,
                         shstrtab_off, len(shstrtab), 0, 0, 1, 0))

        shoff = place(b'')
        for sh in sections:
            out.extend(struct.pack('<IIIIIIIIII', *sh))

        ident = b'\x7fELF' + bytes([1, 1, 1, 0]) + bytes(8)
        header = ident + struct.pack(
            '<HHIIIIIHHHHHH',
            2,              # ET_EXEC
            EM_RISCV,
            1,              # EV_CURRENT
            0,              # entry
            0,              # phoff
            shoff,
            0,              # flags
            52,             # ehsize
            0,              # phentsize
            0,              # phnum
            40,             # shentsize
            len(sections),
            len(sections) - 1,
        )
        out[0:len(header)] = header
        return bytes(out)


# === Schema fixtures ===

CLASSIC = StructType('Classic', StructShape((
    NamedField('a', U32),
    NamedField('b', U16),
    NamedField('c', BOOL),
)))

ENUMS = EnumType('Enums', (
    Variant('Unit', UnitShape()),
    Variant('Nt', NewtypeShape(U64)),
    Variant('Tup', TupleShape((U32, BOOL))),
    Variant('Str', StructShape((
        NamedField('a', U32),
        NamedField('b', U16),
        NamedField('c', BOOL),
    ))),
))

TUPLE_U8_U16_U32 = TupleOf((U8, U16, U32))

ALL_SHAPES = {
    'classic': CLASSIC,
    'enums': ENUMS,
    'tuple': TUPLE_U8_U16_U32,
    'unit_struct': StructType('Marker', UnitShape()),
    'newtype_struct': StructType('Meters', NewtypeShape(U32)),
    'tuple_struct': StructType('Pair', TupleShape((U8, STRING))),
    'option': OptionOf(U8),
    'seq': SeqOf(U16),
    'map': MapOf(U32, STRING),
    'schema': SchemaMarker(),
    'nested': StructType('Reading', StructShape((
        NamedField('id', U32),
        NamedField('tags', SeqOf(STRING)),
        NamedField('mode', OptionOf(ENUMS)),
    ))),
}


def build_elf(schemas: Dict[str, SchemaNode]) -> bytes:
    """ELF image exporting each schema under its symbol name."""
    image = DescriptorImage()
    for symbol, schema in schemas.items():
        image.export(symbol, image.node(schema))
    return image.to_elf()


# === Queue fixtures ===

def build_queue_image(
    payloads: Iterable[bytes],
    page_size: int = 256,
    pages: int = 4,
    popped: Iterable[int] = (),
) -> bytes:
    """Flash image holding the given entries, pushed the way the device queue does."""
    popped = set(popped)
    image = bytearray(b'\xff' * (page_size * pages))
    marker = bytes([MARKER]) * WORD_SIZE
    page = None
    pos = 0
    for index, payload in enumerate(payloads):
        frame = bytearray(encode_entry(payload))
        if index in popped:
            frame[0:4] = bytes(4)

        if page is None:
            page = 0
            image[0:WORD_SIZE] = marker
            pos = WORD_SIZE
        elif pos + len(frame) > page + page_size - WORD_SIZE:
            # Close the full page, open the next one
            image[page + page_size - WORD_SIZE:page + page_size] = marker
            page += page_size
            assert page < len(image), "entries do not fit the image"
            image[page:page + WORD_SIZE] = marker
            pos = page + WORD_SIZE

        assert pos + len(frame) <= page + page_size - WORD_SIZE, "entry larger than a page"
        image[pos:pos + len(frame)] = frame
        pos += len(frame)
    return bytes(image)


def postcard_classic(a: int, b: int, c: bool) -> bytes:
    return encode_varint(a) + encode_varint(b) + bytes([int(c)])


def postcard_string(text: str) -> bytes:
    raw = text.encode('utf-8')
    return encode_varint(len(raw)) + raw


def postcard_i32(value: int) -> bytes:
    return encode_zigzag(value)


@pytest.fixture
def classic_elf(tmp_path) -> Path:
    """Firmware binary exporting the Classic struct."""
    path = tmp_path / "firmware.elf"
    path.write_bytes(build_elf({'_DESTORE_SCHEMA': CLASSIC}))
    return path


@pytest.fixture
def tuple_elf(tmp_path) -> Path:
    """Firmware binary exporting the (u8, u16, u32) tuple."""
    path = tmp_path / "firmware.elf"
    path.write_bytes(build_elf({
        '_DESTORE_SCHEMA': TUPLE_U8_U16_U32,
        '_DESTORE_SCHEMA_CLASSIC': CLASSIC,
    }))
    return path


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    return tmp_path / ".destore"
