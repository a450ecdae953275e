"""
Schema reconstruction from a firmware image.

The firmware exports a static pointer (default symbol `_DESTORE_SCHEMA`) to
the compiler's in-memory schema descriptor tree. No debug information is
needed: the descriptors are read byte for byte from the image, following
the 32-bit little-endian layout of the target.

Descriptor node (20 bytes, 4-byte aligned):

    Struct family (tag 0..3, the tag IS the data shape discriminant):
        +0   u32   shape discriminant (0=unit 1=newtype 2=tuple 3=struct)
        +4   8     shape payload
        +12  str   name
    Everything else:
        +0   u8    tag (see PRIMITIVE_TAGS / COMPOSITE_TAGS)
        +4   ...   payload

The node enum numbers its variants from 4 upwards in declaration order.
Struct would sit at 27, but the compiler folded it into the niche of its
nested shape discriminant (0..3), so 27 never appears.

Data shape (12 bytes):
    +0   u32   discriminant
    +4   ptr   newtype inner          | slice of nodes or named fields

Variant (20 bytes):     +0 shape, +12 name
Named field (12 bytes): +0 name,  +8 ptr to node
Slice (8 bytes):        +0 ptr to array of element pointers, +4 u32 count
str (8 bytes):          +0 ptr to UTF-8 bytes, +4 u32 length
"""

import io
import logging
import struct
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Set, TypeVar

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from ..core.errors import (
    CyclicSchema,
    InvalidBinary,
    InvalidUtf8,
    TruncatedRead,
    UnknownTag,
)
from ..schema.types import (
    SchemaNode,
    DataShape,
    PrimitiveKind,
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
)
from .resolver import AddressResolver

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Default export symbol
DEFAULT_SYMBOL = '_DESTORE_SCHEMA'

POINTER_SIZE = 4


class TagKind(Enum):
    """Composite node kinds that carry a payload after the tag word."""
    OPTION = 'option'
    SEQ = 'seq'
    TUPLE = 'tuple'
    MAP = 'map'
    ENUM = 'enum'
    SCHEMA = 'schema'


# Tag 0..3: struct family, the byte doubles as the shape discriminant
STRUCT_FAMILY_TAGS = frozenset({0, 1, 2, 3})

PRIMITIVE_TAGS: Dict[int, PrimitiveKind] = {
    4: PrimitiveKind.BOOL,
    5: PrimitiveKind.I8,
    6: PrimitiveKind.U8,
    7: PrimitiveKind.I16,
    8: PrimitiveKind.I32,
    9: PrimitiveKind.I64,
    10: PrimitiveKind.I128,
    11: PrimitiveKind.U16,
    12: PrimitiveKind.U32,
    13: PrimitiveKind.U64,
    14: PrimitiveKind.U128,
    15: PrimitiveKind.USIZE,
    16: PrimitiveKind.ISIZE,
    17: PrimitiveKind.F32,
    18: PrimitiveKind.F64,
    19: PrimitiveKind.CHAR,
    20: PrimitiveKind.STRING,
    21: PrimitiveKind.BYTE_ARRAY,
    23: PrimitiveKind.UNIT,
}

COMPOSITE_TAGS: Dict[int, TagKind] = {
    22: TagKind.OPTION,
    24: TagKind.SEQ,
    25: TagKind.TUPLE,
    26: TagKind.MAP,
    # 27: struct, relocated to STRUCT_FAMILY_TAGS
    28: TagKind.ENUM,
    29: TagKind.SCHEMA,
}

# Data shape discriminants (u32)
SHAPE_UNIT = 0
SHAPE_NEWTYPE = 1
SHAPE_TUPLE = 2
SHAPE_STRUCT = 3

# Field offsets inside a node
STRUCT_NAME_OFFSET = 12
PAYLOAD_OFFSET = 4
MAP_VAL_OFFSET = 8
ENUM_NAME_OFFSET = 4
ENUM_VARIANTS_OFFSET = 12
VARIANT_NAME_OFFSET = 12
FIELD_TYPE_OFFSET = 8


class BinaryLayoutDecoder:
    """
    Reconstructs SchemaNode trees from a firmware image.

    All reads go through bounds-checked helpers over (image, offset); a
    pointer is never dereferenced without first resolving its address to a
    file offset.
    """

    def __init__(self, image: bytes, resolver: AddressResolver):
        self.image = bytes(image)
        self.resolver = resolver
        self._path: Set[int] = set()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'BinaryLayoutDecoder':
        """Parse an ELF image held in memory."""
        try:
            elf = ELFFile(io.BytesIO(data))
            resolver = AddressResolver.from_elf(elf)
        except ELFError as e:
            raise InvalidBinary(f"Failed to parse ELF file: {e}") from e
        return cls(data, resolver)

    @classmethod
    def from_path(cls, path: Path) -> 'BinaryLayoutDecoder':
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"ELF file not found: {path}")
        return cls.from_bytes(path.read_bytes())

    # === Raw access ===

    def _check(self, offset: int, length: int) -> None:
        if offset < 0 or offset + length > len(self.image):
            raise TruncatedRead(offset=offset, length=length, size=len(self.image))

    def read_u8(self, offset: int) -> int:
        self._check(offset, 1)
        return self.image[offset]

    def read_u32(self, offset: int) -> int:
        self._check(offset, 4)
        return struct.unpack_from('<I', self.image, offset)[0]

    def read_pointer(self, offset: int) -> int:
        """Read a 32-bit address at offset and resolve it to a file offset."""
        address = self.read_u32(offset)
        logger.debug(f"Resolving pointer at offset {offset:#x} to addr {address:#x}")
        return self.resolver.resolve(address)

    # === Schema entry points ===

    def load_schema(self, symbol_name: str = DEFAULT_SYMBOL) -> SchemaNode:
        """Decode the schema tree an exported symbol points to."""
        symbol = self.resolver.find_symbol(symbol_name)
        schema_offset = self.resolver.section_offset(symbol.section_index, symbol.value)
        logger.debug(
            f"sym {symbol_name} value: {symbol.value:#x}, offset: {schema_offset:#x}"
        )
        return self.decode_node(self.read_pointer(schema_offset))

    def list_schemas(self, prefix: str = DEFAULT_SYMBOL) -> Dict[str, SchemaNode]:
        """Decode every exported symbol whose name starts with prefix."""
        return {
            symbol.name: self.load_schema(symbol.name)
            for symbol in self.resolver.symbols_with_prefix(prefix)
        }

    # === Descriptor decoding ===

    def decode_node(self, offset: int) -> SchemaNode:
        if offset in self._path:
            raise CyclicSchema(offset=offset)
        self._path.add(offset)
        try:
            return self._decode_node(offset)
        finally:
            self._path.discard(offset)

    def _decode_node(self, offset: int) -> SchemaNode:
        tag = self.read_u8(offset)
        logger.debug(f"Decoding type tag {tag} at offset {offset:#x}")

        if tag in STRUCT_FAMILY_TAGS:
            body = self.decode_data_shape(offset)
            name = self.decode_str(offset + STRUCT_NAME_OFFSET)
            return StructType(name, body)

        if tag in PRIMITIVE_TAGS:
            return Primitive(PRIMITIVE_TAGS[tag])

        kind = COMPOSITE_TAGS.get(tag)
        payload = offset + PAYLOAD_OFFSET

        if kind is TagKind.OPTION:
            return OptionOf(self.decode_node(self.read_pointer(payload)))

        if kind is TagKind.SEQ:
            return SeqOf(self.decode_node(self.read_pointer(payload)))

        if kind is TagKind.TUPLE:
            return TupleOf(tuple(self.decode_slice(payload, self.decode_node)))

        if kind is TagKind.MAP:
            key = self.decode_node(self.read_pointer(payload))
            val = self.decode_node(self.read_pointer(offset + MAP_VAL_OFFSET))
            return MapOf(key, val)

        if kind is TagKind.ENUM:
            name = self.decode_str(offset + ENUM_NAME_OFFSET)
            variants = self.decode_slice(offset + ENUM_VARIANTS_OFFSET, self.decode_variant)
            return EnumType(name, tuple(variants))

        if kind is TagKind.SCHEMA:
            return SchemaMarker()

        raise UnknownTag(tag, offset=offset)

    def decode_data_shape(self, offset: int) -> DataShape:
        """Shape shared by struct bodies and enum variant bodies."""
        discriminant = self.read_u32(offset)
        payload = offset + PAYLOAD_OFFSET

        if discriminant == SHAPE_UNIT:
            return UnitShape()
        if discriminant == SHAPE_NEWTYPE:
            return NewtypeShape(self.decode_node(self.read_pointer(payload)))
        if discriminant == SHAPE_TUPLE:
            return TupleShape(tuple(self.decode_slice(payload, self.decode_node)))
        if discriminant == SHAPE_STRUCT:
            return StructShape(tuple(self.decode_slice(payload, self.decode_named_field)))

        raise UnknownTag(discriminant, "unknown data shape discriminant", offset=offset)

    def decode_variant(self, offset: int) -> Variant:
        body = self.decode_data_shape(offset)
        name = self.decode_str(offset + VARIANT_NAME_OFFSET)
        return Variant(name, body)

    def decode_named_field(self, offset: int) -> NamedField:
        name = self.decode_str(offset)
        ty = self.decode_node(self.read_pointer(offset + FIELD_TYPE_OFFSET))
        return NamedField(name, ty)

    def decode_slice(self, offset: int, element_decoder: Callable[[int], T]) -> List[T]:
        """Decode a (pointer to array of element pointers, count) pair."""
        count = self.read_u32(offset + POINTER_SIZE)
        if count == 0:
            return []
        array_start = self.read_pointer(offset)
        logger.debug(f"slice start {array_start:#x} count {count}")
        # Every slot is a 4-byte pointer, so the whole array must fit
        self._check(array_start, count * POINTER_SIZE)

        return [
            element_decoder(self.read_pointer(array_start + index * POINTER_SIZE))
            for index in range(count)
        ]

    def decode_str(self, offset: int) -> str:
        length = self.read_u32(offset + POINTER_SIZE)
        if length == 0:
            return ''
        start = self.read_pointer(offset)
        self._check(start, length)
        raw = self.image[start:start + length]
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise InvalidUtf8(f"{e.reason} at offset {start:#x}") from e
