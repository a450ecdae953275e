"""
Postcard serialization of schema trees.

Cache entries hold a schema tree in the same encoding the firmware would
use to serialize its own schema type: every node starts with a varint
variant index in declaration order, followed by its fields. Strings and
lists carry a varint length prefix, so the encoding is self-delimiting.

    Bool=0 I8=1 U8=2 I16=3 I32=4 I64=5 I128=6 U16=7 U32=8 U64=9 U128=10
    Usize=11 Isize=12 F32=13 F64=14 Char=15 String=16 ByteArray=17
    Option=18 Unit=19 Seq=20 Tuple=21 Map=22 Struct=23 Enum=24 Schema=25

    Data shapes: Unit=0 Newtype=1 Tuple=2 Struct=3
"""

from typing import Dict

from ..core.errors import DecodeMismatch
from ..core.wire import WireReader, encode_varint
from .types import (
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


PRIMITIVE_INDEX: Dict[PrimitiveKind, int] = {
    PrimitiveKind.BOOL: 0,
    PrimitiveKind.I8: 1,
    PrimitiveKind.U8: 2,
    PrimitiveKind.I16: 3,
    PrimitiveKind.I32: 4,
    PrimitiveKind.I64: 5,
    PrimitiveKind.I128: 6,
    PrimitiveKind.U16: 7,
    PrimitiveKind.U32: 8,
    PrimitiveKind.U64: 9,
    PrimitiveKind.U128: 10,
    PrimitiveKind.USIZE: 11,
    PrimitiveKind.ISIZE: 12,
    PrimitiveKind.F32: 13,
    PrimitiveKind.F64: 14,
    PrimitiveKind.CHAR: 15,
    PrimitiveKind.STRING: 16,
    PrimitiveKind.BYTE_ARRAY: 17,
    PrimitiveKind.UNIT: 19,
}

OPTION_INDEX = 18
SEQ_INDEX = 20
TUPLE_INDEX = 21
MAP_INDEX = 22
STRUCT_INDEX = 23
ENUM_INDEX = 24
SCHEMA_INDEX = 25

SHAPE_UNIT = 0
SHAPE_NEWTYPE = 1
SHAPE_TUPLE = 2
SHAPE_STRUCT = 3

_PRIMITIVE_BY_INDEX = {index: kind for kind, index in PRIMITIVE_INDEX.items()}


def node_index(node: SchemaNode) -> int:
    """Declaration-order variant index of a node."""
    if isinstance(node, Primitive):
        return PRIMITIVE_INDEX[node.kind]
    if isinstance(node, OptionOf):
        return OPTION_INDEX
    if isinstance(node, SeqOf):
        return SEQ_INDEX
    if isinstance(node, TupleOf):
        return TUPLE_INDEX
    if isinstance(node, MapOf):
        return MAP_INDEX
    if isinstance(node, StructType):
        return STRUCT_INDEX
    if isinstance(node, EnumType):
        return ENUM_INDEX
    if isinstance(node, SchemaMarker):
        return SCHEMA_INDEX
    raise TypeError(f"Not a schema node: {node!r}")


def shape_index(shape: DataShape) -> int:
    if isinstance(shape, UnitShape):
        return SHAPE_UNIT
    if isinstance(shape, NewtypeShape):
        return SHAPE_NEWTYPE
    if isinstance(shape, TupleShape):
        return SHAPE_TUPLE
    if isinstance(shape, StructShape):
        return SHAPE_STRUCT
    raise TypeError(f"Not a data shape: {shape!r}")


# === Encoding ===

def serialize_schema(node: SchemaNode) -> bytes:
    """Encode a schema tree to bytes."""
    out = bytearray()
    _write_node(out, node)
    return bytes(out)


def _write_str(out: bytearray, text: str) -> None:
    raw = text.encode('utf-8')
    out += encode_varint(len(raw))
    out += raw


def _write_node(out: bytearray, node: SchemaNode) -> None:
    out += encode_varint(node_index(node))

    if isinstance(node, (OptionOf, SeqOf)):
        _write_node(out, node.inner)
    elif isinstance(node, TupleOf):
        out += encode_varint(len(node.elements))
        for element in node.elements:
            _write_node(out, element)
    elif isinstance(node, MapOf):
        _write_node(out, node.key)
        _write_node(out, node.val)
    elif isinstance(node, StructType):
        _write_str(out, node.name)
        _write_shape(out, node.body)
    elif isinstance(node, EnumType):
        _write_str(out, node.name)
        out += encode_varint(len(node.variants))
        for variant in node.variants:
            _write_str(out, variant.name)
            _write_shape(out, variant.body)


def _write_shape(out: bytearray, shape: DataShape) -> None:
    out += encode_varint(shape_index(shape))

    if isinstance(shape, NewtypeShape):
        _write_node(out, shape.inner)
    elif isinstance(shape, TupleShape):
        out += encode_varint(len(shape.elements))
        for element in shape.elements:
            _write_node(out, element)
    elif isinstance(shape, StructShape):
        out += encode_varint(len(shape.fields))
        for field in shape.fields:
            _write_str(out, field.name)
            _write_node(out, field.ty)


# === Decoding ===

def deserialize_schema(data: bytes) -> SchemaNode:
    """Decode a complete schema tree; trailing bytes are an error."""
    reader = WireReader(data)
    node = read_schema(reader)
    reader.expect_end()
    return node


def read_schema(reader: WireReader) -> SchemaNode:
    """Decode one schema tree from the reader's current position."""
    start = reader.offset
    index = reader.varint(32)

    if index in _PRIMITIVE_BY_INDEX:
        return Primitive(_PRIMITIVE_BY_INDEX[index])
    if index == OPTION_INDEX:
        return OptionOf(read_schema(reader))
    if index == SEQ_INDEX:
        return SeqOf(read_schema(reader))
    if index == TUPLE_INDEX:
        count = reader.length()
        return TupleOf(tuple(read_schema(reader) for _ in range(count)))
    if index == MAP_INDEX:
        key = read_schema(reader)
        return MapOf(key, read_schema(reader))
    if index == STRUCT_INDEX:
        name = reader.utf8()
        return StructType(name, _read_shape(reader))
    if index == ENUM_INDEX:
        name = reader.utf8()
        count = reader.length()
        variants = []
        for _ in range(count):
            variant_name = reader.utf8()
            variants.append(Variant(variant_name, _read_shape(reader)))
        return EnumType(name, tuple(variants))
    if index == SCHEMA_INDEX:
        return SchemaMarker()

    raise DecodeMismatch(f"unknown schema node index {index}", offset=start)


def _read_shape(reader: WireReader) -> DataShape:
    start = reader.offset
    index = reader.varint(32)

    if index == SHAPE_UNIT:
        return UnitShape()
    if index == SHAPE_NEWTYPE:
        return NewtypeShape(read_schema(reader))
    if index == SHAPE_TUPLE:
        count = reader.length()
        return TupleShape(tuple(read_schema(reader) for _ in range(count)))
    if index == SHAPE_STRUCT:
        count = reader.length()
        fields = []
        for _ in range(count):
            field_name = reader.utf8()
            fields.append(NamedField(field_name, read_schema(reader)))
        return StructShape(tuple(fields))

    raise DecodeMismatch(f"unknown data shape index {index}", offset=start)
