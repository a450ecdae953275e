"""
Schema-driven decoding of postcard records.

RecordDecoder walks a SchemaNode tree and consumes the record bytes it
describes, producing a TypedValue: a plain, self-describing Python value.

    bool, int, float, str          primitives (char is a 1-character str)
    bytes                          ByteArray
    None                           Unit, unit structs, Option::None
    tuple                          Tuple and tuple structs/variants
    list                           Seq
    dict                           Map, named-field structs/variants
    str                            unit enum variant (its name)
    {variant: body}                any other enum variant
    SchemaNode                     SchemaMarker

Newtype structs decode to their inner value.
"""

from typing import Any, Optional

from ..core.errors import DecodeMismatch, NoActiveSchema
from ..core.wire import WireReader
from ..schema.serialization import read_schema
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
)

TypedValue = Any

# Upper bound on elements of a sequence or map whose elements occupy no bytes
MAX_ZERO_SIZED_COUNT = 1024

# Varint widths per integer kind (usize/isize may come from 64-bit hosts)
UNSIGNED_BITS = {
    PrimitiveKind.U16: 16,
    PrimitiveKind.U32: 32,
    PrimitiveKind.U64: 64,
    PrimitiveKind.U128: 128,
    PrimitiveKind.USIZE: 64,
}

SIGNED_BITS = {
    PrimitiveKind.I16: 16,
    PrimitiveKind.I32: 32,
    PrimitiveKind.I64: 64,
    PrimitiveKind.I128: 128,
    PrimitiveKind.ISIZE: 64,
}


def _freeze(value: TypedValue) -> TypedValue:
    """Make a decoded value usable as a dict key."""
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, tuple):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple((_freeze(k), _freeze(v)) for k, v in value.items())
    return value


def is_zero_sized(node: SchemaNode) -> bool:
    """True when every value of the type encodes to zero bytes."""
    if isinstance(node, Primitive):
        return node.kind is PrimitiveKind.UNIT
    if isinstance(node, TupleOf):
        return all(is_zero_sized(e) for e in node.elements)
    if isinstance(node, StructType):
        return _shape_zero_sized(node.body)
    return False


def _shape_zero_sized(shape: DataShape) -> bool:
    if isinstance(shape, UnitShape):
        return True
    if isinstance(shape, NewtypeShape):
        return is_zero_sized(shape.inner)
    if isinstance(shape, TupleShape):
        return all(is_zero_sized(e) for e in shape.elements)
    if isinstance(shape, StructShape):
        return all(is_zero_sized(f.ty) for f in shape.fields)
    return False


class RecordDecoder:
    """Decodes record bytes against a schema tree."""

    def decode(self, entry: bytes, schema: Optional[SchemaNode]) -> TypedValue:
        """
        Decode one complete record.

        Raises:
            NoActiveSchema: no schema has been established yet
            DecodeMismatch: bytes do not match the schema (including
                trailing bytes after the value)
        """
        if schema is None:
            raise NoActiveSchema()

        reader = WireReader(entry)
        value = self.read_value(reader, schema)
        reader.expect_end()
        return value

    def read_value(self, reader: WireReader, node: SchemaNode) -> TypedValue:
        if isinstance(node, Primitive):
            return self._read_primitive(reader, node.kind)

        if isinstance(node, OptionOf):
            start = reader.offset
            tag = reader.u8()
            if tag == 0:
                return None
            if tag == 1:
                return self.read_value(reader, node.inner)
            raise DecodeMismatch(f"invalid option tag {tag}", offset=start)

        if isinstance(node, SeqOf):
            count = self._read_count(reader, node.inner)
            return [self.read_value(reader, node.inner) for _ in range(count)]

        if isinstance(node, TupleOf):
            return tuple(self.read_value(reader, e) for e in node.elements)

        if isinstance(node, MapOf):
            count = self._read_count(reader, node.key, node.val)
            result = {}
            for _ in range(count):
                key = _freeze(self.read_value(reader, node.key))
                result[key] = self.read_value(reader, node.val)
            return result

        if isinstance(node, StructType):
            return self._read_shape(reader, node.body)

        if isinstance(node, EnumType):
            start = reader.offset
            discriminant = reader.varint(32)
            if discriminant >= len(node.variants):
                raise DecodeMismatch(
                    f"invalid discriminant {discriminant} for enum {node.name} "
                    f"with {len(node.variants)} variants",
                    offset=start,
                )
            variant = node.variants[discriminant]
            if isinstance(variant.body, UnitShape):
                return variant.name
            return {variant.name: self._read_shape(reader, variant.body)}

        if isinstance(node, SchemaMarker):
            return read_schema(reader)

        raise TypeError(f"Not a schema node: {node!r}")

    def _read_count(self, reader: WireReader, *elements: SchemaNode) -> int:
        """Element count of a sequence or map, bounded by what the record can hold."""
        start = reader.offset
        count = reader.length()
        if all(is_zero_sized(e) for e in elements):
            if count > MAX_ZERO_SIZED_COUNT:
                raise DecodeMismatch(
                    f"{count} zero-sized elements exceed {MAX_ZERO_SIZED_COUNT}",
                    offset=start,
                )
        elif count > reader.remaining:
            raise DecodeMismatch(
                f"{count} elements cannot fit in {reader.remaining} remaining bytes",
                offset=start,
            )
        return count

    def _read_shape(self, reader: WireReader, shape: DataShape) -> TypedValue:
        if isinstance(shape, UnitShape):
            return None
        if isinstance(shape, NewtypeShape):
            return self.read_value(reader, shape.inner)
        if isinstance(shape, TupleShape):
            return tuple(self.read_value(reader, e) for e in shape.elements)
        if isinstance(shape, StructShape):
            return {f.name: self.read_value(reader, f.ty) for f in shape.fields}
        raise TypeError(f"Not a data shape: {shape!r}")

    def _read_primitive(self, reader: WireReader, kind: PrimitiveKind) -> TypedValue:
        start = reader.offset

        if kind is PrimitiveKind.BOOL:
            byte = reader.u8()
            if byte > 1:
                raise DecodeMismatch(f"invalid bool {byte}", offset=start)
            return bool(byte)
        if kind is PrimitiveKind.U8:
            return reader.u8()
        if kind is PrimitiveKind.I8:
            return reader.i8()
        if kind in UNSIGNED_BITS:
            return reader.varint(UNSIGNED_BITS[kind])
        if kind in SIGNED_BITS:
            return reader.zigzag(SIGNED_BITS[kind])
        if kind is PrimitiveKind.F32:
            return reader.f32()
        if kind is PrimitiveKind.F64:
            return reader.f64()
        if kind is PrimitiveKind.CHAR:
            text = reader.utf8()
            if len(text) != 1:
                raise DecodeMismatch(f"char of length {len(text)}", offset=start)
            return text
        if kind is PrimitiveKind.STRING:
            return reader.utf8()
        if kind is PrimitiveKind.BYTE_ARRAY:
            return reader.take(reader.length())
        if kind is PrimitiveKind.UNIT:
            return None

        raise TypeError(f"Unhandled primitive kind: {kind}")


def to_jsonable(value: TypedValue) -> Any:
    """Convert a TypedValue into something json.dumps accepts."""
    if isinstance(value, SchemaNode):
        return value.to_dict()
    if isinstance(value, bytes):
        return list(value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {
            k if isinstance(k, str) else _json_key(k): to_jsonable(v)
            for k, v in value.items()
        }
    return value


def _json_key(key: TypedValue) -> str:
    if isinstance(key, (tuple, bytes)):
        return repr(to_jsonable(key))
    return str(key)
