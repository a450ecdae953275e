"""
Schema tree definitions.

A schema tree describes the shape of a serialized value. It is rebuilt from
a firmware image (or loaded from the cache) once, and never mutated
afterwards, so every node is a frozen dataclass and ordered children are
tuples.

    SchemaNode  = Primitive | OptionOf | SeqOf | TupleOf | MapOf
                | StructType | EnumType | SchemaMarker
    DataShape   = UnitShape | NewtypeShape | TupleShape | StructShape

Variant order inside an EnumType is declaration order; the position of a
variant is its on-wire discriminant.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class PrimitiveKind(Enum):
    """Leaf kinds, valued by their pseudocode spelling."""

    BOOL = 'bool'
    I8 = 'i8'
    U8 = 'u8'
    I16 = 'i16'
    I32 = 'i32'
    I64 = 'i64'
    I128 = 'i128'
    U16 = 'u16'
    U32 = 'u32'
    U64 = 'u64'
    U128 = 'u128'
    USIZE = 'usize'
    ISIZE = 'isize'
    F32 = 'f32'
    F64 = 'f64'
    CHAR = 'char'
    STRING = 'String'
    BYTE_ARRAY = '[u8]'
    UNIT = '()'


class SchemaNode:
    """Base class of every schema tree node."""

    def to_pseudocode(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> dict:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.to_pseudocode()


class DataShape:
    """Body of a struct or of an enum variant."""

    def to_pseudocode(self, name: str) -> str:
        raise NotImplementedError

    def to_dict(self) -> dict:
        raise NotImplementedError


@dataclass(frozen=True)
class Primitive(SchemaNode):
    kind: PrimitiveKind

    def to_pseudocode(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict:
        return {'kind': self.kind.name.lower()}


@dataclass(frozen=True)
class OptionOf(SchemaNode):
    inner: SchemaNode

    def to_pseudocode(self) -> str:
        return f"Option<{self.inner.to_pseudocode()}>"

    def to_dict(self) -> dict:
        return {'kind': 'option', 'inner': self.inner.to_dict()}


@dataclass(frozen=True)
class SeqOf(SchemaNode):
    inner: SchemaNode

    def to_pseudocode(self) -> str:
        return f"[{self.inner.to_pseudocode()}]"

    def to_dict(self) -> dict:
        return {'kind': 'seq', 'inner': self.inner.to_dict()}


@dataclass(frozen=True)
class TupleOf(SchemaNode):
    elements: Tuple[SchemaNode, ...]

    def to_pseudocode(self) -> str:
        return f"({_join(self.elements)})"

    def to_dict(self) -> dict:
        return {'kind': 'tuple', 'elements': [e.to_dict() for e in self.elements]}


@dataclass(frozen=True)
class MapOf(SchemaNode):
    key: SchemaNode
    val: SchemaNode

    def to_pseudocode(self) -> str:
        return f"Map<{self.key.to_pseudocode()}, {self.val.to_pseudocode()}>"

    def to_dict(self) -> dict:
        return {'kind': 'map', 'key': self.key.to_dict(), 'val': self.val.to_dict()}


@dataclass(frozen=True)
class StructType(SchemaNode):
    name: str
    body: DataShape

    def to_pseudocode(self) -> str:
        return f"struct {self.body.to_pseudocode(self.name)}"

    def to_dict(self) -> dict:
        return {'kind': 'struct', 'name': self.name, 'body': self.body.to_dict()}


@dataclass(frozen=True)
class EnumType(SchemaNode):
    name: str
    variants: Tuple['Variant', ...]

    def variant_index(self, name: str) -> int:
        for index, variant in enumerate(self.variants):
            if variant.name == name:
                return index
        raise KeyError(name)

    def to_pseudocode(self) -> str:
        body = ', '.join(v.body.to_pseudocode(v.name) for v in self.variants)
        return f"enum {self.name} {{ {body} }}"

    def to_dict(self) -> dict:
        return {
            'kind': 'enum',
            'name': self.name,
            'variants': [
                {'name': v.name, 'body': v.body.to_dict()} for v in self.variants
            ],
        }


@dataclass(frozen=True)
class SchemaMarker(SchemaNode):
    """A value that is itself a schema tree."""

    def to_pseudocode(self) -> str:
        return 'Schema'

    def to_dict(self) -> dict:
        return {'kind': 'schema'}


@dataclass(frozen=True)
class UnitShape(DataShape):

    def to_pseudocode(self, name: str) -> str:
        return name

    def to_dict(self) -> dict:
        return {'shape': 'unit'}


@dataclass(frozen=True)
class NewtypeShape(DataShape):
    inner: SchemaNode

    def to_pseudocode(self, name: str) -> str:
        return f"{name}({self.inner.to_pseudocode()})"

    def to_dict(self) -> dict:
        return {'shape': 'newtype', 'inner': self.inner.to_dict()}


@dataclass(frozen=True)
class TupleShape(DataShape):
    elements: Tuple[SchemaNode, ...]

    def to_pseudocode(self, name: str) -> str:
        return f"{name}({_join(self.elements)})"

    def to_dict(self) -> dict:
        return {'shape': 'tuple', 'elements': [e.to_dict() for e in self.elements]}


@dataclass(frozen=True)
class StructShape(DataShape):
    fields: Tuple['NamedField', ...]

    def to_pseudocode(self, name: str) -> str:
        fields = ', '.join(f"{f.name}: {f.ty.to_pseudocode()}" for f in self.fields)
        return f"{name} {{ {fields} }}"

    def to_dict(self) -> dict:
        return {
            'shape': 'struct',
            'fields': [{'name': f.name, 'type': f.ty.to_dict()} for f in self.fields],
        }


@dataclass(frozen=True)
class NamedField:
    name: str
    ty: SchemaNode


@dataclass(frozen=True)
class Variant:
    name: str
    body: DataShape


def _join(nodes) -> str:
    return ', '.join(n.to_pseudocode() for n in nodes)


# Shorthands for the leaf nodes
BOOL = Primitive(PrimitiveKind.BOOL)
I8 = Primitive(PrimitiveKind.I8)
U8 = Primitive(PrimitiveKind.U8)
I16 = Primitive(PrimitiveKind.I16)
I32 = Primitive(PrimitiveKind.I32)
I64 = Primitive(PrimitiveKind.I64)
I128 = Primitive(PrimitiveKind.I128)
U16 = Primitive(PrimitiveKind.U16)
U32 = Primitive(PrimitiveKind.U32)
U64 = Primitive(PrimitiveKind.U64)
U128 = Primitive(PrimitiveKind.U128)
USIZE = Primitive(PrimitiveKind.USIZE)
ISIZE = Primitive(PrimitiveKind.ISIZE)
F32 = Primitive(PrimitiveKind.F32)
F64 = Primitive(PrimitiveKind.F64)
CHAR = Primitive(PrimitiveKind.CHAR)
STRING = Primitive(PrimitiveKind.STRING)
BYTE_ARRAY = Primitive(PrimitiveKind.BYTE_ARRAY)
UNIT = Primitive(PrimitiveKind.UNIT)
