"""Schema trees, their serialization and fingerprints."""

from .types import (
    PrimitiveKind,
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
)
from .serialization import serialize_schema, deserialize_schema
from .fingerprint import (
    FINGERPRINT_SIZE,
    fingerprint,
    fingerprint_hex,
    parse_fingerprint,
)

__all__ = [
    'PrimitiveKind',
    'SchemaNode',
    'DataShape',
    'Primitive',
    'OptionOf',
    'SeqOf',
    'TupleOf',
    'MapOf',
    'StructType',
    'EnumType',
    'SchemaMarker',
    'UnitShape',
    'NewtypeShape',
    'TupleShape',
    'StructShape',
    'NamedField',
    'Variant',
    'serialize_schema',
    'deserialize_schema',
    'FINGERPRINT_SIZE',
    'fingerprint',
    'fingerprint_hex',
    'parse_fingerprint',
]
