"""Firmware image access: address resolution and schema reconstruction."""

from .resolver import AddressResolver, Section, Symbol
from .layout import (
    BinaryLayoutDecoder,
    DEFAULT_SYMBOL,
    STRUCT_FAMILY_TAGS,
    PRIMITIVE_TAGS,
    COMPOSITE_TAGS,
    TagKind,
)

__all__ = [
    'AddressResolver',
    'Section',
    'Symbol',
    'BinaryLayoutDecoder',
    'DEFAULT_SYMBOL',
    'STRUCT_FAMILY_TAGS',
    'PRIMITIVE_TAGS',
    'COMPOSITE_TAGS',
    'TagKind',
]
