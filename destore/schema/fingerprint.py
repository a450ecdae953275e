"""
Schema fingerprints.

A fingerprint is the postcard-schema `hash_ty_path` value the firmware writes
in its schema announcements: FNV-1a (64 bit) over the type path, then over the
structure of the schema tree. Every node contributes one byte (its
declaration-order index), structs, enums, variants and fields contribute their
name bytes, and every data shape contributes one byte. Lengths and counts are
not hashed. The final state is emitted little-endian.

    fingerprint(U8)              = 45bb01864cbf63af   (one byte: 2)
    fingerprint((u8, u16, u32))  = 51c9de5bdbda2c3e   (21, 2, 7, 8)

Fingerprints identify schemas compactly; collisions are not detected.
"""

from typing import Union

from .serialization import node_index, shape_index
from .types import (
    SchemaNode,
    DataShape,
    OptionOf,
    SeqOf,
    TupleOf,
    MapOf,
    StructType,
    EnumType,
    NewtypeShape,
    TupleShape,
    StructShape,
)


FNV1A64_BASIS = 0xCBF29CE484222325
FNV1A64_PRIME = 0x00000100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

FINGERPRINT_SIZE = 8


def fnv1a64(data: bytes, state: int = FNV1A64_BASIS) -> int:
    """FNV-1a 64 over `data`, continuing from `state`."""
    for byte in data:
        state ^= byte
        state = (state * FNV1A64_PRIME) & _MASK64
    return state


def _update_str(state: int, text: str) -> int:
    return fnv1a64(text.encode('utf-8'), state)


def _hash_node(state: int, node: SchemaNode) -> int:
    state = fnv1a64(bytes([node_index(node)]), state)

    if isinstance(node, (OptionOf, SeqOf)):
        state = _hash_node(state, node.inner)
    elif isinstance(node, TupleOf):
        for element in node.elements:
            state = _hash_node(state, element)
    elif isinstance(node, MapOf):
        state = _hash_node(state, node.key)
        state = _hash_node(state, node.val)
    elif isinstance(node, StructType):
        state = _update_str(state, node.name)
        state = _hash_shape(state, node.body)
    elif isinstance(node, EnumType):
        state = _update_str(state, node.name)
        for variant in node.variants:
            state = _update_str(state, variant.name)
            state = _hash_shape(state, variant.body)
    return state


def _hash_shape(state: int, shape: DataShape) -> int:
    state = fnv1a64(bytes([shape_index(shape)]), state)

    if isinstance(shape, NewtypeShape):
        state = _hash_node(state, shape.inner)
    elif isinstance(shape, TupleShape):
        for element in shape.elements:
            state = _hash_node(state, element)
    elif isinstance(shape, StructShape):
        for field in shape.fields:
            state = _update_str(state, field.name)
            state = _hash_node(state, field.ty)
    return state


def fingerprint(schema: SchemaNode, path: str = "") -> bytes:
    """Compute the 8-byte fingerprint of a schema under a type path."""
    state = _update_str(FNV1A64_BASIS, path)
    state = _hash_node(state, schema)
    return state.to_bytes(FINGERPRINT_SIZE, 'little')


def fingerprint_hex(value: bytes) -> str:
    """Lowercase hex spelling, as used for cache file names."""
    return bytes(value).hex()


def parse_fingerprint(value: Union[str, bytes]) -> bytes:
    """Accept raw bytes or a hex string (optionally 0x-prefixed)."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value.strip().lower()
        if text.startswith('0x'):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"Invalid fingerprint {value!r}: {e}") from e
    if len(raw) != FINGERPRINT_SIZE:
        raise ValueError(
            f"Fingerprint must be {FINGERPRINT_SIZE} bytes, got {len(raw)}"
        )
    return raw
