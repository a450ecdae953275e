"""
Postcard wire primitives.

Postcard encodes integers wider than one byte as LEB128 varints (seven
payload bits per byte, high bit set on every byte but the last), signed
integers zigzag-mapped first, and floats as fixed little-endian words.
Lengths of strings, byte arrays, sequences and maps are varints too.
"""

import struct

from .errors import DecodeMismatch


def varint_max_bytes(bits: int) -> int:
    """Longest varint encoding of an unsigned integer of the given width."""
    return (bits + 6) // 7


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"varint must be unsigned, got {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def zigzag_encode(value: int) -> int:
    return (value << 1) if value >= 0 else ((-value) << 1) - 1


def zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def encode_zigzag(value: int) -> bytes:
    return encode_varint(zigzag_encode(value))


class WireReader:
    """Forward-only cursor over an encoded record."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, length: int) -> bytes:
        if length < 0 or self.offset + length > len(self.data):
            raise DecodeMismatch(
                "unexpected end of record",
                offset=self.offset, wanted=length, size=len(self.data),
            )
        chunk = self.data[self.offset:self.offset + length]
        self.offset += length
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def i8(self) -> int:
        return struct.unpack('<b', self.take(1))[0]

    def varint(self, bits: int = 64) -> int:
        start = self.offset
        value = 0
        for index in range(varint_max_bytes(bits)):
            byte = self.u8()
            value |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                if value >> bits:
                    raise DecodeMismatch(
                        f"varint does not fit in {bits} bits", offset=start,
                    )
                return value
        raise DecodeMismatch(f"varint longer than {bits} bits allows", offset=start)

    def zigzag(self, bits: int = 64) -> int:
        return zigzag_decode(self.varint(bits))

    def length(self) -> int:
        """Length prefix of a string, byte array, sequence or map."""
        return self.varint(64)

    def f32(self) -> float:
        return struct.unpack('<f', self.take(4))[0]

    def f64(self) -> float:
        return struct.unpack('<d', self.take(8))[0]

    def utf8(self) -> str:
        start = self.offset
        raw = self.take(self.length())
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise DecodeMismatch(f"invalid UTF-8: {e.reason}", offset=start) from e

    def expect_end(self) -> None:
        if self.remaining:
            raise DecodeMismatch(
                "trailing bytes after value",
                offset=self.offset, trailing=self.remaining,
            )
