"""Schema-driven record decoding."""

from .decoder import RecordDecoder, TypedValue, to_jsonable
from .session import DecodeSession, DecodedRecord, decode_partition

__all__ = [
    'RecordDecoder',
    'TypedValue',
    'to_jsonable',
    'DecodeSession',
    'DecodedRecord',
    'decode_partition',
]
