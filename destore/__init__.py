"""
destore-tools - Host-side decoding of destore flash logs.

This package provides:
- elf: Schema reconstruction from firmware binaries
- schema: Schema trees, postcard serialization and fingerprints
- cache: Content-addressed schema cache
- formats: Flash images, queue entries and entry classification
- decoding: Schema-driven record decoding sessions
- device: Flash reads over esptool
- config: YAML configuration with environment variable support
- cli: Command-line interface
"""

__version__ = "0.1.0"

from .core import DestoreError, ErrorCode
from .schema import SchemaNode, fingerprint, fingerprint_hex
from .elf import AddressResolver, BinaryLayoutDecoder, DEFAULT_SYMBOL
from .cache import SchemaCache
from .formats import FlashBuffer, iter_queue, classify
from .decoding import RecordDecoder, DecodeSession, DecodedRecord, decode_partition
from .config import DestoreConfig, load_config

__all__ = [
    # Version
    '__version__',
    # Errors
    'DestoreError',
    'ErrorCode',
    # Schema
    'SchemaNode',
    'fingerprint',
    'fingerprint_hex',
    # Binary
    'AddressResolver',
    'BinaryLayoutDecoder',
    'DEFAULT_SYMBOL',
    # Cache
    'SchemaCache',
    # Formats
    'FlashBuffer',
    'iter_queue',
    'classify',
    # Decoding
    'RecordDecoder',
    'DecodeSession',
    'DecodedRecord',
    'decode_partition',
    # Config
    'DestoreConfig',
    'load_config',
]
