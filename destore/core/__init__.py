"""Core error types for destore-tools."""

from .errors import (
    ErrorCode,
    ERROR_METADATA,
    DestoreError,
    SymbolNotFound,
    SectionOutOfBounds,
    TruncatedRead,
    UnknownTag,
    InvalidUtf8,
    CyclicSchema,
    InvalidBinary,
    SchemaNotFound,
    SchemaMismatch,
    EmptyEntry,
    NoActiveSchema,
    DecodeMismatch,
    CorruptEntry,
    CacheError,
    DeviceReadError,
    ConfigError,
    ReadOnlyFlashError,
)

__all__ = [
    'ErrorCode',
    'ERROR_METADATA',
    'DestoreError',
    'SymbolNotFound',
    'SectionOutOfBounds',
    'TruncatedRead',
    'UnknownTag',
    'InvalidUtf8',
    'CyclicSchema',
    'InvalidBinary',
    'SchemaNotFound',
    'SchemaMismatch',
    'EmptyEntry',
    'NoActiveSchema',
    'DecodeMismatch',
    'CorruptEntry',
    'CacheError',
    'DeviceReadError',
    'ConfigError',
    'ReadOnlyFlashError',
]
