"""
Error codes for destore-tools.

Structured error codes for machine-parseable reports.

Format: E{category}{number}
- E1xxx: Binary layout errors
- E2xxx: Schema resolution errors
- E3xxx: Log stream errors
- E4xxx: Environment errors (cache, device, configuration)

Every error is a DestoreError subclass carrying its code and a context
dict. Decoding is deterministic, so none of them are retried.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Structured error codes."""

    # E1xxx: Binary layout errors
    E1001_SYMBOL_NOT_FOUND = "E1001"
    E1002_SECTION_OUT_OF_BOUNDS = "E1002"
    E1003_TRUNCATED_READ = "E1003"
    E1004_UNKNOWN_TAG = "E1004"
    E1005_INVALID_UTF8 = "E1005"
    E1006_CYCLIC_SCHEMA = "E1006"
    E1007_INVALID_BINARY = "E1007"

    # E2xxx: Schema resolution errors
    E2001_SCHEMA_NOT_FOUND = "E2001"
    E2002_SCHEMA_MISMATCH = "E2002"

    # E3xxx: Log stream errors
    E3001_EMPTY_ENTRY = "E3001"
    E3002_NO_ACTIVE_SCHEMA = "E3002"
    E3003_DECODE_MISMATCH = "E3003"
    E3004_CORRUPT_ENTRY = "E3004"

    # E4xxx: Environment errors
    E4001_CACHE_FAILED = "E4001"
    E4002_DEVICE_READ_FAILED = "E4002"
    E4003_INVALID_CONFIG = "E4003"


# Error code metadata
ERROR_METADATA = {
    ErrorCode.E1001_SYMBOL_NOT_FOUND: {
        'severity': 'error',
        'message': 'Symbol not found in binary',
        'recoverable': False,
    },
    ErrorCode.E1002_SECTION_OUT_OF_BOUNDS: {
        'severity': 'error',
        'message': 'Address or section index outside the binary sections',
        'recoverable': False,
    },
    ErrorCode.E1003_TRUNCATED_READ: {
        'severity': 'error',
        'message': 'Read past the end of the buffer',
        'recoverable': False,
    },
    ErrorCode.E1004_UNKNOWN_TAG: {
        'severity': 'error',
        'message': 'Unknown schema descriptor tag',
        'recoverable': False,
    },
    ErrorCode.E1005_INVALID_UTF8: {
        'severity': 'error',
        'message': 'String is not valid UTF-8',
        'recoverable': False,
    },
    ErrorCode.E1006_CYCLIC_SCHEMA: {
        'severity': 'error',
        'message': 'Schema descriptor refers back to itself',
        'recoverable': False,
    },
    ErrorCode.E1007_INVALID_BINARY: {
        'severity': 'error',
        'message': 'Binary could not be parsed',
        'recoverable': False,
    },
    ErrorCode.E2001_SCHEMA_NOT_FOUND: {
        'severity': 'error',
        'message': 'Schema fingerprint not found in cache',
        'recoverable': False,
    },
    ErrorCode.E2002_SCHEMA_MISMATCH: {
        'severity': 'error',
        'message': 'Announced schema does not match the supplied schema',
        'recoverable': False,
    },
    ErrorCode.E3001_EMPTY_ENTRY: {
        'severity': 'error',
        'message': 'Empty log entry',
        'recoverable': False,
    },
    ErrorCode.E3002_NO_ACTIVE_SCHEMA: {
        'severity': 'error',
        'message': 'Data record before any schema announcement',
        'recoverable': False,
    },
    ErrorCode.E3003_DECODE_MISMATCH: {
        'severity': 'error',
        'message': 'Record does not match its schema',
        'recoverable': False,
    },
    ErrorCode.E3004_CORRUPT_ENTRY: {
        'severity': 'error',
        'message': 'Corrupt queue entry',
        'recoverable': False,
    },
    ErrorCode.E4001_CACHE_FAILED: {
        'severity': 'error',
        'message': 'Schema cache failure',
        'recoverable': False,
    },
    ErrorCode.E4002_DEVICE_READ_FAILED: {
        'severity': 'error',
        'message': 'Failed to read flash from device',
        'recoverable': False,
    },
    ErrorCode.E4003_INVALID_CONFIG: {
        'severity': 'error',
        'message': 'Invalid configuration',
        'recoverable': False,
    },
}


class DestoreError(Exception):
    """
    Structured error with context.

    Example:
        raise TruncatedRead(offset=0x1F0, length=4, size=0x1F2)
    """

    code: ErrorCode = ErrorCode.E3003_DECODE_MISMATCH

    def __init__(self, detail: Optional[str] = None, **context):
        self.detail = detail
        self.context = context or None
        super().__init__(self.message)

    @property
    def severity(self) -> str:
        return ERROR_METADATA.get(self.code, {}).get('severity', 'error')

    @property
    def message(self) -> str:
        base_msg = ERROR_METADATA.get(self.code, {}).get('message', 'Unknown error')
        if self.detail:
            base_msg = f"{base_msg}: {self.detail}"
        if self.context:
            return f"{base_msg} {self.context}"
        return base_msg

    @property
    def recoverable(self) -> bool:
        return ERROR_METADATA.get(self.code, {}).get('recoverable', False)

    def to_dict(self) -> dict:
        return {
            'code': self.code.value,
            'severity': self.severity,
            'message': self.message,
            'recoverable': self.recoverable,
            'context': self.context,
        }


class SymbolNotFound(DestoreError):
    code = ErrorCode.E1001_SYMBOL_NOT_FOUND


class SectionOutOfBounds(DestoreError):
    code = ErrorCode.E1002_SECTION_OUT_OF_BOUNDS


class TruncatedRead(DestoreError):
    code = ErrorCode.E1003_TRUNCATED_READ


class UnknownTag(DestoreError):
    code = ErrorCode.E1004_UNKNOWN_TAG

    def __init__(self, tag: int, detail: Optional[str] = None, **context):
        self.tag = tag
        super().__init__(detail or str(tag), **context)


class InvalidUtf8(DestoreError):
    code = ErrorCode.E1005_INVALID_UTF8


class CyclicSchema(DestoreError):
    code = ErrorCode.E1006_CYCLIC_SCHEMA


class InvalidBinary(DestoreError):
    code = ErrorCode.E1007_INVALID_BINARY


class SchemaNotFound(DestoreError):
    code = ErrorCode.E2001_SCHEMA_NOT_FOUND


class SchemaMismatch(DestoreError):
    code = ErrorCode.E2002_SCHEMA_MISMATCH


class EmptyEntry(DestoreError):
    code = ErrorCode.E3001_EMPTY_ENTRY


class NoActiveSchema(DestoreError):
    code = ErrorCode.E3002_NO_ACTIVE_SCHEMA


class DecodeMismatch(DestoreError):
    code = ErrorCode.E3003_DECODE_MISMATCH


class CorruptEntry(DestoreError):
    code = ErrorCode.E3004_CORRUPT_ENTRY


class CacheError(DestoreError):
    code = ErrorCode.E4001_CACHE_FAILED


class DeviceReadError(DestoreError):
    code = ErrorCode.E4002_DEVICE_READ_FAILED


class ConfigError(DestoreError):
    code = ErrorCode.E4003_INVALID_CONFIG


class ReadOnlyFlashError(RuntimeError):
    """Write or erase attempted on a read-only flash image."""
