"""Content-addressed schema cache."""

from .store import SchemaCache, EXTENSION

__all__ = [
    'SchemaCache',
    'EXTENSION',
]
