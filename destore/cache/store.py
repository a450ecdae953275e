"""
Content-addressed schema cache.

One file per schema, named by the lowercase hex fingerprint:

    <directory>/<fingerprint hex>.pcs

File contents are the postcard-serialized schema tree. Entries are
write-once: the first writer wins and existing files are never replaced.
Two writers racing on the same fingerprint write identical bytes, so the
only discipline needed is an atomic create-if-absent, done by linking a
fully written temporary file into place.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from ..core.errors import CacheError, DecodeMismatch
from ..schema.fingerprint import FINGERPRINT_SIZE, fingerprint, fingerprint_hex
from ..schema.serialization import serialize_schema, deserialize_schema
from ..schema.types import SchemaNode

logger = logging.getLogger(__name__)

# Cache entry file extension (postcard schema)
EXTENSION = '.pcs'


class SchemaCache:
    """
    Directory of schema trees keyed by fingerprint.

    Usage:
        cache = SchemaCache(Path('.destore'))
        fp = cache.store(schema)
        schema = cache.lookup(fp)      # None when unknown
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"failed to create cache dir {self.directory}: {e}") from e
        logger.info(f"Destore cache directory: {self.directory}")

    def path_for(self, schema_hash: bytes) -> Path:
        return self.directory / f"{fingerprint_hex(schema_hash)}{EXTENSION}"

    def contains(self, schema_hash: bytes) -> bool:
        return self.path_for(schema_hash).exists()

    def store(self, schema: SchemaNode) -> bytes:
        """
        Store a schema under its fingerprint.

        Returns:
            The fingerprint. Storing an already known schema is a no-op.
        """
        schema_hash = fingerprint(schema)
        path = self.path_for(schema_hash)

        if path.exists():
            logger.info(f"Schema {fingerprint_hex(schema_hash)} already stored")
            return schema_hash

        encoded = serialize_schema(schema)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix='.tmp')
            with os.fdopen(fd, 'wb') as f:
                f.write(encoded)
            try:
                os.link(tmp_name, path)
            except FileExistsError:
                logger.info(f"Schema {fingerprint_hex(schema_hash)} stored concurrently")
                return schema_hash
        except OSError as e:
            raise CacheError(f"failed to store schema at {path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass

        logger.info(f"Stored schema {fingerprint_hex(schema_hash)} to {path}")
        return schema_hash

    def lookup(self, schema_hash: bytes) -> Optional[SchemaNode]:
        """Load a schema by fingerprint; None when the cache does not know it."""
        path = self.path_for(schema_hash)
        if not path.exists():
            logger.info(
                f"Schema {fingerprint_hex(schema_hash)} not found in cache dir {self.directory}"
            )
            return None

        try:
            return deserialize_schema(path.read_bytes())
        except DecodeMismatch as e:
            raise CacheError(f"unreadable cache entry {path}: {e}") from e
        except OSError as e:
            raise CacheError(f"failed to read {path}: {e}") from e

    def fingerprints(self) -> List[bytes]:
        """All stored fingerprints, sorted."""
        found = []
        for path in self.directory.glob(f"*{EXTENSION}"):
            try:
                raw = bytes.fromhex(path.stem)
            except ValueError:
                continue
            if len(raw) == FINGERPRINT_SIZE:
                found.append(raw)
        return sorted(found)
