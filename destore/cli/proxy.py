"""
Build interception for `destore proxy`.

The proxy sits in front of a flashing command. When the command's last
argument is an existing file, that file is taken to be the firmware image
and its schema is harvested into the cache on a background thread while the
command runs. The command's output and exit status are passed through.

The harvest thread is a daemon and is not joined: if the proxied command
finishes first, the process may exit before the schema is stored.
"""

import os
import sys
import logging
import subprocess
import threading
from pathlib import Path
from typing import List, Optional

from ..cache.store import SchemaCache
from ..elf.layout import BinaryLayoutDecoder, DEFAULT_SYMBOL
from ..schema.fingerprint import fingerprint_hex

logger = logging.getLogger(__name__)


def harvest_schema(binary: Path, cache_dir: Path, symbol: str = DEFAULT_SYMBOL) -> bytes:
    """Extract the schema from `binary` and store it. Returns its fingerprint."""
    schema = BinaryLayoutDecoder.from_path(binary).load_schema(symbol)
    logger.debug(f"Schema found: {schema}")
    return SchemaCache(cache_dir).store(schema)


def _harvest_quietly(binary: Path, cache_dir: Path, symbol: str) -> None:
    try:
        schema_hash = harvest_schema(binary, cache_dir, symbol)
        logger.info(f"Harvested schema {fingerprint_hex(schema_hash)} from {binary}")
    except Exception:
        logger.exception(f"Failed to harvest schema from {binary}")


def start_harvest(
    args: List[str],
    cache_dir: Path,
    symbol: str = DEFAULT_SYMBOL,
) -> Optional[threading.Thread]:
    """Start harvesting if the last argument names an existing file."""
    if not args or not os.path.isfile(args[-1]):
        return None

    thread = threading.Thread(
        target=_harvest_quietly,
        args=(Path(args[-1]), Path(cache_dir), symbol),
        name='destore-harvest',
        daemon=True,
    )
    thread.start()
    return thread


def exit_status(returncode: int) -> int:
    """Map a subprocess return code to a shell exit status."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def run_proxy(args: List[str], cache_dir: Path, symbol: str = DEFAULT_SYMBOL) -> int:
    """
    Run `args` with schema harvesting.

    Returns:
        Exit status for the proxy process.
    """
    start_harvest(args, cache_dir, symbol)

    logger.debug(f"Running: {' '.join(args)}")
    result = subprocess.run(args, capture_output=True)

    sys.stdout.buffer.write(result.stdout)
    sys.stdout.flush()
    sys.stderr.buffer.write(result.stderr)
    sys.stderr.flush()

    return exit_status(result.returncode)
