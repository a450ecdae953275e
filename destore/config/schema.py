"""
Configuration schema for destore-tools.

Supports:
- YAML file loading
- Environment variable substitution (${VAR_NAME})
- Validation with error messages

Example config (destore.yml):
    cache:
      directory: ${DESTORE_CACHE}

    flash:
      page_size: 4096

    device:
      port: /dev/ttyUSB0
      chip: esp32c6
"""

import os
import re
import logging
from pathlib import Path
from dataclasses import dataclass, asdict, field
from typing import Optional, List, Any

import yaml

from ..core.errors import ConfigError
from ..elf.layout import DEFAULT_SYMBOL
from ..formats.flash import DEFAULT_PAGE_SIZE
from ..formats.queue import ALIGNMENT, DEFAULT_MAX_ENTRY_SIZE, MAX_LENGTH

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _substitute_env_vars(value: Any) -> Any:
    """
    Substitute ${VAR_NAME} with environment variable values.

    Example:
        ${DESTORE_CACHE} → os.environ.get('DESTORE_CACHE')
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}]+)\}'

        def replace(match):
            env_value = os.environ.get(match.group(1))
            if env_value is None:
                return match.group(0)  # Keep original if not found
            return env_value

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]

    return value


@dataclass
class CacheConfig:
    """Schema cache location."""
    directory: str = '.destore'

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser()


@dataclass
class FlashConfig:
    """Flash geometry of the log partition."""
    page_size: int = DEFAULT_PAGE_SIZE
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE


@dataclass
class SchemaConfig:
    """Where the schema descriptor lives in firmware binaries."""
    symbol: str = DEFAULT_SYMBOL


@dataclass
class DeviceConfig:
    """Device connection used by `destore dump`."""
    port: Optional[str] = None
    baud: int = 921600
    chip: str = 'esp32c6'
    esptool: str = 'esptool.py'


@dataclass
class LoggingConfig:
    """Log output settings."""
    level: str = 'INFO'

    @property
    def level_number(self) -> int:
        return getattr(logging, self.level.upper(), logging.INFO)


@dataclass
class DestoreConfig:
    """Root configuration."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    flash: FlashConfig = field(default_factory=FlashConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path) -> 'DestoreConfig':
        """Load from YAML file with env var substitution."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"{path}: {e}", path=str(path)) from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping", path=str(path))

        data = _substitute_env_vars(data)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'DestoreConfig':
        """Create from dictionary."""
        try:
            return cls(
                cache=CacheConfig(**(data.get('cache') or {})),
                flash=FlashConfig(**(data.get('flash') or {})),
                schema=SchemaConfig(**(data.get('schema') or {})),
                device=DeviceConfig(**(data.get('device') or {})),
                logging=LoggingConfig(**(data.get('logging') or {})),
            )
        except TypeError as e:
            raise ConfigError(str(e)) from e

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate config. Returns list of errors (empty if valid)."""
        errors = []

        page_size = self.flash.page_size
        if not isinstance(page_size, int) or page_size <= 0 or page_size % ALIGNMENT:
            errors.append(f"Invalid page_size: {page_size} (positive multiple of {ALIGNMENT})")

        max_entry = self.flash.max_entry_size
        if not isinstance(max_entry, int) or not 0 < max_entry <= MAX_LENGTH:
            errors.append(f"Invalid max_entry_size: {max_entry}")

        if not self.schema.symbol:
            errors.append("Schema symbol must not be empty")

        if not self.cache.directory:
            errors.append("Cache directory must not be empty")

        if not isinstance(self.device.baud, int) or self.device.baud <= 0:
            errors.append(f"Invalid baud rate: {self.device.baud}")

        if str(self.logging.level).upper() not in LOG_LEVELS:
            errors.append(f"Unknown log level: {self.logging.level}")

        return errors


def load_config(path: Optional[Path] = None) -> DestoreConfig:
    """Load config from file or return defaults."""
    if path is not None:
        return DestoreConfig.load(path)

    search_paths = [
        Path('./destore.yml'),
        Path('./destore.yaml'),
        Path.home() / '.destore' / 'config.yml',
    ]

    for p in search_paths:
        if p.exists():
            return DestoreConfig.load(p)

    return DestoreConfig()


def generate_default_config() -> str:
    """Generate default config as YAML."""
    return f"""# destore-tools configuration

cache:
  # Schemas harvested by `destore proxy`, one <fingerprint>.pcs file each
  directory: .destore

flash:
  page_size: {DEFAULT_PAGE_SIZE}
  max_entry_size: {DEFAULT_MAX_ENTRY_SIZE}

schema:
  symbol: {DEFAULT_SYMBOL}

device:
  # Serial port, e.g. /dev/ttyUSB0 or ${{ESPPORT}}
  port: null
  baud: 921600
  chip: esp32c6
  esptool: esptool.py

logging:
  level: INFO
"""
