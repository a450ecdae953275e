"""Configuration management for destore-tools."""

from .schema import (
    DestoreConfig,
    CacheConfig,
    FlashConfig,
    SchemaConfig,
    DeviceConfig,
    LoggingConfig,
    load_config,
    generate_default_config,
)

__all__ = [
    'DestoreConfig',
    'CacheConfig',
    'FlashConfig',
    'SchemaConfig',
    'DeviceConfig',
    'LoggingConfig',
    'load_config',
    'generate_default_config',
]
