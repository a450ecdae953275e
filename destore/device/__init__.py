"""Device access."""

from .esptool import EsptoolReader

__all__ = ['EsptoolReader']
