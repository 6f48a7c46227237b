"""Typed cache service and key builders."""

from . import keys
from .service import CACHE_TTL, CacheEntry, CacheStats, CacheType, TypedCache

__all__ = [
    "CACHE_TTL",
    "CacheEntry",
    "CacheStats",
    "CacheType",
    "TypedCache",
    "keys",
]
