"""Pluggable response cache for the exchange rate client."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Type

from .base import (
    CODES_TTL,
    DEFAULT_TTL,
    CacheBackend,
    CacheBackendError,
    CacheEntry,
    CacheError,
    CacheExpired,
    CacheMiss,
    CacheNotFound,
    CacheSerializationError,
    Clock,
    create_cache_key,
    utc_now,
)
from .memory import InMemoryCache
from .sqlite import SqliteCache

_BACKEND_REGISTRY: Dict[str, Type[CacheBackend]] = {
    "memory": InMemoryCache,
    "sqlite": SqliteCache,
}


def make_cache_backend(kind: str, db_path: Optional[Path] = None) -> CacheBackend:
    """Construct a fresh backend by name; callers own the instance."""
    cls = _BACKEND_REGISTRY.get(kind)
    if cls is None:
        raise ValueError(f"Unknown cache backend kind '{kind}'")
    if cls is SqliteCache:
        if db_path is None:
            raise ValueError("sqlite cache backend requires db_path")
        return SqliteCache(db_path)
    return cls()


__all__ = [
    "CODES_TTL",
    "DEFAULT_TTL",
    "CacheBackend",
    "CacheBackendError",
    "CacheEntry",
    "CacheError",
    "CacheExpired",
    "CacheMiss",
    "CacheNotFound",
    "CacheSerializationError",
    "Clock",
    "InMemoryCache",
    "SqliteCache",
    "create_cache_key",
    "make_cache_backend",
    "utc_now",
]
