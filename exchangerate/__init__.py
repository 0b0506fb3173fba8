"""Exchange Rate API client with a pluggable, TTL-aware response cache."""

from .services.cache import InMemoryCache, SqliteCache
from .services.client import AuthMethod, CacheSettings, ExchangeRateClient

__version__ = "0.1.0"

__all__ = [
    "AuthMethod",
    "CacheSettings",
    "ExchangeRateClient",
    "InMemoryCache",
    "SqliteCache",
]
