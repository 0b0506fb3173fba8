from __future__ import annotations

"""Response cache contract.

Every backend stores serialized payloads tagged with a response type, so the
typed (latest rates) and raw (pair / codes JSON) paths share one store and one
expiry table. Backends implement the storage primitives; expiry checks and
(de)serialization live here so no backend can hand out a stale payload.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Generic, Optional, Sequence, TypeVar

from pydantic import ValidationError

from exchangerate.models.rates import ExchangeRateResponse

T = TypeVar("T")

DEFAULT_TTL = timedelta(hours=24)
CODES_TTL = timedelta(weeks=1)  # currency lists change rarely

TYPED = "typed"
RAW = "raw"
RESPONSE_TYPES = (TYPED, RAW)

KEY_DELIMITER = ":"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with the clock."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def create_cache_key(endpoint: str, params: Sequence[str] = ()) -> str:
    """Build the canonical key, e.g. ``pair:USD:EUR`` or ``codes:``.

    Parameter order is significant.
    """
    return f"{endpoint}{KEY_DELIMITER}{KEY_DELIMITER.join(params)}"


# Errors ---------------------------------------------------------------------
class CacheError(Exception):
    """Base class for cache failures. Never fatal to a client request."""


class CacheMiss(CacheError):
    """Control-flow signal: no usable entry, fetch from upstream."""


class CacheNotFound(CacheMiss):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Item not found in cache: {key}")


class CacheExpired(CacheMiss):
    def __init__(self, key: str, expires_at: datetime) -> None:
        self.key = key
        self.expires_at = expires_at
        super().__init__(f"Cached item has expired: {key}")


class CacheBackendError(CacheError):
    """Lock, connection or storage failure."""


class CacheSerializationError(CacheError):
    """Payload or timestamp could not be encoded/decoded."""


# Entries --------------------------------------------------------------------
@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    cached_at: datetime
    expires_at: datetime

    @classmethod
    def new(
        cls,
        value: T,
        ttl: timedelta = DEFAULT_TTL,
        now: Optional[datetime] = None,
    ) -> "CacheEntry[T]":
        cached_at = now or utc_now()
        return cls(value=value, cached_at=cached_at, expires_at=cached_at + ttl)

    @classmethod
    def with_source_expiration(
        cls,
        value: T,
        next_update_unix: Optional[int],
        now: Optional[datetime] = None,
    ) -> "CacheEntry[T]":
        """Expire when the upstream says it will next refresh.

        Absent or non-positive timestamps fall back to the 24 hour default.
        """
        cached_at = now or utc_now()
        expires_at = cached_at + DEFAULT_TTL
        if next_update_unix is not None and next_update_unix > 0:
            try:
                expires_at = datetime.fromtimestamp(next_update_unix, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                pass  # unrepresentable timestamp, keep default
        return cls(value=value, cached_at=cached_at, expires_at=expires_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) > self.expires_at


@dataclass(frozen=True)
class StoredRow:
    """What a backend physically keeps per key."""

    payload: str
    cached_at: datetime
    expires_at: datetime
    response_type: str


# Contract -------------------------------------------------------------------
class CacheBackend(ABC):
    """Storage interface shared by all cache backends.

    Implementations must be safe for concurrent use from several threads and
    must only hold their locks for the duration of a single storage operation.
    """

    backend_id: str = "abstract"

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    # Storage primitives -------------------------------------------
    @abstractmethod
    def _load(self, key: str) -> Optional[StoredRow]:
        """Return the stored row or None; raise CacheBackendError on failure."""
        raise NotImplementedError

    @abstractmethod
    def _store(self, key: str, row: StoredRow) -> None:
        raise NotImplementedError

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Remove one entry; absent keys are ignored."""
        raise NotImplementedError

    @abstractmethod
    def clear_all(self) -> None:
        raise NotImplementedError

    # Shared read path ---------------------------------------------
    def _load_fresh(self, key: str) -> StoredRow:
        row = self._load(key)
        if row is None:
            raise CacheNotFound(key)
        if as_utc(self._clock()) > row.expires_at:
            raise CacheExpired(key, row.expires_at)
        return row

    # Typed path ---------------------------------------------------
    def get_typed(self, key: str) -> CacheEntry[ExchangeRateResponse]:
        row = self._load_fresh(key)
        if row.response_type != TYPED:
            raise CacheSerializationError(
                f"entry {key} holds a {row.response_type} payload, not a rate table"
            )
        try:
            value = ExchangeRateResponse.model_validate_json(row.payload)
        except ValidationError as e:
            raise CacheSerializationError(str(e)) from e
        return CacheEntry(value=value, cached_at=row.cached_at, expires_at=row.expires_at)

    def set_typed(self, key: str, entry: CacheEntry[ExchangeRateResponse]) -> None:
        try:
            payload = entry.value.model_dump_json()
        except (AttributeError, ValueError, TypeError) as e:
            raise CacheSerializationError(str(e)) from e
        self._store(
            key,
            StoredRow(
                payload=payload,
                cached_at=as_utc(entry.cached_at),
                expires_at=as_utc(entry.expires_at),
                response_type=TYPED,
            ),
        )

    # Raw path -----------------------------------------------------
    def get_raw(self, key: str) -> CacheEntry[str]:
        row = self._load_fresh(key)
        return CacheEntry(
            value=row.payload, cached_at=row.cached_at, expires_at=row.expires_at
        )

    def set_raw(
        self, key: str, json_str: str, cached_at: datetime, expires_at: datetime
    ) -> None:
        if not isinstance(json_str, str):
            raise CacheSerializationError("raw payload must be a JSON string")
        self._store(
            key,
            StoredRow(
                payload=json_str,
                cached_at=as_utc(cached_at),
                expires_at=as_utc(expires_at),
                response_type=RAW,
            ),
        )

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release backend resources; no-op unless overridden."""
