from __future__ import annotations

"""Exchange rate API client with a best-effort response cache.

Every fetching operation follows the same sequence:
    1. build the cache key from endpoint + params
    2. try the cache; a hit returns without touching the network, a miss or
       expiry falls through, any other cache failure is logged and falls through
    3. call the upstream API
    4. write the result back with the endpoint's TTL policy (failures logged)
    5. return the fresh payload

Cache failures never fail a request; only upstream failures reach callers.
Two concurrent misses for the same key may both fetch (last write wins).
"""
import json
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from exchangerate.core.config import Settings
from exchangerate.core.logging import get_logger
from exchangerate.models.rates import (
    ExchangeRateResponse,
    PairConversionResponse,
    SupportedCodesResponse,
)

from .cache import (
    CODES_TTL,
    DEFAULT_TTL,
    CacheBackend,
    CacheEntry,
    CacheError,
    CacheMiss,
    Clock,
    InMemoryCache,
    create_cache_key,
    make_cache_backend,
    utc_now,
)
from .errors import (
    MissingApiKeyError,
    ResponseParseError,
    UnsupportedCodeError,
    error_for_upstream,
)
from .http_client import Transport, UrllibTransport

logger = get_logger("client")

DEFAULT_BASE_URL = "https://v6.exchangerate-api.com/v6"
DEFAULT_TIMEOUT_SECONDS = 30.0

M = TypeVar("M", bound=BaseModel)


class AuthMethod(str, Enum):
    """Where the API key travels.

    BEARER sends it in the Authorization header; IN_URL embeds it as the
    first path segment.
    """

    BEARER = "bearer"
    IN_URL = "url"

    @classmethod
    def parse(cls, value: "str | AuthMethod") -> "AuthMethod":
        if isinstance(value, AuthMethod):
            return value
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(
                f"Invalid auth method '{value}'. Valid values are 'bearer' or 'url'."
            ) from None


@dataclass
class CacheSettings:
    enabled: bool = True
    default_ttl: timedelta = DEFAULT_TTL


class ExchangeRateClient:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = DEFAULT_BASE_URL,
        auth_method: "AuthMethod | str" = AuthMethod.BEARER,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cache: Optional[CacheBackend] = None,
        cache_settings: Optional[CacheSettings] = None,
        transport: Optional[Transport] = None,
        clock: Clock = utc_now,
    ):
        if not api_key:
            raise MissingApiKeyError()
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.auth_method = AuthMethod.parse(auth_method)
        self.timeout = timeout
        self.cache_settings = cache_settings or CacheSettings()
        self._transport: Transport = (
            transport if transport is not None else UrllibTransport()
        )
        self._clock = clock
        if self.cache_settings.enabled:
            # Each client gets its own backend unless one is shared explicitly
            self.cache: Optional[CacheBackend] = (
                cache if cache is not None else InMemoryCache(clock=clock)
            )
        else:
            self.cache = None

    @property
    def caching(self) -> bool:
        return self.cache_settings.enabled and self.cache is not None

    # URL / transport ----------------------------------------------
    def build_url(self, endpoint: str, params: Sequence[str] = ()) -> str:
        path = "/".join(params)
        if self.auth_method is AuthMethod.IN_URL:
            return f"{self.base_url}/{self._api_key}/{endpoint}/{path}"
        return f"{self.base_url}/{endpoint}/{path}"

    def _headers(self) -> Dict[str, str]:
        if self.auth_method is AuthMethod.BEARER:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def _fetch(self, endpoint: str, params: Sequence[str], model: Type[M]) -> M:
        url = self.build_url(endpoint, params)
        logger.debug("fetching %s %s from upstream", endpoint, "/".join(params))
        resp = self._transport.get(url, headers=self._headers(), timeout=self.timeout)
        error_type = _error_type(resp.body)
        # Some API errors arrive with HTTP 200 and result=error
        if not resp.ok or error_type:
            raise error_for_upstream(error_type, resp.status)
        try:
            return model.model_validate_json(resp.body)
        except ValidationError as e:
            raise ResponseParseError(f"Unexpected {endpoint} response: {e}") from e

    # Cache helpers --------------------------------------------------
    def _cache_read_typed(self, key: str) -> Optional[ExchangeRateResponse]:
        if not self.caching:
            return None
        try:
            entry = self.cache.get_typed(key)  # type: ignore[union-attr]
        except CacheMiss as e:
            logger.debug("cache miss: %s", e, extra={"cache_key": key})
            return None
        except CacheError as e:
            logger.warning("cache read failed: %s", e, extra={"cache_key": key})
            return None
        logger.debug("cache hit", extra={"cache_key": key})
        return entry.value

    def _cache_read_raw(self, key: str, model: Type[M]) -> Optional[M]:
        if not self.caching:
            return None
        try:
            entry = self.cache.get_raw(key)  # type: ignore[union-attr]
        except CacheMiss as e:
            logger.debug("cache miss: %s", e, extra={"cache_key": key})
            return None
        except CacheError as e:
            logger.warning("cache read failed: %s", e, extra={"cache_key": key})
            return None
        try:
            value = model.model_validate_json(entry.value)
        except ValidationError as e:
            logger.warning(
                "failed to parse cached response: %s", e, extra={"cache_key": key}
            )
            return None
        logger.debug("cache hit", extra={"cache_key": key})
        return value

    def _cache_write_typed(self, key: str, rates: ExchangeRateResponse) -> None:
        if not self.caching:
            return
        entry = CacheEntry.with_source_expiration(
            rates, rates.time_next_update_unix, now=self._clock()
        )
        try:
            self.cache.set_typed(key, entry)  # type: ignore[union-attr]
        except CacheError as e:
            logger.warning("failed to cache response: %s", e, extra={"cache_key": key})

    def _cache_write_raw(self, key: str, value: BaseModel, ttl: timedelta) -> None:
        if not self.caching:
            return
        entry = CacheEntry.new(value.model_dump_json(), ttl=ttl, now=self._clock())
        try:
            self.cache.set_raw(  # type: ignore[union-attr]
                key, entry.value, entry.cached_at, entry.expires_at
            )
        except CacheError as e:
            logger.warning("failed to cache response: %s", e, extra={"cache_key": key})

    # Public API -----------------------------------------------------
    def get_latest_rates(self, base_code: str) -> ExchangeRateResponse:
        """Latest rates for `base_code`; cached until the API's next update."""
        key = create_cache_key("latest", [base_code])
        cached = self._cache_read_typed(key)
        if cached is not None:
            return cached
        rates = self._fetch("latest", [base_code], ExchangeRateResponse)
        self._cache_write_typed(key, rates)
        return rates

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        rates = self.get_latest_rates(from_currency)
        rate = rates.get_rate(to_currency)
        if rate is None:
            raise UnsupportedCodeError(f"Unsupported currency code: {to_currency}")
        return amount * rate

    def get_pair_rate(self, from_currency: str, to_currency: str) -> float:
        key = create_cache_key("pair", [from_currency, to_currency])
        cached = self._cache_read_raw(key, PairConversionResponse)
        if cached is not None:
            return cached.conversion_rate
        pair = self._fetch("pair", [from_currency, to_currency], PairConversionResponse)
        self._cache_write_raw(key, pair, self.cache_settings.default_ttl)
        return pair.conversion_rate

    def get_supported_codes(self) -> List[Tuple[str, str]]:
        key = create_cache_key("codes", [])
        cached = self._cache_read_raw(key, SupportedCodesResponse)
        if cached is not None:
            return cached.as_pairs()
        codes = self._fetch("codes", [], SupportedCodesResponse)
        self._cache_write_raw(key, codes, CODES_TTL)
        return codes.as_pairs()

    # Explicit cache management; errors propagate to the caller
    def invalidate(self, endpoint: str, *params: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(create_cache_key(endpoint, params))

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear_all()

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()


def build_client(
    settings: "Settings",
    *,
    api_key: Optional[str] = None,
    auth_method: Optional[str] = None,
    use_cache: Optional[bool] = None,
    cache_backend: Optional[str] = None,
    transport: Optional[Transport] = None,
) -> ExchangeRateClient:
    """Factory wiring a client from settings; keyword overrides win.

    The cache backend is constructed here and owned by the returned client.
    A durable backend that cannot be opened degrades to an in-memory one.
    """
    key = api_key or settings.api_key
    if not key:
        raise MissingApiKeyError()
    enabled = settings.cache_enabled if use_cache is None else use_cache
    cache: Optional[CacheBackend] = None
    if enabled:
        kind = cache_backend or settings.cache_backend
        try:
            cache = make_cache_backend(kind, settings.cache_db_path)
        except CacheError as e:
            logger.warning(
                "cache backend unavailable, using in-memory cache: %s",
                e,
                extra={"backend": kind},
            )
            cache = InMemoryCache()
    return ExchangeRateClient(
        key,
        base_url=settings.base_url_str,
        auth_method=auth_method or settings.auth_method,
        timeout=settings.http_timeout_seconds,
        cache=cache,
        cache_settings=CacheSettings(
            enabled=enabled,
            default_ttl=timedelta(seconds=settings.cache_default_ttl_seconds),
        ),
        transport=transport,
    )


def _error_type(body: bytes) -> Optional[str]:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if isinstance(data, dict):
        value = data.get("error-type")
        return value if isinstance(value, str) else None
    return None
