"""Errors raised by the exchange rate client.

Cache errors live in `exchangerate.services.cache.base` and never escape the
client; everything here describes an upstream or configuration failure.
"""

from __future__ import annotations

from typing import Dict, Optional, Type


class ExchangeRateError(Exception):
    """Base class for client failures surfaced to callers."""

    error_type: str = "unexpected"


class MissingApiKeyError(ExchangeRateError):
    error_type = "missing-api-key"

    def __init__(self, message: str = "Missing API key") -> None:
        super().__init__(message)


class UnsupportedCodeError(ExchangeRateError):
    error_type = "unsupported-code"


class MalformedRequestError(ExchangeRateError):
    error_type = "malformed-request"


class InvalidKeyError(ExchangeRateError):
    error_type = "invalid-key"


class InactiveAccountError(ExchangeRateError):
    error_type = "inactive-account"


class QuotaReachedError(ExchangeRateError):
    error_type = "quota-reached"


class TransportError(ExchangeRateError):
    """Network level failure (DNS, refused connection, timeout)."""

    error_type = "transport"


class HttpStatusError(ExchangeRateError):
    error_type = "http-status"

    def __init__(self, status: int, message: Optional[str] = None) -> None:
        self.status = status
        super().__init__(message or f"HTTP error: {status}")


class ResponseParseError(ExchangeRateError):
    error_type = "parse"


_UPSTREAM_ERRORS: Dict[str, Type[ExchangeRateError]] = {
    cls.error_type: cls
    for cls in (
        UnsupportedCodeError,
        MalformedRequestError,
        InvalidKeyError,
        InactiveAccountError,
        QuotaReachedError,
    )
}


def error_for_upstream(error_type: Optional[str], status: int) -> ExchangeRateError:
    """Map the API's `error-type` field to an exception instance."""
    cls = _UPSTREAM_ERRORS.get(error_type or "")
    if cls is None:
        return HttpStatusError(status)
    return cls(f"API error: {error_type}")
