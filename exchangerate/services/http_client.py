from __future__ import annotations

"""Lightweight HTTP transport for the upstream API.

Uses stdlib urllib; the client only needs authenticated GET requests that
hand back a status code and body. Non-2xx responses are returned rather than
raised so the caller can read the API's `error-type` field.
"""
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from exchangerate.core.logging import get_logger

from .errors import TransportError

logger = get_logger("http")


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8")


class Transport(Protocol):
    def get(
        self, url: str, *, headers: Optional[Mapping[str, str]] = None, timeout: float
    ) -> HttpResponse: ...


class UrllibTransport:
    """Default transport backed by urllib.request."""

    def get(
        self, url: str, *, headers: Optional[Mapping[str, str]] = None, timeout: float
    ) -> HttpResponse:
        req = urllib.request.Request(url, headers=dict(headers or {}), method="GET")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
                return HttpResponse(status=resp.status, body=resp.read())
        except urllib.error.HTTPError as e:
            # Error statuses still carry a JSON body with `error-type`
            body = e.read() if e.fp is not None else b""
            logger.debug("upstream returned HTTP %s", e.code)
            return HttpResponse(status=e.code, body=body)
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise TransportError(f"Failed to reach upstream: {e}") from e
