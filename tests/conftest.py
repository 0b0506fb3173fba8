from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Tuple

import pytest

from exchangerate.services.errors import TransportError
from exchangerate.services.http_client import HttpResponse

T0 = datetime(2025, 5, 14, 12, 0, 0, tzinfo=timezone.utc)

LATEST_USD = {
    "result": "success",
    "documentation": "https://www.exchangerate-api.com/docs",
    "terms_of_use": "https://www.exchangerate-api.com/terms",
    "time_last_update_unix": 1747180802,
    "time_last_update_utc": "Wed, 14 May 2025 00:00:02 +0000",
    "time_next_update_unix": 1747267202,
    "time_next_update_utc": "Thu, 15 May 2025 00:00:02 +0000",
    "base_code": "USD",
    "conversion_rates": {"USD": 1, "EUR": 0.8961, "GBP": 0.7538, "JPY": 147.678},
}

PAIR_USD_EUR = {
    "result": "success",
    "base_code": "USD",
    "target_code": "EUR",
    "conversion_rate": 0.8961,
}

CODES = {
    "result": "success",
    "supported_codes": [
        ["EUR", "Euro"],
        ["GBP", "Pound Sterling"],
        ["USD", "United States Dollar"],
    ],
}


class FakeClock:
    """Mutable clock; tests move time forward explicitly."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeTransport:
    """Records requests and answers from a url-suffix -> (status, body) table."""

    def __init__(self, routes: Optional[Dict[str, Tuple[int, object]]] = None):
        self.routes = routes or {}
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self.fail = False

    def get(
        self, url: str, *, headers: Optional[Mapping[str, str]] = None, timeout: float
    ) -> HttpResponse:
        self.calls.append((url, dict(headers or {})))
        if self.fail:
            raise TransportError("Failed to reach upstream: connection refused")
        for suffix, (status, body) in self.routes.items():
            if url.endswith(suffix):
                raw = body if isinstance(body, bytes) else json.dumps(body).encode()
                return HttpResponse(status=status, body=raw)
        return HttpResponse(
            status=404, body=json.dumps({"result": "error", "error-type": "unsupported-code"}).encode()
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport(
        {
            "/latest/USD": (200, LATEST_USD),
            "/pair/USD/EUR": (200, PAIR_USD_EUR),
            "/codes/": (200, CODES),
        }
    )


@pytest.fixture(autouse=True)
def _restore_root_logging():
    # init_logging replaces root handlers; keep tests isolated from each other
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _no_api_key_env(monkeypatch):
    monkeypatch.delenv("EXCHANGE_RATE_API_KEY", raising=False)
