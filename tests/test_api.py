from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import FakeTransport
from exchangerate.core.config import Settings
from exchangerate.main import create_app
from exchangerate.services.cache import InMemoryCache
from exchangerate.services.client import CacheSettings, ExchangeRateClient, build_client


@pytest.fixture
def rates_client(transport, clock) -> ExchangeRateClient:
    return ExchangeRateClient(
        "test_key", transport=transport, cache=InMemoryCache(clock=clock), clock=clock
    )


@pytest.fixture
def api(rates_client):
    app = create_app(Settings(api_key="test_key"), client_override=rates_client)
    with TestClient(app) as c:
        yield c


def test_root(api):
    resp = api.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Exchange Rate API", "version": "0.1.0"}


def test_latest_rates_route_caches(api, transport):
    first = api.get("/rates/latest/usd")
    assert first.status_code == 200
    body = first.json()
    assert body["base_code"] == "USD"
    assert body["conversion_rates"]["EUR"] == 0.8961
    assert api.get("/rates/latest/USD").json() == body
    assert len(transport.calls) == 1


def test_pair_route(api):
    resp = api.get("/rates/pair/USD/eur")
    assert resp.status_code == 200
    assert resp.json() == {"from_currency": "USD", "to_currency": "EUR", "rate": 0.8961}


def test_convert_route(api, transport):
    resp = api.get(
        "/rates/convert", params={"amount": 100, "from_currency": "USD", "to_currency": "EUR"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["converted_amount"] == pytest.approx(89.61)
    assert body["rate"] == 0.8961
    assert len(transport.calls) == 1


def test_codes_route(api):
    resp = api.get("/rates/codes")
    assert resp.status_code == 200
    assert resp.json() == {
        "currencies": {
            "EUR": "Euro",
            "GBP": "Pound Sterling",
            "USD": "United States Dollar",
        },
        "count": 3,
    }


def test_bad_currency_code_is_validation_error(api, transport):
    resp = api.get("/rates/latest/US")
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"
    assert transport.calls == []


def test_unsupported_code_maps_to_400(api):
    resp = api.get("/rates/latest/XYZ")
    assert resp.status_code == 400
    assert resp.json() == {"error": "unsupported-code", "detail": "API error: unsupported-code"}


@pytest.mark.parametrize(
    "error_type, status",
    [
        ("invalid-key", 401),
        ("inactive-account", 403),
        ("quota-reached", 429),
        ("malformed-request", 400),
    ],
)
def test_upstream_errors_map_to_status(transport, clock, error_type, status):
    transport.routes["/latest/EUR"] = (200, {"result": "error", "error-type": error_type})
    client = ExchangeRateClient("k", transport=transport, clock=clock)
    with TestClient(create_app(Settings(api_key="k"), client_override=client)) as c:
        resp = c.get("/rates/latest/EUR")
    assert resp.status_code == status
    assert resp.json()["error"] == error_type


def test_unreachable_upstream_is_bad_gateway(clock):
    transport = FakeTransport()
    transport.fail = True
    client = ExchangeRateClient("k", transport=transport, clock=clock)
    with TestClient(create_app(Settings(api_key="k"), client_override=client)) as c:
        resp = c.get("/rates/pair/USD/EUR")
    assert resp.status_code == 502
    assert resp.json()["error"] == "transport"


def test_invalidate_one_key(api, transport):
    api.get("/rates/latest/USD")
    api.get("/rates/pair/USD/EUR")
    resp = api.delete("/rates/cache/latest", params={"params": "usd"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "invalidated", "key": "latest:USD"}

    api.get("/rates/latest/USD")
    api.get("/rates/pair/USD/EUR")
    assert len(transport.calls) == 3


def test_invalidate_pair_key_keeps_param_order(api):
    resp = api.delete("/rates/cache/pair", params=[("params", "USD"), ("params", "EUR")])
    assert resp.json()["key"] == "pair:USD:EUR"


def test_invalidate_unknown_endpoint(api):
    resp = api.delete("/rates/cache/history")
    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found", "detail": "unknown cache endpoint 'history'"}


def test_clear_cache(api, transport):
    api.get("/rates/codes")
    assert api.delete("/rates/cache").json() == {"status": "cleared"}
    api.get("/rates/codes")
    assert len(transport.calls) == 2


def test_unknown_route(api):
    resp = api.get("/nope")
    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found", "detail": "No route for GET /nope"}


def test_create_app_without_key_fails():
    from exchangerate.services.errors import MissingApiKeyError

    with pytest.raises(MissingApiKeyError):
        create_app(Settings(api_key=None))


def test_app_with_sqlite_client(tmp_path, transport):
    settings = Settings(
        api_key="k", cache_backend="sqlite", cache_db_path=tmp_path / "api.sqlite3"
    )
    client = build_client(settings, transport=transport)
    with TestClient(create_app(settings, client_override=client)) as c:
        assert c.get("/rates/pair/USD/EUR").status_code == 200
        assert c.get("/rates/pair/USD/EUR").json()["rate"] == 0.8961
    assert len(transport.calls) == 1
    assert (tmp_path / "api.sqlite3").exists()


def test_convert_route_fetches_rates_once_without_cache(transport, clock):
    client = ExchangeRateClient(
        "k", transport=transport, cache_settings=CacheSettings(enabled=False), clock=clock
    )
    with TestClient(create_app(Settings(api_key="k"), client_override=client)) as c:
        resp = c.get(
            "/rates/convert", params={"amount": 10, "from_currency": "USD", "to_currency": "GBP"}
        )
        missing = c.get(
            "/rates/convert", params={"amount": 10, "from_currency": "USD", "to_currency": "XYZ"}
        )
    assert resp.status_code == 200
    assert resp.json()["converted_amount"] == pytest.approx(7.538)
    assert missing.status_code == 400
    assert missing.json()["error"] == "unsupported-code"
    assert len(transport.calls) == 2
