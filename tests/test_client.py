from __future__ import annotations

import json
from datetime import timedelta

import pytest

from conftest import CODES, LATEST_USD, FakeClock, FakeTransport
from exchangerate.core.config import Settings
from exchangerate.services.cache import (
    CacheBackendError,
    CacheNotFound,
    InMemoryCache,
    SqliteCache,
)
from exchangerate.services.cache.base import StoredRow
from exchangerate.services.client import (
    AuthMethod,
    CacheSettings,
    ExchangeRateClient,
    build_client,
)
from exchangerate.services.errors import (
    InvalidKeyError,
    MissingApiKeyError,
    QuotaReachedError,
    ResponseParseError,
    TransportError,
    UnsupportedCodeError,
)

BASE = "https://v6.exchangerate-api.com/v6"


class BrokenCache(InMemoryCache):
    """Backend whose storage always fails."""

    def _load(self, key: str):
        raise CacheBackendError("disk on fire")

    def _store(self, key: str, row: StoredRow) -> None:
        raise CacheBackendError("disk on fire")


@pytest.fixture
def make_client(transport, clock):
    def factory(**kwargs) -> ExchangeRateClient:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("transport", transport)
        return ExchangeRateClient("test_key", **kwargs)

    return factory


def test_missing_api_key():
    with pytest.raises(MissingApiKeyError):
        ExchangeRateClient("")


def test_url_construction_in_url_auth(make_client):
    client = make_client(auth_method=AuthMethod.IN_URL)
    assert client.build_url("latest", ["USD"]) == f"{BASE}/test_key/latest/USD"
    assert client.build_url("codes", []) == f"{BASE}/test_key/codes/"


def test_url_construction_bearer(make_client, transport):
    client = make_client()
    assert client.build_url("latest", ["USD"]) == f"{BASE}/latest/USD"
    client.get_latest_rates("USD")
    url, headers = transport.calls[0]
    assert url == f"{BASE}/latest/USD"
    assert headers == {"Authorization": "Bearer test_key"}


def test_in_url_auth_sends_no_auth_header(make_client, transport):
    client = make_client(auth_method="url")
    client.get_latest_rates("USD")
    assert transport.calls[0] == (f"{BASE}/test_key/latest/USD", {})


def test_invalid_auth_method(make_client):
    with pytest.raises(ValueError):
        make_client(auth_method="cookie")


def test_latest_rates_second_call_served_from_cache(make_client, transport):
    client = make_client()
    first = client.get_latest_rates("USD")
    second = client.get_latest_rates("USD")
    assert first == second
    assert second.get_rate("EUR") == 0.8961
    assert len(transport.calls) == 1


def test_latest_rates_cached_until_source_next_update(make_client, clock):
    cache = InMemoryCache(clock=clock)
    client = make_client(cache=cache)
    client.get_latest_rates("USD")
    entry = cache.get_typed("latest:USD")
    assert int(entry.expires_at.timestamp()) == LATEST_USD["time_next_update_unix"]
    assert entry.cached_at == clock()


def test_expired_entry_triggers_refetch(make_client, transport, clock: FakeClock):
    client = make_client()
    client.get_latest_rates("USD")
    clock.advance(hours=11, minutes=59)  # next update is 2025-05-15T00:00:02Z
    client.get_latest_rates("USD")
    assert len(transport.calls) == 1
    clock.advance(minutes=2)
    client.get_latest_rates("USD")
    assert len(transport.calls) == 2


def test_pair_rate_uses_raw_cache_with_default_ttl(make_client, transport, clock):
    cache = InMemoryCache(clock=clock)
    client = make_client(
        cache=cache, cache_settings=CacheSettings(default_ttl=timedelta(hours=3))
    )
    assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert len(transport.calls) == 1
    entry = cache.get_raw("pair:USD:EUR")
    assert json.loads(entry.value)["conversion_rate"] == 0.8961
    assert entry.expires_at - entry.cached_at == timedelta(hours=3)


def test_pair_direction_is_a_different_key(make_client, transport):
    transport.routes["/pair/EUR/USD"] = (200, {"conversion_rate": 1.1159})
    client = make_client()
    assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert client.get_pair_rate("EUR", "USD") == 1.1159
    assert len(transport.calls) == 2


def test_supported_codes_cached_for_a_week(make_client, transport, clock):
    cache = InMemoryCache(clock=clock)
    client = make_client(cache=cache)
    codes = client.get_supported_codes()
    assert codes == [tuple(c) for c in CODES["supported_codes"]]
    assert client.get_supported_codes() == codes
    assert len(transport.calls) == 1
    entry = cache.get_raw("codes:")
    assert entry.expires_at - entry.cached_at == timedelta(weeks=1)


def test_convert_uses_latest_rates(make_client, transport):
    client = make_client()
    assert client.convert(100.0, "USD", "EUR") == pytest.approx(89.61)
    with pytest.raises(UnsupportedCodeError):
        client.convert(1.0, "USD", "XYZ")
    assert len(transport.calls) == 1


def test_disabled_cache_always_fetches(make_client, transport):
    client = make_client(cache_settings=CacheSettings(enabled=False))
    assert client.cache is None
    client.get_latest_rates("USD")
    client.get_latest_rates("USD")
    assert len(transport.calls) == 2


def test_clients_do_not_share_a_default_cache(make_client):
    a = make_client()
    b = make_client()
    assert a.cache is not b.cache
    a.get_latest_rates("USD")
    with pytest.raises(CacheNotFound):
        b.cache.get_typed("latest:USD")  # type: ignore[union-attr]


def test_shared_backend_serves_both_clients(make_client, transport, clock):
    shared = InMemoryCache(clock=clock)
    make_client(cache=shared).get_latest_rates("USD")
    make_client(cache=shared).get_latest_rates("USD")
    assert len(transport.calls) == 1


def test_backend_failures_degrade_to_network(make_client, transport, caplog):
    client = make_client(cache=BrokenCache())
    with caplog.at_level("WARNING", logger="exchangerate.client"):
        assert client.get_latest_rates("USD").base_code == "USD"
        assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert len(transport.calls) == 2
    assert any("cache read failed" in r.getMessage() for r in caplog.records)
    assert any("failed to cache response" in r.getMessage() for r in caplog.records)


def test_corrupt_cached_payload_falls_through(make_client, transport, clock):
    cache = InMemoryCache(clock=clock)
    client = make_client(cache=cache)
    cache.set_raw("pair:USD:EUR", "not json", clock(), clock() + timedelta(hours=1))
    assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert len(transport.calls) == 1
    # fresh result replaced the corrupt entry
    assert json.loads(cache.get_raw("pair:USD:EUR").value)["conversion_rate"] == 0.8961


def test_cache_and_network_both_failing_surfaces_network_error(make_client, transport):
    transport.fail = True
    client = make_client(cache=BrokenCache())
    with pytest.raises(TransportError):
        client.get_latest_rates("USD")


def test_upstream_error_types_map_to_exceptions(make_client):
    transport = FakeTransport(
        {
            "/latest/XXX": (404, {"result": "error", "error-type": "unsupported-code"}),
            "/latest/USD": (403, {"result": "error", "error-type": "invalid-key"}),
            "/latest/EUR": (200, {"result": "error", "error-type": "quota-reached"}),
            "/latest/GBP": (200, b"<html>oops</html>"),
        }
    )
    client = make_client(transport=transport)
    with pytest.raises(UnsupportedCodeError):
        client.get_latest_rates("XXX")
    with pytest.raises(InvalidKeyError):
        client.get_latest_rates("USD")
    with pytest.raises(QuotaReachedError):
        client.get_latest_rates("EUR")
    with pytest.raises(ResponseParseError):
        client.get_latest_rates("GBP")
    # failures are never cached
    with pytest.raises(CacheNotFound):
        client.cache.get_raw("latest:USD")  # type: ignore[union-attr]


def test_invalidate_and_clear_cache(make_client, transport):
    client = make_client()
    client.get_latest_rates("USD")
    client.get_pair_rate("USD", "EUR")
    client.invalidate("latest", "USD")
    client.get_latest_rates("USD")
    client.get_pair_rate("USD", "EUR")
    assert len(transport.calls) == 3
    client.clear_cache()
    client.get_pair_rate("USD", "EUR")
    assert len(transport.calls) == 4


def test_build_client_from_settings(tmp_path, transport):
    settings = Settings(
        api_key="k",
        cache_backend="sqlite",
        cache_db_path=tmp_path / "c.sqlite3",
        cache_default_ttl_seconds=60,
    )
    client = build_client(settings, transport=transport)
    try:
        assert isinstance(client.cache, SqliteCache)
        assert client.cache_settings.default_ttl == timedelta(seconds=60)
        assert client.get_pair_rate("USD", "EUR") == 0.8961
        assert client.get_pair_rate("USD", "EUR") == 0.8961
        assert len(transport.calls) == 1
    finally:
        client.close()

    no_cache = build_client(settings, use_cache=False, transport=transport)
    assert no_cache.cache is None


def test_build_client_requires_api_key(monkeypatch):
    monkeypatch.delenv("EXCHANGE_RATE_API_KEY", raising=False)
    with pytest.raises(MissingApiKeyError):
        build_client(Settings(api_key=None))


def test_empty_backend_passed_in_is_used(make_client, clock):
    shared = InMemoryCache(clock=clock)
    client = make_client(cache=shared)
    assert client.cache is shared
    client.get_pair_rate("USD", "EUR")
    assert shared.get_raw("pair:USD:EUR").value


@pytest.mark.parametrize("broken", ["garbage_file", "parent_is_file"])
def test_build_client_survives_unusable_sqlite_cache(tmp_path, transport, caplog, broken):
    if broken == "garbage_file":
        db_path = tmp_path / "cache.sqlite3"
        db_path.write_bytes(b"definitely not sqlite " * 64)
    else:
        (tmp_path / "blocker").write_text("x")
        db_path = tmp_path / "blocker" / "cache.sqlite3"
    settings = Settings(api_key="k", cache_backend="sqlite", cache_db_path=db_path)

    with caplog.at_level("WARNING", logger="exchangerate.client"):
        client = build_client(settings, transport=transport)
    assert isinstance(client.cache, InMemoryCache)
    assert any("cache backend unavailable" in r.getMessage() for r in caplog.records)

    assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert client.get_pair_rate("USD", "EUR") == 0.8961
    assert len(transport.calls) == 1
