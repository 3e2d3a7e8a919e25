import asyncio

import httpx
import pytest

from trackerkeeper.config.settings import IpLookupSettings, get_settings
from trackerkeeper.domain.models import Coordinate
from trackerkeeper.location.position_source import FALLBACK_COORDINATE, PositionSource
from trackerkeeper.location.providers import (
    IpLocationProvider,
    PositionPermissionDenied,
    PositionUnavailable,
    ReportedLocationProvider,
    StaticLocationProvider,
    build_provider,
)

FIX = Coordinate(latitude=51.5007, longitude=-0.1246, altitude=20, accuracy=8)


class CountingProvider:
    def __init__(self, results):
        self._results = list(results)
        self.calls = 0
        self.high_accuracy = None

    async def read(self, *, high_accuracy: bool) -> Coordinate:
        self.calls += 1
        self.high_accuracy = high_accuracy
        result = self._results[min(self.calls - 1, len(self._results) - 1)]
        if isinstance(result, Exception):
            raise result
        return result


class HangingProvider:
    async def read(self, *, high_accuracy: bool) -> Coordinate:
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


def _assert_fallback(coord: Coordinate):
    assert coord.latitude == 40.7128
    assert coord.longitude == -74.0060
    assert coord.altitude == 10
    assert coord.accuracy == 100


def test_fallback_constant_matches_documented_location():
    _assert_fallback(FALLBACK_COORDINATE)


def test_missing_capability_resolves_to_fallback(caplog):
    source = PositionSource(None)
    reading = asyncio.run(source.read())
    _assert_fallback(reading.coordinate)
    assert reading.source == "fallback"
    assert not reading.ok
    assert "fallback" in caplog.text


@pytest.mark.parametrize(
    "error",
    [
        PositionPermissionDenied("user said no"),
        PositionUnavailable("no satellites"),
        RuntimeError("driver crashed"),
    ],
)
def test_provider_failures_resolve_to_fallback_without_raising(error):
    source = PositionSource(CountingProvider([error]))
    coord = asyncio.run(source.current_position())
    _assert_fallback(coord)


def test_provider_crash_logs_warning_with_traceback(caplog):
    source = PositionSource(CountingProvider([RuntimeError("driver crashed")]))
    reading = asyncio.run(source.read())

    assert reading.source == "fallback"
    assert "driver crashed" in reading.error
    records = [r for r in caplog.records if r.name == "trackerkeeper.location.position_source"]
    assert [r.levelname for r in records] == ["WARNING"]
    assert records[0].exc_info is not None


def test_timeout_resolves_to_fallback():
    source = PositionSource(HangingProvider(), timeout_seconds=0.01)
    reading = asyncio.run(source.read())
    _assert_fallback(reading.coordinate)
    assert "timed out" in reading.error


def test_live_read_requests_high_accuracy():
    provider = CountingProvider([FIX])
    reading = asyncio.run(PositionSource(provider).read())
    assert reading.coordinate == FIX
    assert reading.source == "live"
    assert reading.ok
    assert provider.high_accuracy is True


def test_recent_fix_is_reused_within_cache_age():
    now = {"t": 100.0}
    provider = CountingProvider([FIX, Coordinate(latitude=0, longitude=0)])
    source = PositionSource(provider, max_cache_age_seconds=10, clock=lambda: now["t"])

    async def scenario():
        first = await source.read()
        now["t"] = 109.0
        second = await source.read()
        now["t"] = 120.0
        third = await source.read()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first.source == "live"
    assert second.source == "cache"
    assert second.coordinate == FIX
    assert third.source == "live"
    assert third.coordinate.latitude == 0
    assert provider.calls == 2


def test_fallback_is_never_cached():
    provider = CountingProvider([PositionUnavailable("cold start"), FIX])
    source = PositionSource(provider, clock=lambda: 0.0)

    async def scenario():
        return await source.read(), await source.read()

    first, second = asyncio.run(scenario())
    assert first.source == "fallback"
    assert second.source == "live"
    assert second.coordinate == FIX


def test_reported_provider_lifecycle():
    provider = ReportedLocationProvider()

    with pytest.raises(PositionUnavailable):
        asyncio.run(provider.read(high_accuracy=True))

    provider.report(FIX)
    assert asyncio.run(provider.read(high_accuracy=True)) == FIX

    # Timeout (3) keeps serving the last fix.
    provider.report_error(3, "timeout")
    assert asyncio.run(provider.read(high_accuracy=True)) == FIX

    provider.report_error(1, "denied")
    with pytest.raises(PositionPermissionDenied):
        asyncio.run(provider.read(high_accuracy=True))
    assert provider.latest is None

    provider.report(FIX)
    assert asyncio.run(provider.read(high_accuracy=True)) == FIX


def test_static_provider_returns_its_coordinate():
    assert asyncio.run(StaticLocationProvider(FIX).read(high_accuracy=False)) == FIX


def test_ip_provider_parses_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["User-Agent"].startswith("trackerkeeper/")
        return httpx.Response(200, json={"latitude": 48.8566, "longitude": 2.3522, "city": "Paris"})

    provider = IpLocationProvider(IpLookupSettings(url="https://geo.test/json"), transport=httpx.MockTransport(handler))
    coord = asyncio.run(provider.read(high_accuracy=True))
    assert coord.latitude == 48.8566
    assert coord.longitude == 2.3522
    assert coord.altitude is None
    assert coord.accuracy == 5000


def test_ip_provider_rejects_payload_without_coordinates():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"error": True}))
    provider = IpLocationProvider(IpLookupSettings(url="https://geo.test/json"), transport=transport)
    with pytest.raises(PositionUnavailable):
        asyncio.run(provider.read(high_accuracy=True))


def test_ip_provider_http_error_falls_back_through_position_source():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, json={}))
    provider = IpLocationProvider(IpLookupSettings(url="https://geo.test/json"), transport=transport)
    coord = asyncio.run(PositionSource(provider).current_position())
    _assert_fallback(coord)


def test_build_provider_follows_settings():
    settings = get_settings()

    def with_provider(name):
        position = settings.position.model_copy(update={"provider": name})
        return settings.model_copy(update={"position": position})

    assert isinstance(build_provider(with_provider("reported")), ReportedLocationProvider)
    assert isinstance(build_provider(with_provider("ip")), IpLocationProvider)
    assert isinstance(build_provider(with_provider("static")), StaticLocationProvider)
    assert build_provider(with_provider("none")) is None
