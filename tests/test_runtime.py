import asyncio

import pytest

from trackerkeeper.config.settings import get_settings
from trackerkeeper.domain.models import ConnectionPhase, Coordinate, Platform
from trackerkeeper.location.providers import ReportedLocationProvider, StaticLocationProvider
from trackerkeeper.runtime import Runtime

PRIMARY = Coordinate(latitude=40.7128, longitude=-74.0060)


def _connected_runtime(ticker, rng, provider=None):
    runtime = Runtime(
        get_settings(),
        provider=provider or StaticLocationProvider(PRIMARY),
        rng=rng,
        sleep=ticker.sleep,
    )
    runtime.session.replace(phase=ConnectionPhase.CONNECTED, platform=Platform.IOS, device_name="Watch")
    return runtime


def test_simulate_movement_grows_drift_and_resamples(make_rng, make_ticker, settle):
    ticker = make_ticker()
    # Default drift 0.0001 + step 0.001; 1.0 draws push the companion +drift/2 on both axes.
    runtime = _connected_runtime(ticker, make_rng([1.0]))

    async def scenario():
        runtime.monitor.on_phase_change(ConnectionPhase.CONNECTED)
        await settle()
        before = runtime.state().distance_meters
        state = await runtime.simulate_movement()
        await settle()
        # The timer was re-armed without its own immediate sample: only one timer waits.
        waiting = [s for s, _ in ticker.live()]
        cycles = runtime.monitor.cycles_completed
        await runtime.shutdown()
        return before, state, waiting, cycles

    before, state, waiting, cycles = asyncio.run(scenario())
    assert runtime.settings.monitoring.drift_magnitude == pytest.approx(0.0011)
    assert state.distance_meters > before
    assert state.is_out_of_range is True
    assert waiting == [60]
    assert cycles == 2


def test_update_settings_rearms_and_rejects_bad_values(make_rng, make_ticker, settle):
    ticker = make_ticker()
    runtime = _connected_runtime(ticker, make_rng([0.5]))

    async def scenario():
        runtime.monitor.on_phase_change(ConnectionPhase.CONNECTED)
        await settle()
        runtime.update_settings({"update_interval_minutes": 0.1})
        await settle()
        with pytest.raises(ValueError):
            runtime.update_settings({"max_range_meters": 0})
        await settle()
        waiting = [s for s, _ in ticker.live()]
        await runtime.shutdown()
        return waiting

    assert asyncio.run(scenario()) == [pytest.approx(6.0)]
    assert runtime.settings.monitoring.max_range_meters == 50
    assert runtime.monitor.config.update_interval_minutes == 0.1


def test_acknowledge_alert_keeps_range_flag(make_rng, make_ticker):
    runtime = _connected_runtime(make_ticker(), make_rng([1.0]))

    async def scenario():
        moved = await runtime.simulate_movement()
        acked = runtime.acknowledge_alert()
        await runtime.shutdown()
        return moved, acked

    moved, acked = asyncio.run(scenario())
    assert moved.distance_meters > runtime.settings.monitoring.max_range_meters
    assert moved.is_out_of_range is True
    assert acked.alert_acknowledged is True
    assert acked.is_out_of_range is True
    assert acked.distance_meters == moved.distance_meters


def test_acknowledge_alert_is_noop_when_in_range(make_rng, make_ticker):
    runtime = _connected_runtime(make_ticker(), make_rng([0.5]))
    assert runtime.acknowledge_alert().alert_acknowledged is False


def test_reported_fixes_flow_into_samples(make_rng, make_ticker):
    provider = ReportedLocationProvider()
    runtime = _connected_runtime(make_ticker(), make_rng([0.5]), provider=provider)

    fallback_state = asyncio.run(runtime.refresh())
    assert fallback_state.position_source == "fallback"

    fix = Coordinate(latitude=35.6762, longitude=139.6503, altitude=40, accuracy=12)
    runtime.report_location(fix)
    state = asyncio.run(runtime.refresh())
    assert state.primary_position == fix
    assert state.position_source == "live"


def test_report_location_requires_reported_provider(make_rng, make_ticker):
    runtime = _connected_runtime(make_ticker(), make_rng([0.5]))
    with pytest.raises(ValueError):
        runtime.report_location(PRIMARY)


def test_public_settings_redact_api_key():
    runtime = Runtime(get_settings(), provider=None)

    async def scenario():
        runtime.update_settings({"map_api_key": "AIzaSySecret"})

    asyncio.run(scenario())
    assert runtime.public_settings()["map_api_key"] == "***"
    assert runtime.map_view().map_api_key_configured is True
