"""
TrackerKeeper CLI entrypoint.

This CLI is intended for quick local demos and debugging without the web UI.
It drives the same `Runtime` the API uses.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
from typing import Any

from trackerkeeper.config.overrides import apply_settings_overrides
from trackerkeeper.config.settings import Settings, get_settings
from trackerkeeper.core.geo import distance_m
from trackerkeeper.core.logging import configure_logging
from trackerkeeper.domain.models import Coordinate, Platform, SessionState
from trackerkeeper.location.providers import build_provider
from trackerkeeper.runtime import Runtime
from trackerkeeper.simulation.companion import simulate_companion


def _format_state(i: int, state: SessionState, max_range: float) -> str:
    dist = f"{state.distance_meters:.1f}m" if state.distance_meters is not None else "--"
    flag = "OUT OF RANGE" if state.is_out_of_range else "ok"
    return f"{i:>2}. distance={dist} max={max_range:g}m {flag} source={state.position_source}"


def _cmd_distance(args: argparse.Namespace) -> int:
    a = Coordinate(latitude=args.lat1, longitude=args.lon1)
    b = Coordinate(latitude=args.lat2, longitude=args.lon2)
    print(f"{distance_m(a, b):.3f}")
    return 0


def _cmd_simulate(args: argparse.Namespace) -> int:
    settings = get_settings()
    drift = float(args.drift) if args.drift is not None else settings.monitoring.drift_magnitude
    rng = random.Random(args.seed)
    primary = Coordinate(latitude=args.lat, longitude=args.lon, altitude=args.altitude)
    for i in range(1, int(args.samples) + 1):
        companion = simulate_companion(
            primary,
            drift,
            rng,
            default_altitude=settings.companion.default_altitude_m,
            accuracy=settings.companion.accuracy_m,
            altitude_jitter_max=settings.companion.altitude_jitter_max,
        )
        print(
            f"{i:>2}. lat={companion.latitude:.6f} lon={companion.longitude:.6f} "
            f"alt={companion.altitude:.1f} distance={distance_m(primary, companion):.1f}m"
        )
    return 0


def _monitor_settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    monitoring: dict[str, Any] = {}
    if args.max_range is not None:
        monitoring["max_range_meters"] = float(args.max_range)
    if args.interval_minutes is not None:
        monitoring["update_interval_minutes"] = float(args.interval_minutes)
    if args.drift is not None:
        monitoring["drift_magnitude"] = float(args.drift)
    settings = apply_settings_overrides(settings, {"monitoring": monitoring} if monitoring else None)
    position = settings.position.model_copy(update={"provider": args.provider})
    return settings.model_copy(update={"position": position})


async def _run_monitor(settings: Settings, args: argparse.Namespace) -> int:
    runtime = Runtime(
        settings,
        provider=build_provider(settings),
        rng=random.Random(args.seed) if args.seed is not None else None,
    )
    max_range = settings.monitoring.max_range_meters
    updates: asyncio.Queue[SessionState] = asyncio.Queue()
    runtime.monitor.add_listener(updates.put_nowait)
    try:
        await runtime.pairing.connect(Platform(args.platform), args.device)
        for i in range(1, int(args.cycles) + 1):
            state = await updates.get()
            if args.json:
                print(json.dumps(state.model_dump(mode="json"), ensure_ascii=False))
            else:
                print(_format_state(i, state, max_range))
    finally:
        runtime.pairing.disconnect()
        await runtime.shutdown()
    return 0


def _cmd_monitor(args: argparse.Namespace) -> int:
    try:
        settings = _monitor_settings(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        return 2
    return asyncio.run(_run_monitor(settings, args))


def _cmd_settings(_: argparse.Namespace) -> int:
    data = get_settings().model_dump(mode="json")
    if data["monitoring"].get("map_api_key"):
        data["monitoring"]["map_api_key"] = "***"
    print(json.dumps(data, ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the TrackerKeeper CLI."""
    parser = argparse.ArgumentParser(prog="trackerkeeper")
    sub = parser.add_subparsers(dest="command", required=True)

    dist = sub.add_parser("distance", help="Great-circle distance in meters between two points.")
    dist.add_argument("lat1", type=float)
    dist.add_argument("lon1", type=float)
    dist.add_argument("lat2", type=float)
    dist.add_argument("lon2", type=float)
    dist.set_defaults(func=_cmd_distance)

    sim = sub.add_parser("simulate", help="Print simulated companion fixes around a primary position.")
    sim.add_argument("--lat", required=True, type=float)
    sim.add_argument("--lon", required=True, type=float)
    sim.add_argument("--altitude", type=float, default=None)
    sim.add_argument("--drift", type=float, default=None, help="Drift magnitude in degrees.")
    sim.add_argument("--samples", type=int, default=5)
    sim.add_argument("--seed", type=int, default=None)
    sim.set_defaults(func=_cmd_simulate)

    mon = sub.add_parser("monitor", help="Pair a simulated watch and run the monitor loop.")
    mon.add_argument("--cycles", type=int, default=3)
    mon.add_argument("--interval-minutes", type=float, default=None)
    mon.add_argument("--max-range", type=float, default=None, help="Meters; must be > 0.")
    mon.add_argument("--drift", type=float, default=None)
    mon.add_argument("--provider", choices=["static", "ip", "none"], default="static")
    mon.add_argument("--platform", choices=[Platform.IOS.value, Platform.ANDROID.value], default=Platform.IOS.value)
    mon.add_argument("--device", default="Demo Watch")
    mon.add_argument("--seed", type=int, default=None)
    mon.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    mon.set_defaults(func=_cmd_monitor)

    st = sub.add_parser("settings", help="Show effective settings (API key redacted).")
    st.set_defaults(func=_cmd_settings)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m trackerkeeper.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
