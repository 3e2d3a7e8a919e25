"""
Proximity monitor loop.

While the session is `Connected`, the loop samples on a recurring timer:

    position source -> companion simulator -> haversine distance -> range check
    -> one atomic SessionState update

Timer ownership:
- The loop owns at most one timer task (`_timer`). Re-arming always cancels the
  previous task first, synchronously, so no stale timer survives a reconfiguration
  or a phase change.
- Arming runs one cycle immediately, then one per interval.

Failure policy: a cycle that raises is logged and dropped; the timer keeps going.
Manual refreshes may overlap a timer tick; the last write wins, and every write is
judged against the settings current when its position read completed.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from trackerkeeper.config.settings import CompanionSettings, MonitoringSettings
from trackerkeeper.core.geo import distance_m
from trackerkeeper.domain.models import ConnectionPhase, SessionState
from trackerkeeper.location.position_source import PositionSource
from trackerkeeper.monitor.session import SessionStore
from trackerkeeper.simulation.companion import RandomSource, simulate_companion

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
Listener = Callable[[SessionState], None]


def _rearm_needed(old: MonitoringSettings, new: MonitoringSettings) -> bool:
    return (
        old.update_interval_minutes != new.update_interval_minutes
        or old.max_range_meters != new.max_range_meters
        or old.drift_magnitude != new.drift_magnitude
    )


class MonitorLoop:
    def __init__(
        self,
        session: SessionStore,
        position_source: PositionSource,
        config: MonitoringSettings,
        *,
        companion: CompanionSettings | None = None,
        rng: RandomSource | None = None,
        sleep: SleepFn = asyncio.sleep,
        timezone: str = "UTC",
    ):
        self._session = session
        self._position_source = position_source
        self._config = config
        self._companion = companion or CompanionSettings()
        self._rng = rng if rng is not None else random.Random()
        self._sleep = sleep
        self._tz = ZoneInfo(timezone)
        self._timer: asyncio.Task[None] | None = None
        self._cycles_completed = 0
        self._listeners: list[Listener] = []

    @property
    def config(self) -> MonitoringSettings:
        return self._config

    @property
    def is_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    def add_listener(self, listener: Listener) -> None:
        """Call `listener` with every snapshot this loop publishes."""
        self._listeners.append(listener)

    def _notify(self, state: SessionState) -> None:
        for listener in self._listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("Session listener failed")

    def _is_connected(self) -> bool:
        return self._session.snapshot().phase is ConnectionPhase.CONNECTED

    # --- timer management -------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _arm(self, *, immediate: bool = True) -> None:
        self._cancel_timer()
        interval = self._config.update_interval_seconds
        self._timer = asyncio.get_running_loop().create_task(
            self._run_timer(interval, immediate=immediate), name="trackerkeeper-monitor"
        )
        logger.info("Monitoring armed: every %.1fs, max range %.1fm", interval, self._config.max_range_meters)

    async def _run_timer(self, interval_seconds: float, *, immediate: bool) -> None:
        if immediate:
            await self.run_cycle()
        while True:
            await self._sleep(interval_seconds)
            await self.run_cycle()

    def on_phase_change(self, phase: ConnectionPhase) -> None:
        """React to a connection phase transition (must run inside the event loop)."""
        if phase is ConnectionPhase.CONNECTED:
            self._arm()
        else:
            if self.is_armed:
                logger.info("Monitoring stopped (phase=%s)", phase.value)
            self._cancel_timer()

    def reconfigure(self, config: MonitoringSettings, *, immediate: bool = True) -> bool:
        """Swap in new monitoring settings; returns True when the timer was re-armed."""
        old = self._config
        self._config = config
        if _rearm_needed(old, config) and self._is_connected():
            self._arm(immediate=immediate)
            return True
        return False

    async def stop(self) -> None:
        timer = self._timer
        self._cancel_timer()
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass

    # --- sampling -------------------------------------------------------------

    async def refresh(self) -> SessionState | None:
        """Run one cycle now; no-op unless connected."""
        if not self._is_connected():
            return None
        return await self.run_cycle()

    async def run_cycle(self) -> SessionState | None:
        """Sample once and publish the result; returns None when nothing was published."""
        try:
            reading = await self._position_source.read()
            # Range and drift in force once the read lands, not when it started.
            cfg = self._config
            primary = reading.coordinate
            companion = simulate_companion(
                primary,
                cfg.drift_magnitude,
                self._rng,
                default_altitude=self._companion.default_altitude_m,
                accuracy=self._companion.accuracy_m,
                altitude_jitter_max=self._companion.altitude_jitter_max,
            )
            dist = distance_m(primary, companion)
            out_of_range = dist > cfg.max_range_meters

            prev = self._session.snapshot()
            if prev.phase is not ConnectionPhase.CONNECTED:
                logger.debug("Discarding sample taken while %s", prev.phase.value)
                return None

            state = self._session.replace(
                primary_position=primary,
                companion_position=companion,
                distance_meters=dist,
                is_out_of_range=out_of_range,
                alert_acknowledged=prev.alert_acknowledged and prev.is_out_of_range == out_of_range,
                last_updated_at=datetime.now(self._tz),
                position_source=reading.source,
            )
        except Exception:
            logger.exception("Location update failed")
            return None

        self._cycles_completed += 1
        if out_of_range and not prev.is_out_of_range:
            logger.warning("Companion out of range: %.1fm > %.1fm", dist, cfg.max_range_meters)
        elif prev.is_out_of_range and not out_of_range:
            logger.info("Companion back in range: %.1fm", dist)
        self._notify(state)
        return state
