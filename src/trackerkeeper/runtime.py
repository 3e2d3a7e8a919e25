"""
Runtime wiring.

`Runtime` builds one tracking session from `Settings`: location provider, position
source, session store, monitor loop and pairing service. The API and the CLI both
drive the tracker through this object.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from trackerkeeper.config.overrides import apply_settings_overrides, form_to_overrides
from trackerkeeper.config.settings import Settings
from trackerkeeper.domain.models import Coordinate, MapView, SessionState
from trackerkeeper.location.position_source import PositionSource
from trackerkeeper.location.providers import LocationProvider, ReportedLocationProvider, build_provider
from trackerkeeper.monitor.loop import MonitorLoop, SleepFn
from trackerkeeper.monitor.session import SessionStore
from trackerkeeper.pairing.platform import protocol_status
from trackerkeeper.pairing.service import PairingService
from trackerkeeper.simulation.companion import RandomSource

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class Runtime:
    def __init__(
        self,
        settings: Settings,
        *,
        provider: LocationProvider | None = _UNSET,
        rng: RandomSource | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._settings = settings
        self.provider = build_provider(settings) if provider is _UNSET else provider
        self.position_source = PositionSource.from_settings(self.provider, settings.position)
        self.session = SessionStore()
        self.monitor = MonitorLoop(
            self.session,
            self.position_source,
            settings.monitoring,
            companion=settings.companion,
            rng=rng,
            sleep=sleep,
            timezone=settings.app.timezone,
        )
        self.pairing = PairingService(self.session, self.monitor, settings.pairing, sleep=sleep)

    @property
    def settings(self) -> Settings:
        return self._settings

    def state(self) -> SessionState:
        return self.session.snapshot()

    def status(self) -> dict[str, Any]:
        """State plus the presentation hints the dashboard shows next to it."""
        state = self.session.snapshot()
        return {
            "state": state.model_dump(mode="json"),
            "protocol_status": protocol_status(state.platform),
            "max_range_meters": self._settings.monitoring.max_range_meters,
            "update_interval_minutes": self._settings.monitoring.update_interval_minutes,
            "drift_magnitude": self._settings.monitoring.drift_magnitude,
            "monitoring_active": self.monitor.is_armed,
        }

    def map_view(self) -> MapView:
        state = self.session.snapshot()
        return MapView(
            primary_position=state.primary_position,
            companion_position=state.companion_position,
            max_range_meters=self._settings.monitoring.max_range_meters,
            map_api_key_configured=bool(self._settings.monitoring.map_api_key),
        )

    def public_settings(self) -> dict[str, Any]:
        data = self._settings.monitoring.model_dump(mode="json")
        data["map_api_key"] = "***" if data.get("map_api_key") else ""
        return data

    def _apply(self, overrides: Mapping[str, Any], *, immediate: bool = True) -> Settings:
        new = apply_settings_overrides(self._settings, overrides)
        self._settings = new
        self.monitor.reconfigure(new.monitoring, immediate=immediate)
        return new

    def update_settings(self, form: Mapping[str, Any]) -> Settings:
        """Apply the settings form; raises ValueError on unknown fields or non-positive values."""
        new = self._apply(form_to_overrides(form))
        logger.info(
            "Settings updated: max_range=%.1fm interval=%.3gmin",
            new.monitoring.max_range_meters,
            new.monitoring.update_interval_minutes,
        )
        return new

    async def simulate_movement(self) -> SessionState | None:
        """Push the companion farther away (larger drift) and sample right away."""
        mon = self._settings.monitoring
        drift = mon.drift_magnitude + mon.drift_step
        self._apply({"monitoring": {"drift_magnitude": drift}}, immediate=False)
        logger.info("Simulated movement: drift now %.4f deg", drift)
        return await self.monitor.refresh()

    async def refresh(self) -> SessionState | None:
        return await self.monitor.refresh()

    def acknowledge_alert(self) -> SessionState:
        state = self.session.snapshot()
        if not state.is_out_of_range:
            return state
        return self.session.replace(alert_acknowledged=True)

    def _reported_provider(self) -> ReportedLocationProvider:
        if not isinstance(self.provider, ReportedLocationProvider):
            raise ValueError("Position provider does not accept reported fixes.")
        return self.provider

    def report_location(self, coordinate: Coordinate) -> None:
        self._reported_provider().report(coordinate)

    def report_location_error(self, code: int, message: str = "") -> None:
        self._reported_provider().report_error(code, message)
        logger.warning("Client geolocation error (%d): %s", code, message)

    async def shutdown(self) -> None:
        await self.pairing.close()
        await self.monitor.stop()
