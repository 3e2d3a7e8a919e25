"""
Simulated pairing flow.

There is no radio here: discovery returns a static device list after a delay and the
"handshake" is a fixed wait. The service owns the connection phase transitions and
tells the monitor loop about each one:

    Disconnected -> Searching... -> Connected -> Disconnected
"""

from __future__ import annotations

import asyncio
import logging

from trackerkeeper.config.settings import PairingSettings
from trackerkeeper.domain.models import ConnectionPhase, Platform, SessionState
from trackerkeeper.monitor.loop import MonitorLoop, SleepFn
from trackerkeeper.monitor.session import SessionStore

logger = logging.getLogger(__name__)


class PairingError(ValueError):
    """Invalid pairing request (unknown platform, wrong phase)."""


class PairingService:
    def __init__(
        self,
        session: SessionStore,
        monitor: MonitorLoop,
        cfg: PairingSettings,
        *,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._session = session
        self._monitor = monitor
        self._cfg = cfg
        self._sleep = sleep
        self._handshake: asyncio.Task[SessionState] | None = None

    def devices_for(self, platform: Platform) -> list[str]:
        if platform is Platform.UNKNOWN:
            return []
        return list(self._cfg.devices.get(platform.value, []))

    async def scan(self, platform: Platform) -> list[str]:
        """Simulated device discovery for the selected platform."""
        if platform is Platform.UNKNOWN:
            raise PairingError("Select iOS or Android before scanning.")
        await self._sleep(self._cfg.discovery_delay_seconds)
        devices = self.devices_for(platform)
        logger.info("Discovered %d %s device(s)", len(devices), platform.value)
        return devices

    def _start_handshake(self, platform: Platform, device_name: str) -> asyncio.Task[SessionState]:
        if platform is Platform.UNKNOWN:
            raise PairingError("Cannot pair with an unknown platform.")
        if not device_name:
            raise PairingError("device_name is required.")
        if self._session.snapshot().phase is not ConnectionPhase.DISCONNECTED:
            raise PairingError("Already paired; disconnect first.")

        self._session.replace(phase=ConnectionPhase.SEARCHING, platform=platform, device_name=device_name)
        self._monitor.on_phase_change(ConnectionPhase.SEARCHING)
        task = asyncio.get_running_loop().create_task(self._complete_handshake(), name="trackerkeeper-handshake")
        self._handshake = task
        logger.info("Pairing with %s (%s)", device_name, platform.value)
        return task

    def begin_connect(self, platform: Platform, device_name: str) -> SessionState:
        """Enter `Searching...` and schedule the handshake; returns the new snapshot."""
        self._start_handshake(platform, device_name)
        return self._session.snapshot()

    async def _complete_handshake(self) -> SessionState:
        await self._sleep(self._cfg.handshake_delay_seconds)
        state = self._session.replace(phase=ConnectionPhase.CONNECTED)
        self._monitor.on_phase_change(ConnectionPhase.CONNECTED)
        logger.info("Connected to %s", state.device_name)
        return state

    async def connect(self, platform: Platform, device_name: str) -> SessionState:
        """Pair and wait until the handshake completes."""
        return await self._start_handshake(platform, device_name)

    def disconnect(self) -> SessionState:
        """Drop the link and clear everything the monitor published."""
        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()
        self._handshake = None
        self._monitor.on_phase_change(ConnectionPhase.DISCONNECTED)
        state = self._session.replace(
            phase=ConnectionPhase.DISCONNECTED,
            platform=Platform.UNKNOWN,
            device_name=None,
            primary_position=None,
            companion_position=None,
            distance_meters=None,
            is_out_of_range=False,
            alert_acknowledged=False,
            position_source=None,
        )
        logger.info("Disconnected")
        return state

    async def close(self) -> None:
        handshake = self._handshake
        if handshake is not None and not handshake.done():
            handshake.cancel()
            try:
                await handshake
            except asyncio.CancelledError:
                pass
        self._handshake = None
