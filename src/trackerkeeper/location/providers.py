"""
Location providers (the "platform location capability").

A provider answers one question: where is the primary device right now? Providers
are allowed to fail; `PositionSource` turns every failure into the fallback fix.

Implementations:
- `ReportedLocationProvider`: latest fix pushed by the browser's geolocation API
  (`POST /api/location`), including reported permission denials.
- `IpLocationProvider`: coarse IP geolocation over HTTP.
- `StaticLocationProvider`: a fixed coordinate (demos, tests).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from trackerkeeper.config.settings import IpLookupSettings, Settings
from trackerkeeper.core.http import get_json
from trackerkeeper.domain.models import Coordinate

logger = logging.getLogger(__name__)


class PositionUnavailable(Exception):
    """The provider cannot produce a fix right now."""


class PositionPermissionDenied(PositionUnavailable):
    """The user denied access to the location capability."""


class LocationProvider(Protocol):
    async def read(self, *, high_accuracy: bool) -> Coordinate: ...


class StaticLocationProvider:
    def __init__(self, coordinate: Coordinate):
        self._coordinate = coordinate

    async def read(self, *, high_accuracy: bool) -> Coordinate:
        return self._coordinate


class ReportedLocationProvider:
    """Serves the most recent fix reported by the client device.

    Browser geolocation error codes follow the W3C API:
    1 = permission denied, 2 = position unavailable, 3 = timeout.
    """

    PERMISSION_DENIED = 1

    def __init__(self) -> None:
        self._latest: Coordinate | None = None
        self._error: tuple[int, str] | None = None

    @property
    def latest(self) -> Coordinate | None:
        return self._latest

    def report(self, coordinate: Coordinate) -> None:
        self._latest = coordinate
        self._error = None

    def report_error(self, code: int, message: str = "") -> None:
        self._error = (int(code), message)
        if code == self.PERMISSION_DENIED:
            # A revoked permission invalidates whatever we were told before.
            self._latest = None

    async def read(self, *, high_accuracy: bool) -> Coordinate:
        if self._error is not None:
            code, message = self._error
            if code == self.PERMISSION_DENIED:
                raise PositionPermissionDenied(message or "location permission denied")
            if self._latest is None:
                raise PositionUnavailable(f"client reported geolocation error {code}: {message}")
        if self._latest is None:
            raise PositionUnavailable("no position reported by the client yet")
        return self._latest


class IpLocationProvider:
    """Coarse positioning from an IP geolocation JSON endpoint."""

    def __init__(
        self,
        cfg: IpLookupSettings,
        *,
        timeout_seconds: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._cfg = cfg
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def read(self, *, high_accuracy: bool) -> Coordinate:
        payload: Any = await get_json(
            self._cfg.url,
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
        )
        if not isinstance(payload, dict):
            raise PositionUnavailable("IP lookup returned a non-object payload")
        try:
            lat = float(payload[self._cfg.latitude_field])
            lon = float(payload[self._cfg.longitude_field])
        except (KeyError, TypeError, ValueError) as e:
            raise PositionUnavailable(f"IP lookup payload has no usable coordinates: {e}") from e
        return Coordinate(latitude=lat, longitude=lon, altitude=None, accuracy=self._cfg.accuracy_m)


def build_provider(settings: Settings) -> LocationProvider | None:
    """Build the configured provider; `None` means no location capability."""
    pos = settings.position
    if pos.provider == "reported":
        return ReportedLocationProvider()
    if pos.provider == "ip":
        return IpLocationProvider(pos.ip_lookup, timeout_seconds=settings.app.http_timeout_seconds)
    if pos.provider == "static":
        fb = pos.fallback
        return StaticLocationProvider(
            Coordinate(latitude=fb.latitude, longitude=fb.longitude, altitude=fb.altitude, accuracy=fb.accuracy)
        )
    logger.info("No location provider configured; positions will use the fallback coordinate.")
    return None
