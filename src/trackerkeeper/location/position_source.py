"""
Primary-device position source.

`PositionSource.current_position()` never raises. The monitor loop polls it on a
timer and must not stall or abort because a location service is flaky, so every
failure path (no provider, timeout, permission denied, provider crash) resolves to
`FALLBACK_COORDINATE` and logs a warning.

Internally each read yields a `PositionReading` result value that records where the
coordinate came from (`live`, `cache`, `fallback`) and, for fallbacks, why.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from trackerkeeper.config.settings import PositionSettings
from trackerkeeper.domain.models import Coordinate, PositionSourceName
from trackerkeeper.location.providers import LocationProvider, PositionPermissionDenied, PositionUnavailable

logger = logging.getLogger(__name__)

# New York City.
FALLBACK_COORDINATE = Coordinate(latitude=40.7128, longitude=-74.0060, altitude=10, accuracy=100)


@dataclass(frozen=True)
class PositionReading:
    """Outcome of one position read (never an exception)."""

    coordinate: Coordinate
    source: PositionSourceName
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PositionSource:
    """Reads the primary device position with a bounded wait and a freshness tolerance."""

    def __init__(
        self,
        provider: LocationProvider | None,
        *,
        high_accuracy: bool = True,
        timeout_seconds: float = 15,
        max_cache_age_seconds: float = 10,
        fallback: Coordinate = FALLBACK_COORDINATE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._provider = provider
        self._high_accuracy = high_accuracy
        self._timeout_seconds = timeout_seconds
        self._max_cache_age_seconds = max_cache_age_seconds
        self._fallback = fallback
        self._clock = clock
        self._last_fix: Coordinate | None = None
        self._last_fix_at: float | None = None

    @classmethod
    def from_settings(cls, provider: LocationProvider | None, cfg: PositionSettings) -> "PositionSource":
        fb = cfg.fallback
        return cls(
            provider,
            high_accuracy=cfg.high_accuracy,
            timeout_seconds=cfg.timeout_seconds,
            max_cache_age_seconds=cfg.max_cache_age_seconds,
            fallback=Coordinate(
                latitude=fb.latitude, longitude=fb.longitude, altitude=fb.altitude, accuracy=fb.accuracy
            ),
        )

    @property
    def provider(self) -> LocationProvider | None:
        return self._provider

    @property
    def fallback(self) -> Coordinate:
        return self._fallback

    def _cached_fix(self) -> Coordinate | None:
        if self._last_fix is None or self._last_fix_at is None:
            return None
        if self._clock() - self._last_fix_at > self._max_cache_age_seconds:
            return None
        return self._last_fix

    def _fallback_reading(self, reason: str, *, exc_info: bool = False) -> PositionReading:
        logger.warning("%s. Using fallback coordinates.", reason, exc_info=exc_info)
        return PositionReading(coordinate=self._fallback, source="fallback", error=reason)

    async def read(self) -> PositionReading:
        """Read a position; every failure becomes a fallback reading."""
        cached = self._cached_fix()
        if cached is not None:
            return PositionReading(coordinate=cached, source="cache")

        if self._provider is None:
            return self._fallback_reading("Geolocation not supported")

        try:
            coord = await asyncio.wait_for(
                self._provider.read(high_accuracy=self._high_accuracy),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._fallback_reading(f"Geolocation timed out after {self._timeout_seconds:g}s")
        except PositionPermissionDenied as e:
            return self._fallback_reading(f"Geolocation permission denied ({e})")
        except PositionUnavailable as e:
            return self._fallback_reading(f"Geolocation unavailable ({e})")
        except Exception as e:  # noqa: BLE001 - any provider failure must fall back
            return self._fallback_reading(f"Geolocation provider failed ({e!r})", exc_info=True)

        self._last_fix = coord
        self._last_fix_at = self._clock()
        return PositionReading(coordinate=coord, source="live")

    async def current_position(self) -> Coordinate:
        return (await self.read()).coordinate
