"""
Companion (watch) position simulator.

A real build would stream the watch position over the companion-device data layer.
This demo derives it from the primary fix instead: each axis drifts by a uniform
random offset in `[-drift/2, +drift/2]` degrees.
"""

from __future__ import annotations

import random
from typing import Protocol

from trackerkeeper.domain.models import Coordinate

DEFAULT_ALTITUDE_M = 10.0
COMPANION_ACCURACY_M = 5.0
ALTITUDE_JITTER_MAX = 2.0


class RandomSource(Protocol):
    def random(self) -> float: ...


def simulate_companion(
    primary: Coordinate,
    drift_magnitude: float,
    rng: RandomSource | None = None,
    *,
    default_altitude: float = DEFAULT_ALTITUDE_M,
    accuracy: float = COMPANION_ACCURACY_M,
    altitude_jitter_max: float = ALTITUDE_JITTER_MAX,
) -> Coordinate:
    """Return a synthetic companion fix near `primary`.

    Draw order from `rng` is latitude, longitude, then altitude jitter (only when the
    primary fix has an altitude).
    """
    rng = rng if rng is not None else random
    lat_offset = (rng.random() - 0.5) * drift_magnitude
    lon_offset = (rng.random() - 0.5) * drift_magnitude

    if primary.altitude is not None:
        altitude = primary.altitude + rng.random() * altitude_jitter_max
    else:
        altitude = default_altitude

    return Coordinate(
        latitude=primary.latitude + lat_offset,
        longitude=primary.longitude + lon_offset,
        altitude=altitude,
        accuracy=accuracy,
    )
