"""
Domain models (Pydantic).

These types are the contract between the monitor core and its consumers
(API, CLI, the map front-end):
- positions (`Coordinate`)
- connection lifecycle (`ConnectionPhase`, `Platform`)
- the per-session snapshot (`SessionState`)

`SessionState` is frozen: the monitor publishes a fresh snapshot on every update
instead of mutating fields in place.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    """A position fix in decimal degrees. No range validation is applied."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    altitude: float | None = None
    accuracy: float | None = None


class ConnectionPhase(str, Enum):
    DISCONNECTED = "Disconnected"
    SEARCHING = "Searching..."
    CONNECTED = "Connected"


class Platform(str, Enum):
    IOS = "iOS"
    ANDROID = "Android"
    UNKNOWN = "Unknown"


PositionSourceName = Literal["live", "cache", "fallback"]


class SessionState(BaseModel):
    """Snapshot of one tracking session."""

    model_config = ConfigDict(frozen=True)

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    platform: Platform = Platform.UNKNOWN
    device_name: str | None = None

    primary_position: Coordinate | None = None
    companion_position: Coordinate | None = None
    distance_meters: float | None = Field(default=None, ge=0)
    is_out_of_range: bool = False
    alert_acknowledged: bool = False
    last_updated_at: datetime | None = None
    position_source: PositionSourceName | None = None


class MapView(BaseModel):
    """Payload for the map front-end: marker pair plus the range circle."""

    primary_position: Coordinate | None
    companion_position: Coordinate | None
    max_range_meters: float
    map_api_key_configured: bool
