"""
API routes.

Endpoints:
- GET  `/api/state`: current session snapshot plus dashboard hints.
- GET  `/api/map`: marker pair + range circle for the map front-end.
- GET  `/api/settings`, PUT `/api/settings`: monitoring knobs (API key redacted).
- POST `/api/location`: the browser reports a geolocation fix or error.
- POST `/api/refresh`, `/api/simulate-movement`, `/api/alert/acknowledge`.
- GET  `/api/platform`, POST `/api/pairing/scan|connect|disconnect`: simulated pairing.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from trackerkeeper.domain.models import Coordinate, MapView, Platform
from trackerkeeper.pairing.platform import detect_platform
from trackerkeeper.pairing.service import PairingError
from trackerkeeper.runtime import Runtime

router = APIRouter()


class SettingsUpdate(BaseModel):
    max_range_meters: float | None = None
    update_interval_minutes: float | None = None
    map_api_key: str | None = None


class LocationReport(BaseModel):
    """Either a fix (latitude/longitude) or a W3C geolocation error code."""

    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    accuracy: float | None = None
    error_code: int | None = Field(default=None, ge=1, le=3)
    error_message: str = ""


class ScanRequest(BaseModel):
    platform: Platform


class ConnectRequest(BaseModel):
    platform: Platform
    device_name: str = Field(..., min_length=1)


def _runtime(request: Request) -> Runtime:
    return request.app.state.runtime


@router.get("/api/state")
def get_state(request: Request) -> dict[str, Any]:
    return _runtime(request).status()


@router.get("/api/map", response_model=MapView)
def get_map(request: Request) -> MapView:
    return _runtime(request).map_view()


@router.get("/api/settings")
def get_public_settings(request: Request) -> dict[str, Any]:
    """Return monitoring settings for the web UI (API key redacted)."""
    return _runtime(request).public_settings()


@router.put("/api/settings")
async def put_settings(request: Request, payload: SettingsUpdate) -> dict[str, Any]:
    runtime = _runtime(request)
    try:
        runtime.update_settings(payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return runtime.public_settings()


@router.post("/api/location", status_code=202)
def post_location(request: Request, payload: LocationReport) -> dict[str, Any]:
    runtime = _runtime(request)
    try:
        if payload.error_code is not None:
            runtime.report_location_error(payload.error_code, payload.error_message)
            return {"accepted": "error"}
        if payload.latitude is None or payload.longitude is None:
            raise HTTPException(status_code=422, detail="latitude and longitude are required")
        runtime.report_location(
            Coordinate(
                latitude=payload.latitude,
                longitude=payload.longitude,
                altitude=payload.altitude,
                accuracy=payload.accuracy,
            )
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return {"accepted": "fix"}


@router.post("/api/refresh")
async def post_refresh(request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    state = await runtime.refresh()
    return {"refreshed": state is not None, **runtime.status()}


@router.post("/api/simulate-movement")
async def post_simulate_movement(request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    state = await runtime.simulate_movement()
    return {"refreshed": state is not None, **runtime.status()}


@router.post("/api/alert/acknowledge")
def post_acknowledge_alert(request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    runtime.acknowledge_alert()
    return runtime.status()


@router.get("/api/platform")
def get_platform(request: Request) -> dict[str, Any]:
    """Platform hint for the pairing dialog, detected from the User-Agent."""
    platform = detect_platform(request.headers.get("user-agent"))
    return {"platform": platform.value}


@router.post("/api/pairing/scan")
async def post_scan(request: Request, payload: ScanRequest) -> dict[str, Any]:
    try:
        devices = await _runtime(request).pairing.scan(payload.platform)
    except PairingError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"platform": payload.platform.value, "devices": devices}


@router.post("/api/pairing/connect", status_code=202)
async def post_connect(request: Request, payload: ConnectRequest) -> dict[str, Any]:
    runtime = _runtime(request)
    try:
        runtime.pairing.begin_connect(payload.platform, payload.device_name)
    except PairingError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return runtime.status()


@router.post("/api/pairing/disconnect")
async def post_disconnect(request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    runtime.pairing.disconnect()
    return runtime.status()
