# src/trackerkeeper/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/trackerkeeper/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `TRACKERKEEPER_MAP_API_KEY`, `TRACKERKEEPER_LOG_LEVEL`)
- an external YAML file via `TRACKERKEEPER_CONFIG_PATH`

Design rule:
- Tuning knobs (range, polling interval, drift, timeouts) live in YAML, not in the monitor code.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal
from trackerkeeper.core.env import load_dotenv_if_present, resolve_project_path

import yaml
from pydantic import BaseModel, Field


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `trackerkeeper.config`."""
    text = resources.files("trackerkeeper.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "TrackerKeeper"
    timezone: str = "UTC"
    http_timeout_seconds: float = 10
    log_level: str = "INFO"


class MonitoringSettings(BaseModel):
    """Knobs of the proximity monitor. Non-positive range/interval values are rejected."""

    max_range_meters: float = Field(50, gt=0)
    update_interval_minutes: float = Field(1, gt=0)
    map_api_key: str = ""
    drift_magnitude: float = Field(0.0001, ge=0)
    drift_step: float = Field(0.001, gt=0)

    @property
    def update_interval_seconds(self) -> float:
        return self.update_interval_minutes * 60


class FallbackCoordinateSettings(BaseModel):
    latitude: float = 40.7128
    longitude: float = -74.0060
    altitude: float | None = 10
    accuracy: float | None = 100


class IpLookupSettings(BaseModel):
    url: str = "https://ipapi.co/json/"
    latitude_field: str = "latitude"
    longitude_field: str = "longitude"
    accuracy_m: float = 5000


class PositionSettings(BaseModel):
    provider: Literal["reported", "ip", "static", "none"] = "reported"
    high_accuracy: bool = True
    timeout_seconds: float = Field(15, gt=0)
    max_cache_age_seconds: float = Field(10, ge=0)
    fallback: FallbackCoordinateSettings = Field(default_factory=FallbackCoordinateSettings)
    ip_lookup: IpLookupSettings = Field(default_factory=IpLookupSettings)


class CompanionSettings(BaseModel):
    accuracy_m: float = 5
    default_altitude_m: float = 10
    altitude_jitter_max: float = Field(2, ge=0)


class PairingSettings(BaseModel):
    discovery_delay_seconds: float = Field(2.0, ge=0)
    handshake_delay_seconds: float = Field(1.5, ge=0)
    devices: dict[Literal["iOS", "Android"], list[str]] = Field(default_factory=dict)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    position: PositionSettings = Field(default_factory=PositionSettings)
    companion: CompanionSettings = Field(default_factory=CompanionSettings)
    pairing: PairingSettings = Field(default_factory=PairingSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("TRACKERKEEPER_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    map_api_key = os.getenv("TRACKERKEEPER_MAP_API_KEY")
    if map_api_key:
        data.setdefault("monitoring", {})["map_api_key"] = map_api_key

    provider = os.getenv("TRACKERKEEPER_POSITION_PROVIDER")
    if provider:
        data.setdefault("position", {})["provider"] = provider

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("TRACKERKEEPER_CONFIG_PATH")
    raw = _read_yaml_file(resolve_project_path(config_path)) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
