from __future__ import annotations


# Overrides come from JSON payloads (dict-like objects), so typing stays flexible
# and we raise clear errors when users send unexpected shapes.
from typing import Any, Mapping

from trackerkeeper.config.settings import Settings

"""
Runtime settings overrides (safe subset).

The settings form of the web UI sends new values for the monitoring knobs while a
session is running. This module:
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic so non-positive range/interval values are rejected.

Position provider selection, timeouts and the fallback coordinate are deployment
concerns and cannot be changed from the UI.
"""

# A value of True means "allow any keys under this subtree".
# A nested dict means "only allow the listed keys, recursively".
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "monitoring": {
        "max_range_meters": True,
        "update_interval_minutes": True,
        "map_api_key": True,
        "drift_magnitude": True,
    },
}

# Flat field names accepted by the settings form, mapped onto the settings tree.
FORM_FIELDS: dict[str, tuple[str, str]] = {
    "max_range_meters": ("monitoring", "max_range_meters"),
    "update_interval_minutes": ("monitoring", "update_interval_minutes"),
    "map_api_key": ("monitoring", "map_api_key"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    # Never mutate `base`; it may come from the cached settings object.
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed_tree:
            dotted_path = ".".join((*path, key))
            raise ValueError(
                f"settings_overrides contains a disallowed key: '{dotted_path}'"
            )

        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        if not isinstance(value, Mapping):
            dotted_path = ".".join((*path, key))
            raise ValueError(
                f"settings_overrides key '{dotted_path}' must be a mapping"
            )

        filtered[key] = _filter_overrides(
            value, allowed_tree=allowed, path=(*path, key)
        )
    return filtered


def form_to_overrides(form: Mapping[str, Any]) -> dict[str, Any]:
    """Translate flat settings-form fields into a nested override payload.

    Missing or `None` fields are left unchanged.
    """
    out: dict[str, Any] = {}
    for field_name, value in form.items():
        if value is None:
            continue
        if field_name not in FORM_FIELDS:
            raise ValueError(f"Unknown settings field: '{field_name}'")
        section, key = FORM_FIELDS[field_name]
        out.setdefault(section, {})[key] = value
    return out


def apply_settings_overrides(
    settings: Settings, overrides: Mapping[str, Any] | None
) -> Settings:
    if not overrides:
        return settings

    safe_overrides = _filter_overrides(
        overrides, allowed_tree=ALLOWED_SETTINGS_OVERRIDES_TREE
    )
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)

    # Pydantic's ValidationError subclasses ValueError, so callers handle one type.
    return Settings.model_validate(merged_payload)
