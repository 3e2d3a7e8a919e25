from __future__ import annotations

import re

from trackerkeeper.domain.models import Platform

_IOS_RE = re.compile(r"iPad|iPhone|iPod")
_ANDROID_RE = re.compile(r"android", re.IGNORECASE)

_PROTOCOL_STATUS = {
    Platform.IOS: (
        "Running iOS Protocols: Syncing via WatchConnectivity Framework. "
        "Apple Watch location stream active."
    ),
    Platform.ANDROID: (
        "Running Android Protocols: Syncing via Google Play Services Data Layer. "
        "Wear OS location stream active."
    ),
}


def detect_platform(user_agent: str | None) -> Platform:
    """Guess the primary device platform from a User-Agent header (hint only)."""
    if not user_agent:
        return Platform.UNKNOWN
    if _IOS_RE.search(user_agent):
        return Platform.IOS
    if _ANDROID_RE.search(user_agent):
        return Platform.ANDROID
    return Platform.UNKNOWN


def protocol_status(platform: Platform) -> str:
    return _PROTOCOL_STATUS.get(platform, "Waiting for device selection...")
