"""
common/schemas.py

Pydantic data models shared across the device link, backend client and orchestrator.
- DeviceIdentity: Android/user/watch identifiers attached to every sample
- Reading: a validated heart-rate reading decoded from the watch
- LocationSample: a location fix forwarded in celestial monitoring modes
- HapticCommand: vibration instruction relayed back to the watch
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from common.constants import UNKNOWN_ANDROID, UNKNOWN_USER, UNKNOWN_WATCH


class MonitoringMode(str, Enum):
    """Backend-selected monitoring behavior."""

    HEART_RATE = "HeartRate"
    SUN_AZIMUTH = "SunAzimuth"
    MOON_AZIMUTH = "MoonAzimuth"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MonitoringMode":
        """Map a backend string to a mode; anything unrecognized is UNKNOWN."""
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.UNKNOWN

    @property
    def is_celestial(self) -> bool:
        return self in (MonitoringMode.SUN_AZIMUTH, MonitoringMode.MOON_AZIMUTH)


class ConnectionState(str, Enum):
    """Device link connection states."""

    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    FAILED = "Failed"


class DeviceIdentity(BaseModel):
    """Identifiers tagged on a reading or location sample.

    Unknown fields hold the sentinel the watch uses for them on the wire.
    """

    model_config = ConfigDict(frozen=True)

    android_id: str = UNKNOWN_ANDROID
    user_id: str = UNKNOWN_USER
    watch_id: str = UNKNOWN_WATCH

    def unknown_fields(self) -> list[str]:
        unknown: list[str] = []
        if self.android_id == UNKNOWN_ANDROID:
            unknown.append("android_id")
        if self.user_id == UNKNOWN_USER:
            unknown.append("user_id")
        if self.watch_id == UNKNOWN_WATCH:
            unknown.append("watch_id")
        return unknown

    @property
    def is_resolved(self) -> bool:
        return not self.unknown_fields()

    def to_payload(self) -> dict[str, str]:
        """Wire representation used by the location endpoints."""
        return {
            "userId": self.user_id,
            "smartWatchId": self.watch_id,
            "androidId": self.android_id,
        }


class Reading(BaseModel):
    """A heart-rate reading that passed decoding and identity recovery."""

    kind: MonitoringMode = MonitoringMode.HEART_RATE
    value: int = Field(ge=0)
    identity: DeviceIdentity
    raw: dict[str, str]  # decoded key/value map, posted as-is


class LocationSample(BaseModel):
    """A single location fix."""

    lat: float
    lon: float
    accuracy_m: Optional[float] = None  # uncertainty radius, smaller is better
    identity: DeviceIdentity = Field(default_factory=DeviceIdentity)

    def to_payload(self) -> dict[str, Any]:
        return {"lat": self.lat, "lon": self.lon, **self.identity.to_payload()}


class HapticCommand(BaseModel):
    """Vibration pattern returned by the backend."""

    intensity: int = 0
    pulses: int = 0
    duration_ms: int = 0
    interval_ms: int = 0

    @property
    def is_noop(self) -> bool:
        return self.pulses <= 0

    @classmethod
    def from_response(cls, body: Any) -> "HapticCommand":
        """Build a command from a backend response body.

        Missing or non-integer fields default to 0, meaning no haptic action.
        """
        if not isinstance(body, dict):
            return cls()
        return cls(
            intensity=_as_int(body.get("intensity")),
            pulses=_as_int(body.get("pulses")),
            duration_ms=_as_int(body.get("duration")),
            interval_ms=_as_int(body.get("interval")),
        )


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
