"""
device/protocol.py

Line protocol spoken with the watch: UTF-8, newline-terminated,
comma-separated key:value segments.

Inbound:  MonitoringType:HeartRate,AndroidID:<id>,UserID:<id>,SmartWatchID:<id>,Value:<int>
Outbound: Monitoring:<mode>
          Vibrate:<intensity>,<pulses>,<durationMs>,<intervalMs>
"""

import re
from typing import Optional

from common.constants import (
    HEART_RATE_TAG,
    KEY_ANDROID_ID,
    KEY_USER_ID,
    KEY_VALUE,
    KEY_WATCH_ID,
    LINE_TERMINATOR,
    MODE_ANNOUNCEMENT_PREFIX,
    UNKNOWN_ANDROID,
    UNKNOWN_USER,
    UNKNOWN_WATCH,
    VIBRATE_PREFIX,
)
from common.errors import InvalidFormat, MissingValue, Unrecognized, UnresolvedIdentity
from common.schemas import DeviceIdentity, HapticCommand, MonitoringMode, Reading
from device.identity import resolve

_INTEGER_PATTERN = re.compile(r"[0-9]+")


def parse_fields(line: str) -> dict[str, str]:
    """Split a line into an ordered key/value map.

    Segments without a ':' are ignored; a repeated key keeps its last value.
    """
    fields: dict[str, str] = {}
    for segment in line.split(","):
        key, sep, value = segment.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        fields[key] = value.strip()
    return fields


def decode_line(
    line: str,
    system_name_hint: Optional[str] = None,
    device_alias_hint: Optional[str] = None,
) -> Reading:
    """
    Decode one inbound line into a Reading.

    Raises Unrecognized, UnresolvedIdentity, MissingValue or InvalidFormat.
    Each applies to this line only.
    """
    line = line.strip()
    if not line.startswith(HEART_RATE_TAG):
        raise Unrecognized(line)

    fields = parse_fields(line)
    identity = DeviceIdentity(
        android_id=fields.get(KEY_ANDROID_ID) or UNKNOWN_ANDROID,
        user_id=fields.get(KEY_USER_ID) or UNKNOWN_USER,
        watch_id=fields.get(KEY_WATCH_ID) or UNKNOWN_WATCH,
    )

    if not identity.is_resolved:
        identity, unresolved = resolve(identity, system_name_hint, device_alias_hint)
        if unresolved:
            raise UnresolvedIdentity(line, identity.unknown_fields())
        fields[KEY_ANDROID_ID] = identity.android_id
        fields[KEY_USER_ID] = identity.user_id
        fields[KEY_WATCH_ID] = identity.watch_id

    raw_value = fields.get(KEY_VALUE)
    if raw_value is None:
        raise MissingValue(line)
    if not _INTEGER_PATTERN.fullmatch(raw_value):
        raise InvalidFormat(line, f"invalid heart rate: {raw_value!r}")

    return Reading(value=int(raw_value), identity=identity, raw=fields)


def encode_haptic_command(command: HapticCommand) -> str:
    return (
        f"{VIBRATE_PREFIX}{command.intensity},{command.pulses},"
        f"{command.duration_ms},{command.interval_ms}{LINE_TERMINATOR}"
    )


def encode_mode_announcement(mode: MonitoringMode) -> str:
    return f"{MODE_ANNOUNCEMENT_PREFIX}{mode.value}{LINE_TERMINATOR}"
