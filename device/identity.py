"""
device/identity.py

Recovers unknown identity fields from auxiliary hints:
- the host's system name ("Android-<digits>") for android_id
- the bonded device alias ("UserID-<digits>-SmartWatchID-<digits>") for user_id/watch_id

A field that stays unknown is a valid outcome; callers decide whether it blocks forwarding.
"""

import re
from typing import NamedTuple, Optional

import structlog

from common.schemas import DeviceIdentity

logger = structlog.get_logger(__name__)

_SYSTEM_NAME_PATTERN = re.compile(r"Android-([0-9]+)")
_ALIAS_PATTERN = re.compile(r"UserID-([0-9]+)-SmartWatchID-([0-9]+)")


class Resolution(NamedTuple):
    identity: DeviceIdentity
    unresolved: bool


def resolve(
    identity: DeviceIdentity,
    system_name_hint: Optional[str],
    device_alias_hint: Optional[str],
) -> Resolution:
    """
    Fill unknown identity fields from the hints.

    Hints must match their pattern exactly; a partial alias match recovers nothing.
    Known fields are never overwritten. `unresolved` is True when a field that was
    unknown on input is still unknown on output.
    """
    unknown_before = set(identity.unknown_fields())
    if not unknown_before:
        return Resolution(identity, False)

    updates: dict[str, str] = {}

    if "android_id" in unknown_before:
        match = _SYSTEM_NAME_PATTERN.fullmatch(system_name_hint or "")
        if match:
            updates["android_id"] = match.group(1)
            logger.debug("android_id_recovered", android_id=match.group(1))
        else:
            logger.warning("android_id_unrecoverable", system_name=system_name_hint)

    if unknown_before & {"user_id", "watch_id"}:
        match = _ALIAS_PATTERN.fullmatch(device_alias_hint or "")
        if match:
            user_id, watch_id = match.groups()
            if "user_id" in unknown_before:
                updates["user_id"] = user_id
            if "watch_id" in unknown_before:
                updates["watch_id"] = watch_id
            logger.debug("alias_ids_recovered", user_id=user_id, watch_id=watch_id)
        else:
            logger.warning("alias_ids_unrecoverable", alias=device_alias_hint)

    resolved = identity.model_copy(update=updates)
    still_unknown = unknown_before & set(resolved.unknown_fields())
    return Resolution(resolved, bool(still_unknown))
