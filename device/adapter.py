"""
device/adapter.py

Platform collaborators consumed by the monitoring engine.

- DevicePlatform / LocationSource: the interfaces the core depends on
- SerialPlatform: pyserial implementation (bonded devices are the host's serial
  ports, e.g. Bluetooth RFCOMM bindings; streams open via serial_for_url)
- StaticLocationSource: replays a configured fix on a fixed cadence
"""

import asyncio
import os
from enum import Enum
from typing import AsyncIterator, NamedTuple, Optional, Protocol

import serial
import structlog
from serial.tools import list_ports

from common.constants import SERIAL_BAUDRATE, SERIAL_WRITE_TIMEOUT_S
from common.schemas import LocationSample
from config import settings

logger = structlog.get_logger(__name__)


class PermissionKind(str, Enum):
    BLUETOOTH = "bluetooth"
    LOCATION = "location"


class BondedDevice(NamedTuple):
    id: str
    display_name: str
    alias: Optional[str] = None


class Stream(Protocol):
    """Blocking byte stream to the device."""

    def readline(self) -> bytes: ...

    def write(self, data: bytes) -> Optional[int]: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


class DevicePlatform(Protocol):
    def list_bonded_devices(self) -> list[BondedDevice]: ...

    def open_stream(self, device_id: str) -> Stream: ...

    def has_required_permission(self, kind: PermissionKind) -> bool: ...

    def system_name(self) -> Optional[str]: ...


class LocationSource(Protocol):
    def get_last_location(self) -> Optional[LocationSample]: ...

    def subscribe_location_updates(
        self, min_interval_ms: int
    ) -> AsyncIterator[list[LocationSample]]: ...


class SerialPlatform:
    """DevicePlatform backed by pyserial."""

    def __init__(
        self,
        port: str = "",
        baudrate: int = SERIAL_BAUDRATE,
        system_name: Optional[str] = None,
        alias_override: str = "",
        location_enabled: bool = False,
    ) -> None:
        self._port = port
        self._baudrate = baudrate
        self._system_name = system_name
        self._alias_override = alias_override
        self._location_enabled = location_enabled

    @classmethod
    def from_settings(cls) -> "SerialPlatform":
        return cls(
            port=settings.serial_port,
            baudrate=settings.serial_baudrate,
            system_name=settings.system_name,
            alias_override=settings.device_alias,
            location_enabled=settings.location_enabled,
        )

    def list_bonded_devices(self) -> list[BondedDevice]:
        devices = [
            BondedDevice(
                id=port.device,
                display_name=port.description or port.name or port.device,
                alias=self._alias_override or port.product or port.description,
            )
            for port in list_ports.comports()
        ]
        # A configured port (possibly a URL such as socket://) is always offered first.
        if self._port and all(device.id != self._port for device in devices):
            devices.insert(
                0,
                BondedDevice(
                    id=self._port,
                    display_name=self._port,
                    alias=self._alias_override or None,
                ),
            )
        logger.debug("bonded_devices_listed", count=len(devices))
        return devices

    def open_stream(self, device_id: str) -> Stream:
        return serial.serial_for_url(
            device_id,
            baudrate=self._baudrate,
            timeout=None,
            write_timeout=SERIAL_WRITE_TIMEOUT_S,
        )

    def has_required_permission(self, kind: PermissionKind) -> bool:
        if kind is PermissionKind.LOCATION:
            return self._location_enabled
        if self._port and os.path.exists(self._port):
            return os.access(self._port, os.R_OK | os.W_OK)
        return True

    def system_name(self) -> Optional[str]:
        return self._system_name


class StaticLocationSource:
    """LocationSource that reports one configured fix per update cycle."""

    def __init__(
        self,
        lat: Optional[float],
        lon: Optional[float],
        accuracy_m: Optional[float] = None,
        interval_ms: int = 0,
    ) -> None:
        self._sample: Optional[LocationSample] = None
        if lat is not None and lon is not None:
            self._sample = LocationSample(lat=lat, lon=lon, accuracy_m=accuracy_m)
        self._interval_ms = interval_ms

    @classmethod
    def from_settings(cls) -> "StaticLocationSource":
        return cls(
            lat=settings.location_lat,
            lon=settings.location_lon,
            accuracy_m=settings.location_accuracy_m,
            interval_ms=settings.location_update_interval_ms,
        )

    def get_last_location(self) -> Optional[LocationSample]:
        return self._sample

    async def subscribe_location_updates(
        self, min_interval_ms: int
    ) -> AsyncIterator[list[LocationSample]]:
        if self._sample is None:
            logger.warning("location_source_unconfigured")
            return
        interval_s = max(self._interval_ms, min_interval_ms) / 1000.0
        while True:
            await asyncio.sleep(interval_s)
            yield [self._sample]
