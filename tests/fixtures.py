"""
tests/fixtures.py

Shared test data, fake platform collaborators and helpers.
All tests must use these fixtures instead of hardcoding test values.
"""

import asyncio
import queue
from typing import AsyncIterator, Callable, Optional

import serial

from common.schemas import DeviceIdentity, HapticCommand, LocationSample, Reading
from device.adapter import BondedDevice, PermissionKind

# ── Test identity ───────────────────────────────────────────

TEST_SYSTEM_NAME: str = "Android-50"
TEST_DEVICE_ALIAS: str = "UserID-7-SmartWatchID-3"
TEST_ANDROID_ID: str = "50"
TEST_USER_ID: str = "7"
TEST_WATCH_ID: str = "3"

ANNOUNCE_HEART_RATE: bytes = b"Monitoring:HeartRate\n"


def build_identity(
    android_id: str = TEST_ANDROID_ID,
    user_id: str = TEST_USER_ID,
    watch_id: str = TEST_WATCH_ID,
) -> DeviceIdentity:
    return DeviceIdentity(android_id=android_id, user_id=user_id, watch_id=watch_id)


def build_heart_rate_line(
    value: str = "72",
    android_id: str = TEST_ANDROID_ID,
    user_id: str = TEST_USER_ID,
    watch_id: str = TEST_WATCH_ID,
) -> str:
    """Build an inbound heart-rate line in the watch's key order."""
    return (
        f"MonitoringType:HeartRate,AndroidID:{android_id},UserID:{user_id},"
        f"SmartWatchID:{watch_id},Value:{value}"
    )


def build_reading(value: int = 72) -> Reading:
    return Reading(
        value=value,
        identity=build_identity(),
        raw={
            "MonitoringType": "HeartRate",
            "AndroidID": TEST_ANDROID_ID,
            "UserID": TEST_USER_ID,
            "SmartWatchID": TEST_WATCH_ID,
            "Value": str(value),
        },
    )


def build_location(
    lat: float = 39.9042,
    lon: float = 116.4074,
    accuracy_m: Optional[float] = 10.0,
) -> LocationSample:
    return LocationSample(lat=lat, lon=lon, accuracy_m=accuracy_m)


def build_haptic_command(
    intensity: int = 2,
    pulses: int = 3,
    duration_ms: int = 250,
    interval_ms: int = 500,
) -> HapticCommand:
    return HapticCommand(
        intensity=intensity,
        pulses=pulses,
        duration_ms=duration_ms,
        interval_ms=interval_ms,
    )


def build_watch(
    device_id: str = "/dev/rfcomm0",
    display_name: str = "Galaxy Watch5 Pro",
    alias: Optional[str] = TEST_DEVICE_ALIAS,
) -> BondedDevice:
    return BondedDevice(id=device_id, display_name=display_name, alias=alias)


# ── Fake collaborators ──────────────────────────────────────

_READ_TIMEOUT_S: float = 5.0


class FakeStream:
    """In-memory stream; readline blocks until a line is fed, EOF or close."""

    def __init__(self, fail_write: bool = False) -> None:
        self._inbox: "queue.Queue[bytes | BaseException]" = queue.Queue()
        self.written: list[bytes] = []
        self.closed = False
        self.fail_write = fail_write

    def feed(self, line: str) -> None:
        self._inbox.put(line.encode("utf-8") + b"\n")

    def hang_up(self) -> None:
        self._inbox.put(b"")

    def break_with(self, error: BaseException) -> None:
        self._inbox.put(error)

    def readline(self) -> bytes:
        try:
            item = self._inbox.get(timeout=_READ_TIMEOUT_S)
        except queue.Empty:
            return b""
        if isinstance(item, BaseException):
            raise item
        return item

    def write(self, data: bytes) -> int:
        if self.closed:
            raise serial.PortNotOpenError()
        if self.fail_write:
            raise serial.SerialException("write failed")
        self.written.append(data)
        return len(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put(b"")


class FakePlatform:
    """DevicePlatform that hands out FakeStreams."""

    def __init__(
        self,
        devices: Optional[list[BondedDevice]] = None,
        system_name: Optional[str] = TEST_SYSTEM_NAME,
    ) -> None:
        self.devices = devices if devices is not None else [build_watch()]
        self.permissions = {PermissionKind.BLUETOOTH: True, PermissionKind.LOCATION: True}
        self.open_error: Optional[BaseException] = None
        self.fail_write = False
        self.opened: list[str] = []
        self.streams: list[FakeStream] = []
        self._system_name = system_name

    def list_bonded_devices(self) -> list[BondedDevice]:
        return list(self.devices)

    def open_stream(self, device_id: str) -> FakeStream:
        self.opened.append(device_id)
        if self.open_error is not None:
            raise self.open_error
        stream = FakeStream(fail_write=self.fail_write)
        self.streams.append(stream)
        return stream

    def has_required_permission(self, kind: PermissionKind) -> bool:
        return self.permissions[kind]

    def system_name(self) -> Optional[str]:
        return self._system_name

    @property
    def last_stream(self) -> FakeStream:
        return self.streams[-1]


class FakeLocationSource:
    """LocationSource whose batches are pushed by the test."""

    def __init__(self, last: Optional[LocationSample] = None) -> None:
        self.last = last
        self.min_interval_ms: Optional[int] = None
        self._batches: "asyncio.Queue[list[LocationSample]]" = asyncio.Queue()

    def push(self, batch: list[LocationSample]) -> None:
        self._batches.put_nowait(batch)

    def get_last_location(self) -> Optional[LocationSample]:
        return self.last

    async def subscribe_location_updates(
        self, min_interval_ms: int
    ) -> AsyncIterator[list[LocationSample]]:
        self.min_interval_ms = min_interval_ms
        while True:
            yield await self._batches.get()


# ── Helpers ─────────────────────────────────────────────────

async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll `predicate` on the event loop until it holds or `timeout` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
