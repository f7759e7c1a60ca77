"""
monitor/events.py

Messages consumed by the orchestrator's control queue.
Timer firings, task completions and location batches all arrive as one of these;
device link events are defined in device/events.py.
"""

from dataclasses import dataclass
from typing import Optional

from common.schemas import HapticCommand, LocationSample, MonitoringMode
from device.adapter import BondedDevice


@dataclass(frozen=True)
class FetchModeRequested:
    pass


@dataclass(frozen=True)
class ModeFetched:
    mode: MonitoringMode


@dataclass(frozen=True)
class ModeFetchFailed:
    error: BaseException


@dataclass(frozen=True)
class ConnectRequested:
    pass


@dataclass(frozen=True)
class DeviceConnected:
    device: Optional[BondedDevice]  # None when the attempt was superseded


@dataclass(frozen=True)
class DeviceConnectFailed:
    error: BaseException


@dataclass(frozen=True)
class LocationBatch:
    samples: tuple[LocationSample, ...]


@dataclass(frozen=True)
class DispatchCompleted:
    command: HapticCommand


@dataclass(frozen=True)
class DispatchFailed:
    error: BaseException
