"""
device/events.py

Events the device link posts to its owner's control queue.
"""

from dataclasses import dataclass

from common.errors import DecodeError, TransportError
from common.schemas import Reading


@dataclass(frozen=True)
class ReadingReceived:
    reading: Reading


@dataclass(frozen=True)
class LineRejected:
    error: DecodeError


@dataclass(frozen=True)
class LinkLost:
    error: TransportError


LinkEvent = ReadingReceived | LineRejected | LinkLost
