"""
common/errors.py

Exception taxonomy for the monitoring engine.

- PermissionDenied: fatal for the current operation, surfaced, never retried
- DecodeError and subclasses: per-line, logged and skipped
- TransportError: device link failures, trigger an unbounded reconnect
- NetworkError and subclasses: backend failures, retried per RetryPolicy
"""

from typing import Iterable


class MonitoringError(Exception):
    """Base class for every error raised by the monitoring engine."""


class PermissionDenied(MonitoringError):
    """A platform permission required for the operation is missing."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"missing {kind} permission")
        self.kind = kind


# ── Protocol decoding ────────────────────────────────────────

class DecodeError(MonitoringError):
    """An inbound line could not be turned into a Reading."""

    reason = "decode_error"

    def __init__(self, line: str, detail: str = "") -> None:
        super().__init__(detail or f"{self.reason}: {line!r}")
        self.line = line


class Unrecognized(DecodeError):
    reason = "unrecognized"


class UnresolvedIdentity(DecodeError):
    reason = "unresolved_identity"

    def __init__(self, line: str, fields: Iterable[str]) -> None:
        self.fields = list(fields)
        super().__init__(line, f"unrecoverable unknown fields: {', '.join(self.fields)}")


class MissingValue(DecodeError):
    reason = "missing_value"


class InvalidFormat(DecodeError):
    reason = "invalid_format"


# ── Device link ──────────────────────────────────────────────

class TransportError(MonitoringError):
    """The byte-stream to the device failed to open, or broke."""


class DeviceNotFound(TransportError):
    """No bonded device matched the discovery filter."""


# ── Backend ──────────────────────────────────────────────────

class NetworkError(MonitoringError):
    """A backend exchange failed."""


class NetworkTimeout(NetworkError):
    pass


class UnknownMode(NetworkError):
    pass


class BackendUnavailable(NetworkError):
    pass


class RetriesExhausted(NetworkError):
    """A bounded retry budget ran out."""
