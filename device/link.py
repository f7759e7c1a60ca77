"""
device/link.py

Device Link: sole owner of the byte stream to the companion watch.

State machine over ConnectionState:
    Disconnected/Failed --connect--> Connecting --ok--> Connected
                                     Connecting --error--> Failed
    Connected --EOF / I/O error--> Failed

The blocking read loop runs in a worker thread and marshals every line back
onto the event loop; events are posted to the owner's control queue.
The link never retries on its own.
"""

import asyncio
import errno
import time
from typing import Callable, Optional

import serial
import structlog

from common.constants import SPP_SERVICE_UUID
from common.errors import DecodeError, PermissionDenied, TransportError
from common.schemas import ConnectionState, MonitoringMode
from device.adapter import BondedDevice, DevicePlatform, PermissionKind, Stream
from device.events import LineRejected, LinkEvent, LinkLost, ReadingReceived
from device.protocol import decode_line, encode_mode_announcement

logger = structlog.get_logger(__name__)

_PERMISSION_ERRNOS = (errno.EACCES, errno.EPERM)


class DeviceLink:
    """Persistent line-oriented connection to one bonded device."""

    def __init__(
        self,
        platform: DevicePlatform,
        post: Callable[[LinkEvent], None],
    ) -> None:
        self._platform = platform
        self._post = post
        self._stream: Optional[Stream] = None
        self._device: Optional[BondedDevice] = None
        self._session = 0
        self.state = ConnectionState.DISCONNECTED
        self.last_seen: Optional[float] = None

    @property
    def session(self) -> int:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def device_alias(self) -> Optional[str]:
        return self._device.alias if self._device else None

    async def connect(self, device: BondedDevice, mode: MonitoringMode) -> bool:
        """
        Open the stream to `device` and announce `mode`.

        Returns True once Connected, False if a later connect or disconnect
        superseded this attempt. Raises PermissionDenied or TransportError.
        """
        self._session += 1
        session = self._session
        self._close_stream()

        if not self._platform.has_required_permission(PermissionKind.BLUETOOTH):
            self.state = ConnectionState.FAILED
            logger.error("device_permission_missing", device_id=device.id)
            raise PermissionDenied(PermissionKind.BLUETOOTH.value)

        self.state = ConnectionState.CONNECTING
        self._device = device
        logger.info(
            "device_connecting",
            device_id=device.id,
            device_name=device.display_name,
            service_uuid=SPP_SERVICE_UUID,
            mode=mode.value,
        )

        loop = asyncio.get_running_loop()
        opening = loop.run_in_executor(None, self._open_and_announce, device.id, mode)
        try:
            stream = await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(_close_if_opened)
            raise
        except Exception as exc:
            # Adapters are pluggable; any failure ends this attempt.
            if session == self._session:
                self.state = ConnectionState.FAILED
            logger.warning("device_connect_failed", device_id=device.id, error=str(exc))
            if _is_permission_error(exc):
                raise PermissionDenied(PermissionKind.BLUETOOTH.value) from exc
            raise TransportError(f"failed to connect to {device.id}: {exc}") from exc

        if session != self._session:
            logger.info("device_connect_superseded", device_id=device.id)
            _close_quietly(stream)
            return False

        self._stream = stream
        self.state = ConnectionState.CONNECTED
        self.last_seen = time.monotonic()
        loop.run_in_executor(None, self._read_lines, stream, session, loop)
        logger.info("device_connected", device_id=device.id, mode=mode.value)
        return True

    def send(self, data: bytes) -> bool:
        """Write `data` to the device. Returns False when not connected or on write failure."""
        stream = self._stream
        if self.state is not ConnectionState.CONNECTED or stream is None:
            logger.warning("device_send_skipped", reason="not_connected", state=self.state.value)
            return False
        try:
            stream.write(data)
            stream.flush()
        except (serial.SerialException, OSError) as exc:
            logger.error("device_send_failed", error=str(exc))
            self._on_stream_closed(self._session, exc)
            return False
        logger.debug("device_line_sent", line=data.decode("utf-8", errors="replace").strip())
        return True

    def send_line(self, line: str) -> bool:
        return self.send(line.encode("utf-8"))

    def disconnect(self) -> None:
        """Close the stream and invalidate any in-flight connect or read loop."""
        self._session += 1
        had_stream = self._stream is not None
        self._close_stream()
        self._device = None
        self.state = ConnectionState.DISCONNECTED
        if had_stream:
            logger.info("device_disconnected")

    # ── Worker thread ────────────────────────────────────────

    def _open_and_announce(self, device_id: str, mode: MonitoringMode) -> Stream:
        stream = self._platform.open_stream(device_id)
        try:
            stream.write(encode_mode_announcement(mode).encode("utf-8"))
            stream.flush()
        except BaseException:
            _close_quietly(stream)
            raise
        return stream

    def _read_lines(
        self,
        stream: Stream,
        session: int,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        error: Optional[BaseException] = None
        try:
            while True:
                data = stream.readline()
                if not data:
                    break
                loop.call_soon_threadsafe(self._on_line, session, data)
        except Exception as exc:  # reported to the control loop below
            error = exc
        try:
            loop.call_soon_threadsafe(self._on_stream_closed, session, error)
        except RuntimeError:
            # Event loop already closed during shutdown.
            pass

    # ── Event loop callbacks ─────────────────────────────────

    def _on_line(self, session: int, data: bytes) -> None:
        if session != self._session:
            return
        self.last_seen = time.monotonic()
        line = data.decode("utf-8", errors="replace").strip()
        if not line:
            return
        logger.debug("device_line_received", line=line)
        try:
            reading = decode_line(line, self._platform.system_name(), self.device_alias)
        except DecodeError as exc:
            logger.warning("device_line_rejected", reason=exc.reason, line=line)
            self._post(LineRejected(error=exc))
            return
        self._post(ReadingReceived(reading=reading))

    def _on_stream_closed(self, session: int, error: Optional[BaseException]) -> None:
        if session != self._session:
            return
        self._session += 1
        self._close_stream()
        self.state = ConnectionState.FAILED
        reason = str(error) if error else "end of stream"
        logger.warning("device_link_lost", reason=reason)
        self._post(LinkLost(error=TransportError(f"connection lost: {reason}")))

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        cancel_read = getattr(stream, "cancel_read", None)
        if cancel_read is not None:
            try:
                cancel_read()
            except (serial.SerialException, OSError) as exc:
                logger.debug("device_cancel_read_failed", error=str(exc))
        _close_quietly(stream)


def _close_quietly(stream: Stream) -> None:
    try:
        stream.close()
    except (serial.SerialException, OSError) as exc:
        logger.warning("device_stream_close_failed", error=str(exc))


def _close_if_opened(future: asyncio.Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    _close_quietly(future.result())


def _is_permission_error(exc: BaseException) -> bool:
    return isinstance(exc, PermissionError) or getattr(exc, "errno", None) in _PERMISSION_ERRNOS
