"""
monitor/orchestrator.py

Top-level monitoring state machine.
Pipeline: FetchingMode → AcquiringHeartRate | AcquiringLocation → dispatch per sample.

Every event (timer firings, task completions, device lines, location batches)
goes through one asyncio.Queue and is handled on the event loop, one at a time.
Each stage retries on its own; only a failed mode fetch restarts from the top.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

import structlog

from backend.client import BackendClient
from common.errors import (
    DeviceNotFound,
    PermissionDenied,
    RetriesExhausted,
    UnresolvedIdentity,
)
from common.retry import RetryPolicy
from common.schemas import (
    ConnectionState,
    DeviceIdentity,
    LocationSample,
    MonitoringMode,
    Reading,
)
from config import settings
from device.adapter import BondedDevice, DevicePlatform, LocationSource, PermissionKind
from device.events import LineRejected, LinkLost, ReadingReceived
from device.identity import resolve
from device.link import DeviceLink
from device.protocol import encode_haptic_command
from monitor.events import (
    ConnectRequested,
    DeviceConnected,
    DeviceConnectFailed,
    DispatchCompleted,
    DispatchFailed,
    FetchModeRequested,
    LocationBatch,
    ModeFetched,
    ModeFetchFailed,
)
from monitor.notification import (
    send_abort_notice,
    send_delivery_failure_notice,
    send_permission_notice,
)
from monitor.scheduler import TaskScheduler

logger = structlog.get_logger(__name__)

FETCH_MODE_KEY = "fetch-mode"
CONNECT_DEVICE_KEY = "connect-device"


class Phase(str, Enum):
    IDLE = "Idle"
    FETCHING_MODE = "FetchingMode"
    ACQUIRING_HEART_RATE = "AcquiringHeartRate"
    ACQUIRING_LOCATION = "AcquiringLocation"
    ABORTED = "Aborted"
    STOPPED = "Stopped"


_ACQUIRING = (Phase.ACQUIRING_HEART_RATE, Phase.ACQUIRING_LOCATION)


def select_watch(
    devices: Iterable[BondedDevice],
    name_filter: str,
    preferred_id: Optional[str] = None,
) -> Optional[BondedDevice]:
    """Pick the preferred device if bonded, else the first whose name contains `name_filter`."""
    devices = list(devices)
    if preferred_id:
        for device in devices:
            if device.id == preferred_id:
                return device
    needle = name_filter.lower()
    for device in devices:
        if device.display_name and needle in device.display_name.lower():
            return device
    return None


def select_most_accurate(samples: Iterable[LocationSample]) -> Optional[LocationSample]:
    """Smallest uncertainty radius wins; samples without one rank last."""
    best: Optional[LocationSample] = None
    for sample in samples:
        if best is None or _radius(sample) < _radius(best):
            best = sample
    return best


def _radius(sample: LocationSample) -> float:
    return sample.accuracy_m if sample.accuracy_m is not None else float("inf")


class MonitoringOrchestrator:
    """Owns the device link, the retry state and the current monitoring mode."""

    def __init__(
        self,
        backend: BackendClient,
        platform: DevicePlatform,
        location_source: LocationSource,
        mode_retry: Optional[RetryPolicy] = None,
        connect_retry: Optional[RetryPolicy] = None,
        device_name_filter: Optional[str] = None,
        preferred_device_id: Optional[str] = None,
        location_min_interval_ms: Optional[int] = None,
    ) -> None:
        self._backend = backend
        self._platform = platform
        self._location_source = location_source
        self._mode_policy = mode_retry or RetryPolicy(
            settings.mode_fetch_retry_delay_s, settings.mode_fetch_max_retries
        )
        self._connect_policy = connect_retry or RetryPolicy(
            settings.device_connect_retry_delay_s
        )
        self._device_name_filter = device_name_filter or settings.device_name_filter
        self._preferred_device_id = preferred_device_id or settings.serial_port or None
        self._location_min_interval_ms = (
            location_min_interval_ms
            if location_min_interval_ms is not None
            else settings.location_min_update_interval_ms
        )

        self.mode_retry = self._mode_policy.new_state()
        self.connect_retry = self._connect_policy.new_state()
        self.phase = Phase.IDLE
        self.mode: Optional[MonitoringMode] = None

        self.link = DeviceLink(platform, self.post)
        self.scheduler = TaskScheduler(self.post)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._location_task: Optional[asyncio.Task] = None
        self._location_seeded = False
        self._tasks: set[asyncio.Task] = set()

        self._handlers: dict[type, Callable[[Any], None]] = {
            FetchModeRequested: self._on_fetch_mode_requested,
            ModeFetched: self._on_mode_fetched,
            ModeFetchFailed: self._on_mode_fetch_failed,
            ConnectRequested: self._on_connect_requested,
            DeviceConnected: self._on_device_connected,
            DeviceConnectFailed: self._on_device_connect_failed,
            ReadingReceived: self._on_reading_received,
            LineRejected: self._on_line_rejected,
            LinkLost: self._on_link_lost,
            LocationBatch: self._on_location_batch,
            DispatchCompleted: self._on_dispatch_completed,
            DispatchFailed: self._on_dispatch_failed,
        }

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        if self._worker is not None:
            raise RuntimeError("orchestrator already started")
        # Each run starts with fresh retry budgets and an empty control queue.
        self.mode_retry = self._mode_policy.new_state()
        self.connect_retry = self._connect_policy.new_state()
        self.mode = None
        self._connect_task = None
        self._location_seeded = False
        self._queue = asyncio.Queue()
        self.phase = Phase.IDLE
        self._worker = asyncio.create_task(self._run(), name="monitoring-control")
        logger.info("monitoring_started")
        self.post(FetchModeRequested())

    async def stop(self) -> None:
        """Clear pending timers, cancel in-flight work and release the device."""
        self.phase = Phase.STOPPED
        self.scheduler.cancel_all()

        pending = list(self._tasks)
        if self._location_task is not None:
            pending.append(self._location_task)
        self._stop_location_updates()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        self.link.disconnect()

        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        logger.info("monitoring_stopped")

    def post(self, event: Any) -> None:
        """Enqueue an event for the control loop. Must be called on the event loop."""
        if self.phase is Phase.STOPPED:
            return
        self._queue.put_nowait(event)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._handle(event)
            except Exception:
                logger.exception("control_event_failed", event=type(event).__name__)
            finally:
                self._queue.task_done()

    def _handle(self, event: Any) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("control_event_unhandled", event=type(event).__name__)
            return
        handler(event)

    def _spawn(
        self,
        coro: Awaitable[Any],
        on_success: Callable[[Any], Any],
        on_error: Callable[[BaseException], Any],
        name: str,
    ) -> asyncio.Task:
        """Run `coro` off the control loop; its outcome re-enters through the queue."""
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            self.post(on_error(error) if error is not None else on_success(finished.result()))

        task.add_done_callback(_done)
        return task

    def _notify(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ── Mode fetch ───────────────────────────────────────────

    def _on_fetch_mode_requested(self, event: FetchModeRequested) -> None:
        if self.phase in (Phase.ABORTED, Phase.STOPPED):
            return
        self.phase = Phase.FETCHING_MODE
        logger.info("monitoring_mode_fetch_started", attempt=self.mode_retry.attempt + 1)
        self._spawn(self._backend.fetch_mode(), ModeFetched, ModeFetchFailed, "fetch-mode")

    def _on_mode_fetched(self, event: ModeFetched) -> None:
        if self.phase is not Phase.FETCHING_MODE:
            logger.debug("monitoring_mode_stale", mode=event.mode.value)
            return
        self.mode_retry.reset()
        self.mode = event.mode
        logger.info("monitoring_mode_selected", mode=event.mode.value)

        if event.mode is MonitoringMode.HEART_RATE:
            self.phase = Phase.ACQUIRING_HEART_RATE
            self._on_connect_requested(ConnectRequested())
        elif event.mode.is_celestial:
            if not self._platform.has_required_permission(PermissionKind.LOCATION):
                self.phase = Phase.IDLE
                self._surface_permission_denied(PermissionDenied(PermissionKind.LOCATION.value))
                return
            self.phase = Phase.ACQUIRING_LOCATION
            self._on_connect_requested(ConnectRequested())
            self._start_location_updates()

    def _on_mode_fetch_failed(self, event: ModeFetchFailed) -> None:
        if self.phase is not Phase.FETCHING_MODE:
            return
        self.mode_retry.record_failure()
        if not self._mode_policy.should_retry(self.mode_retry):
            self.phase = Phase.ABORTED
            logger.error(
                "monitoring_mode_fetch_aborted",
                attempts=self.mode_retry.attempt,
                error=str(event.error),
            )
            self._notify(
                send_abort_notice(
                    f"{event.error}; max retries ({self.mode_retry.limit}) reached"
                )
            )
            return
        delay = self._mode_policy.next_delay(self.mode_retry.attempt)
        logger.warning(
            "monitoring_mode_fetch_retrying",
            attempt=self.mode_retry.attempt,
            delay_s=delay,
            error=str(event.error),
        )
        self.scheduler.schedule(FETCH_MODE_KEY, delay, FetchModeRequested())

    # ── Device connect ───────────────────────────────────────

    def _on_connect_requested(self, event: ConnectRequested) -> None:
        if self.phase not in _ACQUIRING or self.mode is None:
            return
        if self._connect_task is not None and not self._connect_task.done():
            logger.debug("device_connect_in_progress")
            return
        if self.link.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            logger.debug("device_connect_skipped", state=self.link.state.value)
            return
        self._connect_task = self._spawn(
            self._connect_device(self.mode),
            DeviceConnected,
            DeviceConnectFailed,
            "connect-device",
        )

    async def _connect_device(self, mode: MonitoringMode) -> Optional[BondedDevice]:
        if not self._platform.has_required_permission(PermissionKind.BLUETOOTH):
            raise PermissionDenied(PermissionKind.BLUETOOTH.value)
        devices = await asyncio.to_thread(self._platform.list_bonded_devices)
        device = select_watch(devices, self._device_name_filter, self._preferred_device_id)
        if device is None:
            raise DeviceNotFound(f"no bonded device name contains {self._device_name_filter!r}")
        logger.info("device_selected", device_id=device.id, device_name=device.display_name)
        connected = await self.link.connect(device, mode)
        return device if connected else None

    def _on_device_connected(self, event: DeviceConnected) -> None:
        if event.device is None:
            return
        self.connect_retry.reset()
        logger.info("monitoring_device_ready", device_id=event.device.id)
        if self.phase is Phase.ACQUIRING_LOCATION and not self._location_seeded:
            # The watch alias is needed to tag a fix, so the last known one waits for the link.
            self._location_seeded = True
            last = self._location_source.get_last_location()
            if last is not None:
                self.post(LocationBatch(samples=(last,)))

    def _on_device_connect_failed(self, event: DeviceConnectFailed) -> None:
        if isinstance(event.error, PermissionDenied):
            self._surface_permission_denied(event.error)
            return
        logger.warning("monitoring_device_connect_failed", error=str(event.error))
        self._schedule_reconnect()

    def _on_link_lost(self, event: LinkLost) -> None:
        logger.warning("monitoring_link_lost", error=str(event.error))
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self.phase not in _ACQUIRING:
            return
        if self.scheduler.is_pending(CONNECT_DEVICE_KEY):
            logger.debug("device_reconnect_already_pending")
            return
        self.connect_retry.record_failure()
        if not self._connect_policy.should_retry(self.connect_retry):
            self.phase = Phase.ABORTED
            logger.error("device_reconnect_aborted", attempts=self.connect_retry.attempt)
            self._notify(send_abort_notice("device connection retries exhausted"))
            return
        delay = self._connect_policy.next_delay(self.connect_retry.attempt)
        self.scheduler.schedule(CONNECT_DEVICE_KEY, delay, ConnectRequested())
        logger.info(
            "device_reconnect_scheduled",
            attempt=self.connect_retry.attempt,
            delay_s=delay,
        )

    # ── Acquisition ──────────────────────────────────────────

    def _on_reading_received(self, event: ReadingReceived) -> None:
        if self.phase is not Phase.ACQUIRING_HEART_RATE:
            logger.debug("reading_ignored", phase=self.phase.value)
            return
        self._dispatch_reading(event.reading)

    def _on_line_rejected(self, event: LineRejected) -> None:
        if isinstance(event.error, UnresolvedIdentity):
            logger.warning(
                "dispatch_skipped",
                reason=event.error.reason,
                fields=event.error.fields,
            )
            return
        logger.info("device_line_dropped", reason=event.error.reason)

    def _start_location_updates(self) -> None:
        if self._location_task is not None:
            return
        self._location_task = asyncio.create_task(
            self._pump_locations(), name="location-updates"
        )
        self._location_task.add_done_callback(self._on_location_updates_done)

    async def _pump_locations(self) -> None:
        updates = self._location_source.subscribe_location_updates(
            self._location_min_interval_ms
        )
        async for batch in updates:
            self.post(LocationBatch(samples=tuple(batch)))

    def _on_location_updates_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("location_updates_failed", error=str(error))
        else:
            logger.info("location_updates_ended")

    def _stop_location_updates(self) -> None:
        if self._location_task is not None:
            self._location_task.cancel()
            self._location_task = None

    def _on_location_batch(self, event: LocationBatch) -> None:
        if self.phase is not Phase.ACQUIRING_LOCATION or self.mode is None:
            return
        sample = select_most_accurate(event.samples)
        if sample is None:
            return
        identity, unresolved = resolve(
            DeviceIdentity(),
            self._platform.system_name(),
            self.link.device_alias,
        )
        if unresolved:
            logger.warning(
                "dispatch_skipped",
                reason="unresolved_identity",
                fields=identity.unknown_fields(),
            )
            return
        sample = sample.model_copy(update={"identity": identity})
        logger.info("location_dispatching", lat=sample.lat, lon=sample.lon, mode=self.mode.value)
        self._spawn(
            self._backend.post_location(sample, self.mode),
            DispatchCompleted,
            DispatchFailed,
            "post-location",
        )

    # ── Dispatch ─────────────────────────────────────────────

    def _dispatch_reading(self, reading: Reading) -> None:
        if not reading.identity.is_resolved:
            logger.warning(
                "dispatch_skipped",
                reason="unresolved_identity",
                fields=reading.identity.unknown_fields(),
            )
            return
        logger.info("reading_dispatching", value=reading.value)
        self._spawn(
            self._backend.post_reading(reading),
            DispatchCompleted,
            DispatchFailed,
            "post-reading",
        )

    def _on_dispatch_completed(self, event: DispatchCompleted) -> None:
        command = event.command
        if command.is_noop:
            logger.info("haptic_feedback_skipped", pulses=command.pulses)
            return
        sent = self.link.send_line(encode_haptic_command(command))
        logger.info(
            "haptic_command_relayed",
            sent=sent,
            intensity=command.intensity,
            pulses=command.pulses,
            duration_ms=command.duration_ms,
            interval_ms=command.interval_ms,
        )

    def _on_dispatch_failed(self, event: DispatchFailed) -> None:
        logger.error("dispatch_failed", error=str(event.error))
        if isinstance(event.error, RetriesExhausted):
            self._notify(send_delivery_failure_notice(str(event.error)))

    # ── Notices ──────────────────────────────────────────────

    def _surface_permission_denied(self, error: PermissionDenied) -> None:
        logger.error("monitoring_permission_denied", permission=error.kind)
        self._notify(send_permission_notice(error.kind))
