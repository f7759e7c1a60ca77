"""
monitor/main.py

Process entry point for the background monitoring service.
Wires the serial platform, the location source and the backend client into
one orchestrator and runs it until SIGINT/SIGTERM.
"""

import asyncio
import contextlib
import logging
import signal

import structlog

from backend.client import BackendClient
from config import settings
from device.adapter import SerialPlatform, StaticLocationSource
from monitor.orchestrator import MonitoringOrchestrator

logger = structlog.get_logger(__name__)


def configure_logging(level: str) -> None:
    """Filter structlog output below `level` (e.g. "INFO", "DEBUG")."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


async def run() -> None:
    """Run the orchestrator until a termination signal arrives."""
    platform = SerialPlatform.from_settings()
    location_source = StaticLocationSource.from_settings()

    async with BackendClient() as backend:
        orchestrator = MonitoringOrchestrator(backend, platform, location_source)

        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop_requested.set)

        logger.info("monitor_starting", backend_url=settings.backend_url)
        await orchestrator.start()
        try:
            await stop_requested.wait()
        finally:
            await orchestrator.stop()
            logger.info("monitor_shutting_down")


def main() -> None:
    configure_logging(settings.log_level)
    asyncio.run(run())


if __name__ == "__main__":
    main()
