"""
monitor/scheduler.py

Single timer-driven scheduler for delayed retries.
A key has at most one pending timer; firing posts the event to the control queue.
"""

import asyncio
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)


class TaskScheduler:
    def __init__(self, post: Callable[[Any], None]) -> None:
        self._post = post
        self._pending: dict[str, asyncio.TimerHandle] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def schedule(self, key: str, delay_s: float, event: Any) -> bool:
        """Post `event` after `delay_s`. Returns False if `key` is already pending."""
        if key in self._pending:
            logger.debug("retry_already_pending", key=key)
            return False
        loop = asyncio.get_running_loop()
        self._pending[key] = loop.call_later(delay_s, self._fire, key, event)
        return True

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        if self._pending:
            logger.info("retry_timers_cleared", count=len(self._pending))
        self._pending.clear()

    def _fire(self, key: str, event: Any) -> None:
        self._pending.pop(key, None)
        self._post(event)
