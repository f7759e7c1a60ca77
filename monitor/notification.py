"""
monitor/notification.py

User-visible notices raised by the orchestrator.
Only bounded-retry exhaustion and permission failures reach this layer.
The host UI is out of scope; notices are emitted as structured log events.
"""

import structlog

logger = structlog.get_logger(__name__)


async def send_abort_notice(reason: str) -> None:
    """Tell the user monitoring stopped and will not retry on its own."""
    logger.error("user_notice_monitoring_aborted", reason=reason)


async def send_delivery_failure_notice(reason: str) -> None:
    """Tell the user a sample was dropped after its retry budget ran out."""
    logger.error("user_notice_delivery_failed", reason=reason)


async def send_permission_notice(kind: str) -> None:
    """Tell the user a permission must be granted before monitoring can continue."""
    logger.error("user_notice_permission_required", permission=kind)
