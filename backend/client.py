"""
backend/client.py

HTTP client for the telemetry backend.
- fetch_mode: GET /get-monitoring-config, single exchange, no internal retry
- post_reading / post_location: POST the sample and decode the haptic response,
  re-issuing the same payload per RetryPolicy on any NetworkError

Identity preconditions are the caller's responsibility.
"""

import asyncio
from typing import Any, Optional

import httpx
import structlog

from common.constants import (
    CONFIG_PATH,
    HEART_RATE_PATH,
    MOON_DATA_PATH,
    SUN_DATA_PATH,
)
from common.errors import (
    BackendUnavailable,
    NetworkError,
    NetworkTimeout,
    RetriesExhausted,
    UnknownMode,
)
from common.retry import RetryPolicy
from common.schemas import HapticCommand, LocationSample, MonitoringMode, Reading
from config import settings

logger = structlog.get_logger(__name__)

_LOCATION_PATHS: dict[MonitoringMode, str] = {
    MonitoringMode.SUN_AZIMUTH: SUN_DATA_PATH,
    MonitoringMode.MOON_AZIMUTH: MOON_DATA_PATH,
}


class BackendClient:
    """Async client for the monitoring backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        post_retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.backend_url,
            timeout=timeout_s if timeout_s is not None else settings.request_timeout_s,
            transport=transport,
        )
        self._post_retry = post_retry or RetryPolicy(settings.backend_post_retry_delay_s)

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_mode(self) -> MonitoringMode:
        """Fetch the monitoring mode. Raises NetworkError subclasses on failure."""
        body = await self._request("GET", CONFIG_PATH)
        raw_mode = body.get("monitoringType") if isinstance(body, dict) else None
        mode = MonitoringMode.parse(raw_mode)
        if mode is MonitoringMode.UNKNOWN:
            logger.warning("monitoring_mode_unknown", monitoring_type=raw_mode)
            raise UnknownMode(f"unknown monitoring type: {raw_mode!r}")
        logger.info("monitoring_mode_fetched", mode=mode.value)
        return mode

    async def post_reading(self, reading: Reading) -> HapticCommand:
        """POST a heart-rate reading's raw key/value map."""
        return await self._post_with_retry(HEART_RATE_PATH, dict(reading.raw))

    async def post_location(
        self,
        sample: LocationSample,
        mode: MonitoringMode,
    ) -> HapticCommand:
        """POST a location sample to the endpoint for a celestial mode."""
        path = _LOCATION_PATHS.get(mode)
        if path is None:
            raise ValueError(f"no location endpoint for mode {mode.value}")
        return await self._post_with_retry(path, sample.to_payload())

    async def _post_with_retry(self, path: str, payload: dict[str, Any]) -> HapticCommand:
        state = self._post_retry.new_state()
        while True:
            try:
                body = await self._request("POST", path, json=payload)
            except NetworkError as exc:
                state.record_failure()
                if not self._post_retry.should_retry(state):
                    logger.error(
                        "backend_post_abandoned",
                        path=path,
                        attempts=state.attempt,
                        error=str(exc),
                    )
                    raise RetriesExhausted(f"POST {path} failed after {state.attempt} attempts") from exc
                delay = self._post_retry.next_delay(state.attempt)
                logger.warning(
                    "backend_post_retrying",
                    path=path,
                    attempt=state.attempt,
                    delay_s=delay,
                    error=str(exc),
                )
                await asyncio.sleep(delay)
                continue

            command = HapticCommand.from_response(body)
            if isinstance(body, dict) and body.get("message") is not None:
                logger.info("backend_message", path=path, message=body["message"])
            logger.info(
                "backend_post_succeeded",
                path=path,
                pulses=command.pulses,
                intensity=command.intensity,
                duration_ms=command.duration_ms,
                interval_ms=command.interval_ms,
            )
            return command

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            logger.warning("backend_timeout", method=method, path=path)
            raise NetworkTimeout(f"{method} {path} timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "backend_http_error",
                method=method,
                path=path,
                status=exc.response.status_code,
            )
            raise BackendUnavailable(
                f"{method} {path} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("backend_transport_error", method=method, path=path, error=str(exc))
            raise BackendUnavailable(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            logger.error("backend_invalid_json", method=method, path=path, error=str(exc))
            raise BackendUnavailable(f"{method} {path} returned invalid JSON") from exc
