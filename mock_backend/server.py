"""
mock_backend/server.py

Reference monitoring backend for local runs and tests.
Implements the HTTP surface the monitor talks to:
- GET  /get-monitoring-config
- POST /heartRate
- POST /sun-data, /moon-data

This is an independent FastAPI process; it must not import device/, backend/ or monitor/.
Run with: uvicorn mock_backend.server:app --port 1880
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from config import settings
from mock_backend.astronomy import compass_quadrant, moon_azimuth, sun_azimuth

logger = structlog.get_logger(__name__)

# ── Feedback patterns ────────────────────────────────────────
HEART_RATE_ALERT_INTENSITY: int = 2
HEART_RATE_ALERT_PULSES: int = 3
HEART_RATE_ALERT_DURATION_MS: int = 250
HEART_RATE_ALERT_INTERVAL_MS: int = 500

CELESTIAL_INTENSITY: int = 1
CELESTIAL_DURATION_MS: int = 200
CELESTIAL_INTERVAL_MS: int = 400

app = FastAPI(
    title="Monitoring Reference Backend",
    description="Serves monitoring mode and haptic feedback for the companion monitor",
    version="1.0.0",
)


# ── Request / Response models ────────────────────────────────

class MonitoringConfigResponse(BaseModel):
    monitoringType: str


class LocationPayload(BaseModel):
    """Body of /sun-data and /moon-data."""

    lat: float
    lon: float
    userId: str
    smartWatchId: str
    androidId: str


class FeedbackResponse(BaseModel):
    """Haptic pattern returned for a reading or location."""

    message: Optional[str] = None
    pulses: int = 0
    intensity: int = 0
    duration: int = 0
    interval: int = 0


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Endpoints ────────────────────────────────────────────────

@app.get("/get-monitoring-config", response_model=MonitoringConfigResponse)
async def get_monitoring_config() -> MonitoringConfigResponse:
    return MonitoringConfigResponse(monitoringType=settings.mock_monitoring_type)


@app.post("/heartRate", response_model=FeedbackResponse)
async def receive_heart_rate(reading: dict[str, str]) -> FeedbackResponse:
    """
    Alert with a fixed vibration pattern when the heart rate exceeds the threshold.
    """
    raw_value = reading.get("Value", "")
    if not (raw_value.isascii() and raw_value.isdigit()):
        raise HTTPException(status_code=422, detail="Value must be a non-negative integer")
    value = int(raw_value)

    logger.info(
        "heart_rate_received",
        user_id=reading.get("UserID"),
        watch_id=reading.get("SmartWatchID"),
        value=value,
    )

    if value <= settings.mock_heart_rate_threshold:
        return FeedbackResponse()
    return FeedbackResponse(
        message=f"Heart rate {value} above {settings.mock_heart_rate_threshold}",
        pulses=HEART_RATE_ALERT_PULSES,
        intensity=HEART_RATE_ALERT_INTENSITY,
        duration=HEART_RATE_ALERT_DURATION_MS,
        interval=HEART_RATE_ALERT_INTERVAL_MS,
    )


def _celestial_feedback(
    body_name: str,
    azimuth_fn: Callable[[float, float, datetime], float],
    payload: LocationPayload,
) -> FeedbackResponse:
    azimuth = azimuth_fn(payload.lat, payload.lon, _now())
    quadrant = compass_quadrant(azimuth)
    logger.info(
        "celestial_azimuth_computed",
        body=body_name,
        user_id=payload.userId,
        azimuth=round(azimuth, 1),
        quadrant=quadrant,
    )
    return FeedbackResponse(
        message=f"{body_name} azimuth {azimuth:.1f}",
        pulses=quadrant,
        intensity=CELESTIAL_INTENSITY,
        duration=CELESTIAL_DURATION_MS,
        interval=CELESTIAL_INTERVAL_MS,
    )


@app.post("/sun-data", response_model=FeedbackResponse)
async def receive_sun_data(payload: LocationPayload) -> FeedbackResponse:
    return _celestial_feedback("Sun", sun_azimuth, payload)


@app.post("/moon-data", response_model=FeedbackResponse)
async def receive_moon_data(payload: LocationPayload) -> FeedbackResponse:
    return _celestial_feedback("Moon", moon_azimuth, payload)
