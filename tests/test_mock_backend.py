"""
tests/test_mock_backend.py

Tests for the reference backend: endpoints in mock_backend/server.py and the
azimuth math in mock_backend/astronomy.py.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from config import settings
from mock_backend.astronomy import compass_quadrant, days_since_j2000, moon_azimuth, sun_azimuth
from mock_backend.server import app
from tests.fixtures import build_reading

SOLSTICE_NOON = datetime(2024, 6, 21, 12, 0, tzinfo=timezone.utc)

client = TestClient(app)


def location_body(lat: float = 40.0, lon: float = 0.0) -> dict:
    return {"lat": lat, "lon": lon, "userId": "7", "smartWatchId": "3", "androidId": "50"}


# ── Astronomy ───────────────────────────────────────────────

def test_days_since_j2000_at_epoch() -> None:
    """J2000.0 itself is day zero."""
    assert days_since_j2000(datetime(2000, 1, 1, 12, 0, tzinfo=timezone.utc)) == pytest.approx(0.0)


def test_naive_datetimes_are_treated_as_utc() -> None:
    """Naive datetimes are read as UTC."""
    assert days_since_j2000(datetime(2024, 6, 21, 12, 0)) == pytest.approx(
        days_since_j2000(SOLSTICE_NOON)
    )


def test_sun_is_due_south_at_noon_in_northern_latitudes() -> None:
    """At solar noon the sun is south of a northern observer."""
    assert sun_azimuth(40.0, 0.0, SOLSTICE_NOON) == pytest.approx(180.0, abs=5.0)


def test_sun_is_due_north_at_noon_in_southern_latitudes() -> None:
    """At solar noon the sun is north of a southern observer."""
    azimuth = sun_azimuth(-35.0, 0.0, SOLSTICE_NOON)

    assert min(azimuth, 360.0 - azimuth) < 5.0


@pytest.mark.parametrize("hour, quadrant", [(6, 2), (12, 3), (18, 4)])
def test_sun_quadrant_through_the_day(hour: int, quadrant: int) -> None:
    """The sun moves east, south, then west over a summer day."""
    moment = datetime(2024, 6, 21, hour, 0, tzinfo=timezone.utc)

    assert compass_quadrant(sun_azimuth(40.0, 0.0, moment)) == quadrant


def test_moon_azimuth_is_a_compass_bearing() -> None:
    """Moon azimuths stay within [0, 360)."""
    for hour in range(0, 24, 3):
        moment = datetime(2024, 3, 10, hour, 0, tzinfo=timezone.utc)
        azimuth = moon_azimuth(51.5, -0.1, moment)
        assert 0.0 <= azimuth < 360.0


@pytest.mark.parametrize(
    "azimuth, quadrant",
    [
        (0.0, 1),
        (44.9, 1),
        (315.0, 1),
        (359.9, 1),
        (45.0, 2),
        (134.9, 2),
        (135.0, 3),
        (224.9, 3),
        (225.0, 4),
        (314.9, 4),
    ],
)
def test_compass_quadrant(azimuth: float, quadrant: int) -> None:
    """Quadrant edges fall on the 45 degree diagonals."""
    assert compass_quadrant(azimuth) == quadrant


# ── Endpoints ───────────────────────────────────────────────

def test_monitoring_config_reports_configured_mode() -> None:
    """The configured mode is served as monitoringType."""
    with patch.object(settings, "mock_monitoring_type", "MoonAzimuth"):
        response = client.get("/get-monitoring-config")

    assert response.status_code == 200
    assert response.json() == {"monitoringType": "MoonAzimuth"}


def test_heart_rate_below_threshold_returns_no_pulses() -> None:
    """A value at the threshold gets no haptic feedback."""
    with patch.object(settings, "mock_heart_rate_threshold", 100):
        response = client.post("/heartRate", json=build_reading(value=100).raw)

    assert response.status_code == 200
    assert response.json()["pulses"] == 0


def test_heart_rate_above_threshold_returns_alert_pattern() -> None:
    """A value above the threshold gets the alert pattern."""
    with patch.object(settings, "mock_heart_rate_threshold", 100):
        response = client.post("/heartRate", json=build_reading(value=101).raw)

    body = response.json()
    assert response.status_code == 200
    assert (body["intensity"], body["pulses"], body["duration"], body["interval"]) == (
        2,
        3,
        250,
        500,
    )
    assert "101" in body["message"]


@pytest.mark.parametrize("value", ["abc", "-3", "", "٧٢"])
def test_heart_rate_rejects_non_integer_values(value: str) -> None:
    """Non-integer values are rejected with 422."""
    payload = dict(build_reading().raw, Value=value)

    response = client.post("/heartRate", json=payload)

    assert response.status_code == 422


def test_sun_data_pulses_match_compass_quadrant() -> None:
    """Sun feedback pulses equal the sun's compass quadrant."""
    with patch("mock_backend.server._now", return_value=SOLSTICE_NOON):
        response = client.post("/sun-data", json=location_body(lat=40.0, lon=0.0))

    body = response.json()
    assert response.status_code == 200
    assert body["pulses"] == 3
    assert body["intensity"] == 1
    assert body["message"].startswith("Sun azimuth")


def test_moon_data_pulses_match_compass_quadrant() -> None:
    """Moon feedback pulses equal the moon's compass quadrant."""
    moment = datetime(2024, 3, 10, 21, 0, tzinfo=timezone.utc)
    expected = compass_quadrant(moon_azimuth(51.5, -0.1, moment))

    with patch("mock_backend.server._now", return_value=moment):
        response = client.post("/moon-data", json=location_body(lat=51.5, lon=-0.1))

    assert response.status_code == 200
    assert response.json()["pulses"] == expected
    assert response.json()["message"].startswith("Moon azimuth")


def test_location_endpoints_require_identity() -> None:
    """Location bodies without identity fields are rejected."""
    response = client.post("/sun-data", json={"lat": 1.0, "lon": 2.0})

    assert response.status_code == 422
