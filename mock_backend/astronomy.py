"""
mock_backend/astronomy.py

Low-precision sun and moon azimuths for the reference backend.
Accuracy is roughly a degree for the sun and a few degrees for the moon,
which is enough to pick a compass quadrant.
Azimuths are measured clockwise from north, in degrees [0, 360).
"""

import math
from datetime import datetime, timezone

# Julian day of the J2000.0 epoch and of the Unix epoch
_JD_J2000: float = 2451545.0
_JD_UNIX_EPOCH: float = 2440587.5
_SECONDS_PER_DAY: int = 86_400
_DAYS_PER_CENTURY: float = 36525.0


def days_since_j2000(moment: datetime) -> float:
    """Fractional days between J2000.0 and `moment` (naive datetimes are UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    julian_day = moment.timestamp() / _SECONDS_PER_DAY + _JD_UNIX_EPOCH
    return julian_day - _JD_J2000


def _obliquity(d: float) -> float:
    return math.radians(23.439 - 0.0000004 * d)


def _azimuth(ra: float, dec: float, lat: float, lon: float, d: float) -> float:
    """Horizontal azimuth for equatorial coordinates (radians) seen from lat/lon (degrees)."""
    gmst = (280.46061837 + 360.98564736629 * d) % 360.0
    hour_angle = math.radians(gmst + lon) - ra
    phi = math.radians(lat)
    azimuth = math.degrees(
        math.atan2(
            math.sin(hour_angle),
            math.cos(hour_angle) * math.sin(phi) - math.tan(dec) * math.cos(phi),
        )
    )
    return (azimuth + 180.0) % 360.0


def sun_azimuth(lat: float, lon: float, moment: datetime) -> float:
    d = days_since_j2000(moment)
    mean_anomaly = math.radians((357.529 + 0.98560028 * d) % 360.0)
    mean_longitude = (280.459 + 0.98564736 * d) % 360.0
    ecliptic_longitude = math.radians(
        mean_longitude
        + 1.915 * math.sin(mean_anomaly)
        + 0.020 * math.sin(2 * mean_anomaly)
    )
    epsilon = _obliquity(d)
    ra = math.atan2(
        math.cos(epsilon) * math.sin(ecliptic_longitude),
        math.cos(ecliptic_longitude),
    )
    dec = math.asin(math.sin(epsilon) * math.sin(ecliptic_longitude))
    return _azimuth(ra, dec, lat, lon, d)


def moon_azimuth(lat: float, lon: float, moment: datetime) -> float:
    d = days_since_j2000(moment)
    t = d / _DAYS_PER_CENTURY

    def sin_deg(x: float) -> float:
        return math.sin(math.radians(x % 360.0))

    longitude = math.radians(
        218.32
        + 481267.881 * t
        + 6.29 * sin_deg(135.0 + 477198.87 * t)
        - 1.27 * sin_deg(259.3 - 413335.36 * t)
        + 0.66 * sin_deg(235.7 + 890534.22 * t)
        + 0.21 * sin_deg(269.9 + 954397.74 * t)
        - 0.19 * sin_deg(357.5 + 35999.05 * t)
        - 0.11 * sin_deg(186.5 + 966404.03 * t)
    )
    latitude = math.radians(
        5.13 * sin_deg(93.3 + 483202.02 * t)
        + 0.28 * sin_deg(228.2 + 960400.89 * t)
        - 0.28 * sin_deg(318.3 + 6003.15 * t)
        - 0.17 * sin_deg(217.6 - 407332.21 * t)
    )
    epsilon = _obliquity(d)
    ra = math.atan2(
        math.sin(longitude) * math.cos(epsilon) - math.tan(latitude) * math.sin(epsilon),
        math.cos(longitude),
    )
    dec = math.asin(
        math.sin(latitude) * math.cos(epsilon)
        + math.cos(latitude) * math.sin(epsilon) * math.sin(longitude)
    )
    return _azimuth(ra, dec, lat, lon, d)


def compass_quadrant(azimuth: float) -> int:
    """1=N, 2=E, 3=S, 4=W; each quadrant spans ±45° around its heading."""
    return int(((azimuth + 45.0) % 360.0) // 90.0) + 1
