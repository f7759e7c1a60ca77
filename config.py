"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from pydantic_settings import BaseSettings

from common.constants import (
    BACKEND_POST_RETRY_DELAY_S,
    BACKEND_REQUEST_TIMEOUT_S,
    DEVICE_CONNECT_RETRY_DELAY_S,
    DEVICE_NAME_FILTER,
    LOCATION_MIN_UPDATE_INTERVAL_MS,
    LOCATION_UPDATE_INTERVAL_MS,
    MODE_FETCH_MAX_RETRIES,
    MODE_FETCH_RETRY_DELAY_S,
    SERIAL_BAUDRATE,
)


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Backend
    backend_url: str = "http://127.0.0.1:1880"
    request_timeout_s: float = BACKEND_REQUEST_TIMEOUT_S

    # Device link
    serial_port: str = ""  # empty: discover among bonded devices
    serial_baudrate: int = SERIAL_BAUDRATE
    device_name_filter: str = DEVICE_NAME_FILTER

    # Identity hints
    system_name: str = "Android-50"
    device_alias: str = ""  # empty: use the bonded device's own alias

    # Location source
    location_enabled: bool = False
    location_lat: float | None = None
    location_lon: float | None = None
    location_accuracy_m: float = 10.0
    location_update_interval_ms: int = LOCATION_UPDATE_INTERVAL_MS
    location_min_update_interval_ms: int = LOCATION_MIN_UPDATE_INTERVAL_MS

    # Retry
    mode_fetch_retry_delay_s: float = MODE_FETCH_RETRY_DELAY_S
    mode_fetch_max_retries: int = MODE_FETCH_MAX_RETRIES
    device_connect_retry_delay_s: float = DEVICE_CONNECT_RETRY_DELAY_S
    backend_post_retry_delay_s: float = BACKEND_POST_RETRY_DELAY_S

    # Logging
    log_level: str = "INFO"

    # Reference backend
    mock_monitoring_type: str = "HeartRate"
    mock_heart_rate_threshold: int = 100

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
