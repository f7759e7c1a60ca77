"""
common/constants.py

Protocol literals and timing defaults shared by the device link,
the backend client and the orchestrator.
Magic numbers and wire strings in business logic are prohibited;
reference them from this module.
"""

# ── Identity sentinels sent by the watch ─────────────────────
UNKNOWN_ANDROID: str = "UnknownAndroid"
UNKNOWN_USER: str = "UnknownUser"
UNKNOWN_WATCH: str = "UnknownWatch"

# ── Inbound reading keys ─────────────────────────────────────
KEY_ANDROID_ID: str = "AndroidID"
KEY_USER_ID: str = "UserID"
KEY_WATCH_ID: str = "SmartWatchID"
KEY_VALUE: str = "Value"

HEART_RATE_TAG: str = "MonitoringType:HeartRate"

# ── Outbound commands ────────────────────────────────────────
MODE_ANNOUNCEMENT_PREFIX: str = "Monitoring:"
VIBRATE_PREFIX: str = "Vibrate:"
LINE_TERMINATOR: str = "\n"

# ── Serial link ──────────────────────────────────────────────
SPP_SERVICE_UUID: str = "00001101-0000-1000-8000-00805f9b34fb"
SERIAL_BAUDRATE: int = 115200
SERIAL_WRITE_TIMEOUT_S: float = 2.0
DEVICE_NAME_FILTER: str = "watch"

# ── Backend endpoints ────────────────────────────────────────
CONFIG_PATH: str = "/get-monitoring-config"
HEART_RATE_PATH: str = "/heartRate"
SUN_DATA_PATH: str = "/sun-data"
MOON_DATA_PATH: str = "/moon-data"

# ── Timeouts and retries (seconds) ───────────────────────────
BACKEND_REQUEST_TIMEOUT_S: float = 5.0
MODE_FETCH_RETRY_DELAY_S: float = 0.5
MODE_FETCH_MAX_RETRIES: int = 8
DEVICE_CONNECT_RETRY_DELAY_S: float = 3.0
BACKEND_POST_RETRY_DELAY_S: float = 3.0

# ── Location updates (milliseconds) ──────────────────────────
LOCATION_UPDATE_INTERVAL_MS: int = 30_000
LOCATION_MIN_UPDATE_INTERVAL_MS: int = 5_000
