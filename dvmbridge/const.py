"""Constants shared across the DVM bridge daemon."""

from __future__ import annotations

from typing import Final

# Factory defaults written on first boot (store empty or marker absent).
DEFAULT_MQTT_HOST: Final[str] = "mqtt-s1.casafrog.com"
DEFAULT_DEVICE_ID: Final[str] = "unconfigured"
DEFAULT_AUTOSEND_INTERVAL: Final[int] = 5000

DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_KEEPALIVE: Final[int] = 15

DEFAULT_SERIAL_PORT: Final[str] = "/dev/ttyUSB0"
DEFAULT_SERIAL_BAUD: Final[int] = 9600

DEFAULT_CONFIG_PATH: Final[str] = "/etc/dvmbridge/dvmbridge.toml"
DEFAULT_STORE_PATH: Final[str] = "/var/lib/dvmbridge/preferences.json"
CONFIG_PATH_ENV: Final[str] = "DVMBRIDGE_CONFIG"
LOG_STREAM_ENV: Final[str] = "DVMBRIDGE_LOG_STREAM"

# Timing (seconds)
DEFAULT_RECONNECT_DELAY: Final[float] = 5.0
DEFAULT_INSTRUMENT_SETTLE: Final[float] = 0.5
DEFAULT_COMMAND_SETTLE: Final[float] = 1.0
DEFAULT_REPORT_GAP: Final[float] = 0.1
DEFAULT_LINE_TIMEOUT: Final[float] = 1.0
DEFAULT_TICK_INTERVAL: Final[float] = 0.001

SUPERVISOR_MIN_BACKOFF: Final[float] = 1.0
SUPERVISOR_MAX_BACKOFF: Final[float] = 30.0

# Durable store record
STORE_MARKER_APPLIED: Final[str] = "no"
STORE_MARKER_DEFAULT: Final[str] = "default"
MAX_AUTOSEND_INTERVAL: Final[int] = 0xFFFFFFFF

# Identity
MAX_DEVICE_ID_LEN: Final[int] = 64
FORBIDDEN_ID_CHARS: Final[frozenset[str]] = frozenset({"/", "+", "#", "\x00"})

# Topics
TOPIC_PREFIX: Final[str] = "lab/machines"

# Instrument dialect
ESCAPE: Final[int] = 0x1B
CMD_STATUS: Final[bytes] = b"S"
CMD_DISPLAY: Final[bytes] = b"D"
LINE_TERMINATOR: Final[bytes] = b"\r\n"
LINE_DELIMITER: Final[bytes] = b"\n"
SERIAL_ENCODING: Final[str] = "latin-1"
MODE_PREFIX_LEN: Final[int] = 4
TIMEOUT_STATUS: Final[str] = "TIMEOUT"
NO_ADDRESS: Final[str] = "0.0.0.0"
