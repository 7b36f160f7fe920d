"""Settings loader for the DVM bridge daemon.

Process-level configuration (serial port, broker port, timings, store
location) is read from a TOML file. The file path comes from the
``DVMBRIDGE_CONFIG`` environment variable and falls back to
``/etc/dvmbridge/dvmbridge.toml``. A missing file yields the defaults.

Device-level configuration (broker host, identity, auto-report interval)
is NOT read from here: it lives in the durable store and is changed
remotely through the CONFIG topic.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Annotated

import msgspec

from ..const import (
    CONFIG_PATH_ENV,
    DEFAULT_AUTOSEND_INTERVAL,
    DEFAULT_COMMAND_SETTLE,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DEVICE_ID,
    DEFAULT_INSTRUMENT_SETTLE,
    DEFAULT_LINE_TIMEOUT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_KEEPALIVE,
    DEFAULT_MQTT_PORT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_REPORT_GAP,
    DEFAULT_SERIAL_BAUD,
    DEFAULT_SERIAL_PORT,
    DEFAULT_STORE_PATH,
    DEFAULT_TICK_INTERVAL,
    MAX_AUTOSEND_INTERVAL,
)
from ..protocol.topics import InvalidDeviceId, validate_device_id
from .model import DeviceConfig

logger = logging.getLogger(__name__)

NonNegativeFloat = Annotated[float, msgspec.Meta(ge=0.0)]


class RuntimeConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Strongly typed configuration for the daemon."""

    serial_port: Annotated[str, msgspec.Meta(min_length=1)] = DEFAULT_SERIAL_PORT
    serial_baud: Annotated[int, msgspec.Meta(ge=300)] = DEFAULT_SERIAL_BAUD
    mqtt_port: Annotated[int, msgspec.Meta(ge=1, le=65535)] = DEFAULT_MQTT_PORT
    mqtt_keepalive: Annotated[int, msgspec.Meta(ge=1)] = DEFAULT_MQTT_KEEPALIVE
    store_path: Annotated[str, msgspec.Meta(min_length=1)] = DEFAULT_STORE_PATH
    network_interface: str | None = None
    reconnect_delay: NonNegativeFloat = DEFAULT_RECONNECT_DELAY
    instrument_settle: NonNegativeFloat = DEFAULT_INSTRUMENT_SETTLE
    command_settle: NonNegativeFloat = DEFAULT_COMMAND_SETTLE
    report_gap: NonNegativeFloat = DEFAULT_REPORT_GAP
    line_timeout: NonNegativeFloat = DEFAULT_LINE_TIMEOUT
    tick_interval: NonNegativeFloat = DEFAULT_TICK_INTERVAL
    factory_server: Annotated[str, msgspec.Meta(min_length=1)] = DEFAULT_MQTT_HOST
    factory_device_id: str = DEFAULT_DEVICE_ID
    factory_interval: Annotated[int, msgspec.Meta(ge=0, le=MAX_AUTOSEND_INTERVAL)] = (
        DEFAULT_AUTOSEND_INTERVAL
    )
    debug_logging: bool = False

    def __post_init__(self) -> None:
        try:
            validate_device_id(self.factory_device_id)
        except InvalidDeviceId as exc:
            raise ValueError(f"factory_device_id: {exc}") from exc
        self.store_path = os.path.abspath(os.path.expanduser(self.store_path.strip()))
        if self.network_interface is not None:
            self.network_interface = self.network_interface.strip() or None

    @property
    def factory_config(self) -> DeviceConfig:
        """First-boot device config written when the store holds nothing usable."""
        return DeviceConfig(
            server=self.factory_server,
            device_id=self.factory_device_id,
            interval=self.factory_interval,
        )


def get_config_path() -> Path:
    return Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def load_runtime_config(path: Path | None = None) -> RuntimeConfig:
    """Load configuration from the TOML settings file (or defaults)."""

    source = path if path is not None else get_config_path()
    try:
        raw = source.read_bytes()
    except FileNotFoundError:
        logger.info("No settings file at %s; using defaults.", source)
        return RuntimeConfig()

    try:
        return msgspec.toml.decode(raw, type=RuntimeConfig)
    except (msgspec.ValidationError, msgspec.DecodeError) as exc:
        raise ValueError(f"Invalid settings file {source}: {exc}") from exc
