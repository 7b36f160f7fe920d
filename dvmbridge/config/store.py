"""Durable device configuration record.

One JSON file holds the keys ``default`` (marker), ``server``, ``id`` and
``autosend``. The file is rewritten wholesale on every apply through a
temporary file and an atomic rename, so a power cut leaves either the old
record or the new one.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile

import msgspec

from ..const import MAX_AUTOSEND_INTERVAL, STORE_MARKER_APPLIED, STORE_MARKER_DEFAULT
from ..protocol.topics import InvalidDeviceId, validate_device_id
from .model import DeviceConfig

logger = logging.getLogger("dvmbridge.store")


class ConfigStoreError(OSError):
    """Raised when the configuration record cannot be written."""


class PreferencesRecord(msgspec.Struct, kw_only=True):
    """On-disk layout of the configuration record."""

    default: str = STORE_MARKER_DEFAULT
    server: str = ""
    id: str = ""
    autosend: int = 0

    @classmethod
    def from_config(cls, config: DeviceConfig) -> PreferencesRecord:
        return cls(
            default=STORE_MARKER_APPLIED,
            server=config.server,
            id=config.device_id,
            autosend=config.interval,
        )

    def to_config(self) -> DeviceConfig:
        return DeviceConfig(
            server=self.server,
            device_id=self.id,
            interval=self.autosend,
            default_applied=self.default == STORE_MARKER_APPLIED,
        )


class ConfigStore:
    """Load and persist the device configuration record."""

    def __init__(self, path: str | Path, factory: DeviceConfig) -> None:
        self.path = Path(path)
        self.factory = factory

    def load(self) -> DeviceConfig:
        """Return the stored config, writing factory defaults on first boot."""
        record = self._read()
        if record is None or not self._usable(record):
            logger.info("No usable stored configuration at %s; applying factory defaults.", self.path)
            self.save(self.factory)
            return self.factory

        config = record.to_config()
        logger.info(
            "Loaded configuration: server=%s id=%s interval=%d",
            config.server,
            config.device_id,
            config.interval,
        )
        return config

    def save(self, config: DeviceConfig) -> None:
        """Overwrite the record with *config* (full replace, fsync'd)."""
        encoded = msgspec.json.encode(PreferencesRecord.from_config(config))
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with NamedTemporaryFile("wb", dir=self.path.parent, delete=False) as handle:
                handle.write(encoded)
                handle.flush()
                os.fsync(handle.fileno())
                temp_name = handle.name
            Path(temp_name).replace(self.path)
        except OSError as exc:
            raise ConfigStoreError(f"Failed to persist configuration to {self.path}: {exc}") from exc
        logger.debug("Persisted configuration to %s", self.path)

    def _read(self) -> PreferencesRecord | None:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Unable to read configuration record %s: %s", self.path, exc)
            return None

        try:
            return msgspec.json.decode(data, type=PreferencesRecord)
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            logger.warning("Corrupt configuration record %s: %s", self.path, exc)
            return None

    @staticmethod
    def _usable(record: PreferencesRecord) -> bool:
        if record.default != STORE_MARKER_APPLIED:
            return False
        if not record.server.strip():
            return False
        if not 0 <= record.autosend <= MAX_AUTOSEND_INTERVAL:
            return False
        try:
            validate_device_id(record.id)
        except InvalidDeviceId:
            logger.warning("Stored device id %r is not a valid topic segment.", record.id)
            return False
        return True
