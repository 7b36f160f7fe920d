"""Data model for the device-level configuration."""

from __future__ import annotations

import msgspec


class ConfigDocument(msgspec.Struct, frozen=True):
    """Wire shape shared by the CONFIG and STATE/config topics."""

    server: str
    device_id: str = msgspec.field(name="ID")
    mqtt_publish_interval: int


class DeviceConfig(msgspec.Struct, frozen=True):
    """Broker address, device identity and auto-report interval.

    ``interval`` counts controller ticks between automatic reports;
    0 disables automatic reporting.
    """

    server: str
    device_id: str
    interval: int
    default_applied: bool = True

    @property
    def auto_report_enabled(self) -> bool:
        return self.interval > 0

    def to_document(self) -> ConfigDocument:
        return ConfigDocument(
            server=self.server,
            device_id=self.device_id,
            mqtt_publish_interval=self.interval,
        )

    def encode_state(self) -> bytes:
        """JSON body published on STATE/config."""
        return msgspec.json.encode(self.to_document())
