"""Configuration helpers for the DVM bridge daemon."""

from .model import ConfigDocument, DeviceConfig
from .schema import ConfigPayloadError, parse_config_payload
from .settings import RuntimeConfig, load_runtime_config
from .store import ConfigStore, ConfigStoreError

__all__ = [
    "ConfigDocument",
    "ConfigPayloadError",
    "ConfigStore",
    "ConfigStoreError",
    "DeviceConfig",
    "RuntimeConfig",
    "load_runtime_config",
    "parse_config_payload",
]
