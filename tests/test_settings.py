"""Tests for runtime settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from dvmbridge.config import settings
from dvmbridge.config.settings import RuntimeConfig, load_runtime_config
from dvmbridge.const import (
    DEFAULT_AUTOSEND_INTERVAL,
    DEFAULT_DEVICE_ID,
    DEFAULT_MQTT_HOST,
    DEFAULT_RECONNECT_DELAY,
)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_runtime_config(tmp_path / "missing.toml")

    assert config == RuntimeConfig()
    assert config.reconnect_delay == DEFAULT_RECONNECT_DELAY
    factory = config.factory_config
    assert (factory.server, factory.device_id, factory.interval) == (
        DEFAULT_MQTT_HOST,
        DEFAULT_DEVICE_ID,
        DEFAULT_AUTOSEND_INTERVAL,
    )


def test_toml_file_overrides(tmp_path: Path) -> None:
    path = tmp_path / "dvmbridge.toml"
    path.write_text(
        'serial_port = "/dev/ttyS1"\n'
        "serial_baud = 19200\n"
        'network_interface = "eth0"\n'
        'factory_device_id = "bench-4"\n'
        "debug_logging = true\n"
    )

    config = load_runtime_config(path)

    assert config.serial_port == "/dev/ttyS1"
    assert config.serial_baud == 19200
    assert config.network_interface == "eth0"
    assert config.factory_config.device_id == "bench-4"
    assert config.debug_logging is True


def test_env_selects_settings_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "custom.toml"
    path.write_text("mqtt_port = 8883\n")
    monkeypatch.setenv("DVMBRIDGE_CONFIG", str(path))

    assert settings.get_config_path() == path
    assert load_runtime_config().mqtt_port == 8883


@pytest.mark.parametrize(
    "contents",
    [
        "mqtt_port = 0\n",
        "unknown_key = 1\n",
        'factory_device_id = "a/b"\n',
        "reconnect_delay = -1.0\n",
        "serial_port = [\n",
    ],
)
def test_invalid_file_raises_value_error(tmp_path: Path, contents: str) -> None:
    path = tmp_path / "bad.toml"
    path.write_text(contents)

    with pytest.raises(ValueError):
        load_runtime_config(path)


def test_store_path_is_made_absolute() -> None:
    config = RuntimeConfig(store_path="relative/prefs.json")
    assert Path(config.store_path).is_absolute()


def test_blank_interface_means_any() -> None:
    assert RuntimeConfig(network_interface="  ").network_interface is None
