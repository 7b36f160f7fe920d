"""Tests for the logging configuration."""

import json
import logging
from unittest.mock import patch

from dvmbridge.config import logging as log_mod
from dvmbridge.config.settings import RuntimeConfig


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="dvmbridge.serial",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello %s",
        args=("dvm",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_trims_prefix_and_serialises_context() -> None:
    record = _record(frame=b"\x1bS\r\n", obj=object())

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["logger"] == "serial"
    assert payload["level"] == "INFO"
    assert payload["message"] == "hello dvm"
    assert payload["ts"].endswith("Z")
    assert payload["context"]["frame"] == "[1B 53 0D 0A]"
    assert payload["context"]["obj"].startswith("<object object")


def test_formatter_omits_empty_context() -> None:
    payload = json.loads(log_mod.StructuredLogFormatter().format(_record()))
    assert "context" not in payload
    assert "device" not in payload


def test_stream_handler_when_env_requests_it(monkeypatch) -> None:
    monkeypatch.setenv("DVMBRIDGE_LOG_STREAM", "1")
    handler = log_mod._build_handler()
    assert type(handler) is logging.StreamHandler


def test_syslog_handler_when_socket_present(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("DVMBRIDGE_LOG_STREAM", raising=False)
    fake_socket = tmp_path / "log"
    fake_socket.touch()

    with patch.object(log_mod, "SYSLOG_SOCKET", fake_socket):
        with patch.object(log_mod, "SysLogHandler") as mock_syslog:
            handler = log_mod._build_handler()

    mock_syslog.assert_called_once()
    assert handler is mock_syslog.return_value
    assert handler.ident == "dvmbridge "


def test_stream_fallback_without_socket(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("DVMBRIDGE_LOG_STREAM", raising=False)
    with patch.object(log_mod, "SYSLOG_SOCKET", tmp_path / "missing"):
        handler = log_mod._build_handler()
    assert type(handler) is logging.StreamHandler


def test_configure_logging_sets_level() -> None:
    with patch("dvmbridge.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(RuntimeConfig(debug_logging=True))

    mock_dict_config.assert_called_once()
    config_arg = mock_dict_config.call_args[0][0]
    assert config_arg["root"]["level"] == "DEBUG"
    assert "dvmbridge" in config_arg["handlers"]


def test_device_filter_stamps_current_identity() -> None:
    identity = ["dvm-1"]
    log_filter = log_mod.DeviceContextFilter(lambda: identity[0])
    formatter = log_mod.StructuredLogFormatter()

    first = _record()
    assert log_filter.filter(first)
    identity[0] = "dev2"
    second = _record()
    log_filter.filter(second)

    assert json.loads(formatter.format(first))["device"] == "dvm-1"
    assert json.loads(formatter.format(second))["device"] == "dev2"
    assert "context" not in json.loads(formatter.format(second))


def test_device_filter_without_provider_leaves_record() -> None:
    record = _record()
    assert log_mod.DeviceContextFilter().filter(record)
    assert not hasattr(record, "device")


def test_bind_device_context_updates_installed_filter(monkeypatch) -> None:
    monkeypatch.setenv("DVMBRIDGE_LOG_STREAM", "1")
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        log_mod.configure_logging(RuntimeConfig())
        log_mod.bind_device_context(lambda: "bench-3")

        handler = next(h for h in root.handlers if h.get_name() == log_mod.HANDLER_NAME)
        record = _record()
        handler.filter(record)
    finally:
        for handler in root.handlers[:]:
            if handler not in saved_handlers:
                root.removeHandler(handler)
                handler.close()
        for handler in saved_handlers:
            if handler not in root.handlers:
                root.addHandler(handler)
        root.setLevel(saved_level)

    assert record.device == "bench-3"
