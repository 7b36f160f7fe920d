"""Logging helpers for the DVM bridge daemon.

Every line is one JSON object. Records carry the device identity that
was active when they were emitted, so a log shipped off the box can be
attributed after the identity is changed through CONFIG.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from ..const import LOG_STREAM_ENV
from ..util import parse_bool
from .settings import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")
HANDLER_NAME = "dvmbridge"

# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "device"}

DeviceProvider = Callable[[], str]


def _serialise_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (bytes, bytearray)):
        # Serial traffic is binary (ESC bytes, status bytes); never decode it blindly.
        return f"[{' '.join(f'{b:02X}' for b in value)}]"
    return str(value)


class DeviceContextFilter(logging.Filter):
    """Stamp ``record.device`` with the identity currently in use."""

    def __init__(self, provider: DeviceProvider | None = None) -> None:
        super().__init__()
        self.provider = provider

    def filter(self, record: logging.LogRecord) -> bool:
        if self.provider is not None and not hasattr(record, "device"):
            record.device = self.provider()
        return True


class StructuredLogFormatter(logging.Formatter):
    """Emit JSON per log line while trimming the shared prefix."""

    PREFIX = "dvmbridge."

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name.removeprefix(self.PREFIX)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": logger_name,
            "message": record.getMessage(),
        }
        device = getattr(record, "device", None)
        if device is not None:
            payload["device"] = device

        context = {
            key: _serialise_value(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _syslog_socket() -> Path | None:
    candidates = [SYSLOG_SOCKET]
    if str(SYSLOG_SOCKET) == "/dev/log":
        candidates.append(SYSLOG_SOCKET_FALLBACK)
    return next((path for path in candidates if path.exists()), None)


def _build_handler() -> Handler:
    if parse_bool(os.environ.get(LOG_STREAM_ENV)):
        return logging.StreamHandler()

    socket_path = _syslog_socket()
    if socket_path is None:
        return logging.StreamHandler()

    handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_DAEMON)
    handler.ident = "dvmbridge "
    return handler


def configure_logging(config: RuntimeConfig) -> None:
    """Configure root logging based on runtime settings."""

    level_name = "DEBUG" if config.debug_logging else "INFO"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": "dvmbridge.config.logging.StructuredLogFormatter"},
            },
            "filters": {
                "device": {"()": "dvmbridge.config.logging.DeviceContextFilter"},
            },
            "handlers": {
                HANDLER_NAME: {
                    "()": _build_handler,
                    "level": level_name,
                    "formatter": "structured",
                    "filters": ["device"],
                }
            },
            "root": {
                "level": level_name,
                "handlers": [HANDLER_NAME],
            },
        }
    )

    logging.getLogger("dvmbridge").info("Logging configured at level %s", level_name)


def bind_device_context(provider: DeviceProvider) -> None:
    """Point the installed device filter at *provider* (e.g. the live config)."""
    for handler in logging.getLogger().handlers:
        if handler.get_name() != HANDLER_NAME:
            continue
        for log_filter in handler.filters:
            if isinstance(log_filter, DeviceContextFilter):
                log_filter.provider = provider
