"""Instrument dialect: escape-command framing and response decoding.

The instrument speaks single-character escape commands (``ESC`` followed
by a command letter) and answers with newline-terminated text lines.
"""

from __future__ import annotations

import re

import msgspec

from ..const import (
    CMD_DISPLAY,
    CMD_STATUS,
    ESCAPE,
    LINE_TERMINATOR,
    MODE_PREFIX_LEN,
    SERIAL_ENCODING,
)

__all__ = [
    "CMD_DISPLAY",
    "CMD_STATUS",
    "DisplayReading",
    "InstrumentResponse",
    "encode_escape_command",
    "encode_line",
    "format_value",
    "parse_float_prefix",
    "strip_newline",
]

# Leading numeric prefix accepted by C atof() in its decimal form.
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class DisplayReading(msgspec.Struct, frozen=True):
    """Display response split into its mode prefix and numeric value."""

    mode: bytes
    value: float

    @property
    def value_text(self) -> str:
        return format_value(self.value)


class InstrumentResponse(msgspec.Struct, frozen=True):
    """Outcome of one instrument query.

    ``timed_out`` is a first-class outcome: no data arrived within the
    settle window. ``data`` holds the received bytes up to, not including,
    the newline; they are published as-is, never transcoded.
    """

    data: bytes = b""
    timed_out: bool = False

    @classmethod
    def timeout(cls) -> InstrumentResponse:
        return cls(timed_out=True)

    @property
    def line(self) -> bytes:
        """Payload without the CR the instrument sends before its newline."""
        return self.data[:-1] if self.data.endswith(b"\r") else self.data

    @property
    def raw(self) -> str:
        return self.line.decode(SERIAL_ENCODING)

    @property
    def status_code(self) -> int:
        """First received byte as an unsigned integer (0 when empty).

        Read from ``data``, so a status byte of 0x0D is not mistaken for
        the line's CR.
        """
        if not self.data:
            return 0
        return self.data[0]

    @property
    def reading(self) -> DisplayReading | None:
        """Mode/value split, only for responses longer than the mode prefix."""
        line = self.line
        if self.timed_out or len(line) <= MODE_PREFIX_LEN:
            return None
        return DisplayReading(
            mode=line[:MODE_PREFIX_LEN],
            value=parse_float_prefix(line[MODE_PREFIX_LEN:].decode(SERIAL_ENCODING)),
        )


def encode_escape_command(code: bytes) -> bytes:
    """e.g. b"S" -> ESC 'S' CR LF"""
    if len(code) != 1:
        raise ValueError("escape command must be a single byte")
    return bytes((ESCAPE,)) + code + LINE_TERMINATOR


def encode_line(text: str) -> bytes:
    """Encode a pass-through command line for the instrument."""
    return text.encode(SERIAL_ENCODING, errors="replace") + LINE_TERMINATOR


def strip_newline(data: bytes) -> bytes:
    """Drop the line delimiter; any CR before it stays with the payload."""
    if data.endswith(b"\n"):
        return data[:-1]
    return data


def parse_float_prefix(text: str) -> float:
    """Parse the longest leading decimal number, like C ``atof``.

    Text without a numeric prefix yields ``0.0``.
    """
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        return 0.0
    return float(match.group(1))


def format_value(value: float) -> str:
    return f"{value:.8f}"

