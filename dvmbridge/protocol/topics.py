"""MQTT topic helpers for the DVM bridge.

This module is the SINGLE SOURCE OF TRUTH for topic names.
Every name is ``lab/machines/<device id>/<suffix>``; avoid hardcoding
topic strings elsewhere.
"""

from __future__ import annotations

from enum import StrEnum

import msgspec

from ..const import FORBIDDEN_ID_CHARS, MAX_DEVICE_ID_LEN, TOPIC_PREFIX


class Topic(StrEnum):
    """Per-device channel suffixes."""

    COMMAND = "CMD"
    CONFIG = "CONFIG"
    DATA_RAW = "DATA/raw"
    DATA_VALUE = "DATA/value"
    DATA_MODE = "DATA/mode"
    STATE_ID = "STATE/id"
    STATE_ADDRESS = "STATE/IPAddr"
    STATE_STATUS = "STATE/status"
    STATE_CONFIG = "STATE/config"


class InboundKind(StrEnum):
    """Classification of an inbound frame against the current topic set."""

    COMMAND = "command"
    CONFIG = "config"


class InvalidDeviceId(ValueError):
    """Raised when a device identity would corrupt topic routing."""


class TopicSet(msgspec.Struct, frozen=True):
    """The nine topic names derived from one device identity."""

    command: str
    config: str
    data_raw: str
    data_value: str
    data_mode: str
    state_id: str
    state_address: str
    state_status: str
    state_config: str

    def names(self) -> tuple[str, ...]:
        return msgspec.structs.astuple(self)


def topic_path(device_id: str, topic: Topic) -> str:
    """e.g. lab/machines/dvm-3/STATE/status"""
    return f"{TOPIC_PREFIX}/{device_id}/{topic.value}"


def derive_topics(device_id: str) -> TopicSet:
    """Map a device identity to its topic set.

    Pure and total: no validation happens here. Callers run
    :func:`validate_device_id` before an identity is accepted.
    """
    return TopicSet(
        command=topic_path(device_id, Topic.COMMAND),
        config=topic_path(device_id, Topic.CONFIG),
        data_raw=topic_path(device_id, Topic.DATA_RAW),
        data_value=topic_path(device_id, Topic.DATA_VALUE),
        data_mode=topic_path(device_id, Topic.DATA_MODE),
        state_id=topic_path(device_id, Topic.STATE_ID),
        state_address=topic_path(device_id, Topic.STATE_ADDRESS),
        state_status=topic_path(device_id, Topic.STATE_STATUS),
        state_config=topic_path(device_id, Topic.STATE_CONFIG),
    )


def classify_topic(topics: TopicSet, topic_name: str) -> InboundKind | None:
    """Return the inbound kind for *topic_name*, or None when unrecognised."""
    if topic_name == topics.command:
        return InboundKind.COMMAND
    if topic_name == topics.config:
        return InboundKind.CONFIG
    return None


def validate_device_id(device_id: str) -> str:
    """Reject identities that cannot be embedded in a topic path."""
    if not device_id or not device_id.strip():
        raise InvalidDeviceId("device id must not be empty")
    if len(device_id) > MAX_DEVICE_ID_LEN:
        raise InvalidDeviceId(f"device id longer than {MAX_DEVICE_ID_LEN} characters")
    forbidden = sorted(FORBIDDEN_ID_CHARS.intersection(device_id))
    if forbidden:
        raise InvalidDeviceId(f"device id contains topic separator characters {forbidden!r}")
    return device_id
