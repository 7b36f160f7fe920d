"""Tests for topic derivation and identity validation."""

from __future__ import annotations

import pytest

from dvmbridge.protocol.topics import (
    InboundKind,
    InvalidDeviceId,
    Topic,
    classify_topic,
    derive_topics,
    topic_path,
    validate_device_id,
)


@pytest.mark.parametrize("device_id", ["unconfigured", "dvm-3", "bench_7.A", "x"])
def test_derive_topics_yields_nine_distinct_prefixed_names(device_id: str) -> None:
    topics = derive_topics(device_id)
    names = topics.names()

    assert len(names) == 9
    assert len(set(names)) == 9
    assert all(name.startswith(f"lab/machines/{device_id}/") for name in names)


def test_derive_topics_suffixes() -> None:
    topics = derive_topics("dvm-3")

    assert topics.command == "lab/machines/dvm-3/CMD"
    assert topics.config == "lab/machines/dvm-3/CONFIG"
    assert topics.data_raw == "lab/machines/dvm-3/DATA/raw"
    assert topics.data_value == "lab/machines/dvm-3/DATA/value"
    assert topics.data_mode == "lab/machines/dvm-3/DATA/mode"
    assert topics.state_id == "lab/machines/dvm-3/STATE/id"
    assert topics.state_address == "lab/machines/dvm-3/STATE/IPAddr"
    assert topics.state_status == "lab/machines/dvm-3/STATE/status"
    assert topics.state_config == "lab/machines/dvm-3/STATE/config"


def test_derive_topics_is_pure() -> None:
    assert derive_topics("dev2") == derive_topics("dev2")
    assert derive_topics("dev2") != derive_topics("dev3")


def test_topic_path_uses_enum_value() -> None:
    assert topic_path("a", Topic.STATE_STATUS) == "lab/machines/a/STATE/status"


def test_classify_topic() -> None:
    topics = derive_topics("dvm-1")

    assert classify_topic(topics, topics.command) is InboundKind.COMMAND
    assert classify_topic(topics, topics.config) is InboundKind.CONFIG
    assert classify_topic(topics, topics.state_status) is None
    assert classify_topic(topics, "lab/machines/other/CMD") is None


@pytest.mark.parametrize(
    "device_id",
    ["", "   ", "a/b", "dev+", "#", "nul\x00id", "x" * 65],
)
def test_validate_device_id_rejects_unroutable_identities(device_id: str) -> None:
    with pytest.raises(InvalidDeviceId):
        validate_device_id(device_id)


def test_validate_device_id_accepts_max_length() -> None:
    device_id = "d" * 64
    assert validate_device_id(device_id) == device_id
