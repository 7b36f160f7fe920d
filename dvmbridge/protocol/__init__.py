"""Protocol helper utilities for the DVM bridge."""

from .instrument import DisplayReading, InstrumentResponse
from .topics import (
    InboundKind,
    InvalidDeviceId,
    Topic,
    TopicSet,
    classify_topic,
    derive_topics,
    topic_path,
    validate_device_id,
)
from . import instrument, topics

__all__ = [
    "DisplayReading",
    "InboundKind",
    "InstrumentResponse",
    "InvalidDeviceId",
    "Topic",
    "TopicSet",
    "classify_topic",
    "derive_topics",
    "instrument",
    "topic_path",
    "topics",
    "validate_device_id",
]
