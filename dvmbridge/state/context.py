"""Runtime state container for the DVM bridge daemon."""

from __future__ import annotations

import asyncio
import logging
from typing import Final

import msgspec

from ..config.model import DeviceConfig
from ..config.settings import RuntimeConfig
from ..const import SERIAL_ENCODING
from ..protocol.topics import InboundKind, TopicSet, classify_topic, derive_topics
from ..util import local_ipv4_address

logger = logging.getLogger("dvmbridge.state")

__all__: Final[tuple[str, ...]] = (
    "BridgeState",
    "ConfigSnapshot",
    "InboundFrame",
    "create_bridge_state",
)


class ConfigSnapshot(msgspec.Struct, frozen=True):
    """Device config paired with the topic set derived from it."""

    config: DeviceConfig
    topics: TopicSet

    @classmethod
    def build(cls, config: DeviceConfig) -> ConfigSnapshot:
        return cls(config=config, topics=derive_topics(config.device_id))


class InboundFrame(msgspec.Struct, frozen=True):
    """A classified inbound message waiting to be drained by the controller."""

    kind: InboundKind
    payload: bytes


class BridgeState:
    """State shared between the messaging reader and the controller loop.

    The reader only calls :meth:`deliver`, which pushes onto a
    single-producer/single-consumer queue. Everything else (pending slots,
    countdown, snapshot swaps) runs on the controller task.
    """

    def __init__(self, config: DeviceConfig, network_interface: str | None = None) -> None:
        self._snapshot = ConfigSnapshot.build(config)
        self.network_interface = network_interface
        self.inbound: asyncio.Queue[InboundFrame] = asyncio.Queue()
        self.pending_command: str | None = None
        self.pending_config: bytes | None = None
        self.countdown: int = config.interval

    # ------------------------------------------------------------------ config
    @property
    def snapshot(self) -> ConfigSnapshot:
        return self._snapshot

    @property
    def config(self) -> DeviceConfig:
        return self._snapshot.config

    @property
    def topics(self) -> TopicSet:
        return self._snapshot.topics

    def apply(self, config: DeviceConfig) -> ConfigSnapshot:
        """Swap in *config* and its topics as one unit; reset the countdown."""
        self._snapshot = ConfigSnapshot.build(config)
        self.countdown = config.interval
        return self._snapshot

    @property
    def network_address(self) -> str:
        return local_ipv4_address(self.network_interface)

    # ----------------------------------------------------------------- inbound
    def deliver(self, topic_name: str, payload: bytes) -> InboundKind | None:
        """Classify an inbound frame on arrival and queue it (producer side)."""
        kind = classify_topic(self.topics, topic_name)
        if kind is None:
            logger.debug("Ignoring message on unrecognised topic %s", topic_name)
            return None
        self.inbound.put_nowait(InboundFrame(kind=kind, payload=payload))
        return kind

    def drain_inbound(self) -> int:
        """Move queued frames into the pending slots; the latest frame wins."""
        drained = 0
        while True:
            try:
                frame = self.inbound.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            drained += 1
            if frame.kind is InboundKind.COMMAND:
                if self.pending_command is not None:
                    logger.info("Pending command superseded by a newer one.")
                self.pending_command = frame.payload.decode(SERIAL_ENCODING)
            else:
                if self.pending_config is not None:
                    logger.info("Pending config superseded by a newer one.")
                self.pending_config = frame.payload

    def take_command(self) -> str | None:
        command, self.pending_command = self.pending_command, None
        return command

    def take_config(self) -> bytes | None:
        payload, self.pending_config = self.pending_config, None
        return payload

    # -------------------------------------------------------------- countdown
    def countdown_expired(self) -> bool:
        return self.config.auto_report_enabled and self.countdown <= 0

    def decrement_countdown(self) -> None:
        if self.config.auto_report_enabled:
            self.countdown -= 1

    def reset_countdown(self) -> None:
        self.countdown = self.config.interval


def create_bridge_state(config: DeviceConfig, runtime: RuntimeConfig) -> BridgeState:
    """Factory for BridgeState instances."""
    return BridgeState(config, network_interface=runtime.network_interface)
