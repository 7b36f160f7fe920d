"""MQTT messaging session for the DVM bridge.

Wraps one aiomqtt client per broker connection. Inbound messages are read
by a background task (the client's own I/O) and handed to a delivery
callback; publishing and subscribing are awaited by the controller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import aiomqtt

from ..config.settings import RuntimeConfig
from ..util import log_hexdump

logger = logging.getLogger("dvmbridge.mqtt")

MessageCallback = Callable[[str, bytes], object]


def _payload_bytes(payload: object) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    return str(payload).encode("utf-8")


class MessagingSession:
    """Connection to the pub/sub broker.

    Failures never raise out of this class: ``connect``, ``subscribe`` and
    ``publish`` report them as ``False`` and log the cause.
    """

    def __init__(self, config: RuntimeConfig, on_message: MessageCallback | None = None) -> None:
        self.config = config
        self.on_message = on_message
        self.broker: str | None = None
        self._client: aiomqtt.Client | None = None
        self._reader: asyncio.Task[None] | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._connected

    async def connect(self, broker: str, client_id: str) -> bool:
        """Open a session against *broker*; returns False when unreachable."""
        if self._client is not None:
            await self.disconnect()

        client = aiomqtt.Client(
            hostname=broker,
            port=self.config.mqtt_port,
            identifier=client_id,
            keepalive=self.config.mqtt_keepalive,
            protocol=aiomqtt.ProtocolVersion.V311,
            clean_session=True,
            logger=logging.getLogger("dvmbridge.mqtt.client"),
        )
        try:
            await client.__aenter__()
        except (aiomqtt.MqttError, OSError) as exc:
            logger.warning("MQTT connection to %s:%d failed: %s", broker, self.config.mqtt_port, exc)
            return False

        self._client = client
        self._connected = True
        self.broker = broker
        self._reader = asyncio.create_task(self._reader_loop(client), name="mqtt-reader")
        logger.info("Connected to MQTT broker %s:%d as %s.", broker, self.config.mqtt_port, client_id)
        return True

    async def disconnect(self) -> None:
        """Tear the session down explicitly (used before a reconnect)."""
        client, self._client = self._client, None
        reader, self._reader = self._reader, None
        self._connected = False

        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as exc:
            logger.debug("Ignoring MQTT error during disconnect: %s", exc)
        logger.info("Disconnected from MQTT broker %s.", self.broker)

    async def subscribe(self, topic: str) -> bool:
        if self._client is None:
            logger.warning("Cannot subscribe to %s: not connected.", topic)
            return False
        try:
            await self._client.subscribe(topic, qos=0)
        except aiomqtt.MqttError as exc:
            logger.warning("MQTT subscribe to %s failed: %s", topic, exc)
            return False
        logger.info("Subscribed to %s", topic)
        return True

    async def publish(self, topic: str, payload: bytes | str) -> bool:
        """Publish once; a failure is logged and dropped, never retried."""
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        if self._client is None:
            logger.warning("MQTT publish dropped: not connected.", extra={"topic": topic})
            return False

        log_hexdump(logger, logging.DEBUG, f"MQTT PUB > {topic}", data)
        try:
            await self._client.publish(topic, data, qos=0, retain=False)
        except aiomqtt.MqttError as exc:
            logger.warning("MQTT publish failed: %s", exc, extra={"topic": topic})
            return False
        return True

    async def _reader_loop(self, client: aiomqtt.Client) -> None:
        try:
            async for message in client.messages:
                topic_name = str(message.topic)
                payload = _payload_bytes(message.payload)
                log_hexdump(logger, logging.DEBUG, f"MQTT SUB < {topic_name}", payload)
                if self.on_message is None:
                    continue
                try:
                    self.on_message(topic_name, payload)
                except (ValueError, TypeError, RuntimeError) as exc:
                    logger.exception("Error delivering MQTT message on %s: %s", topic_name, exc)
        except aiomqtt.MqttError as exc:
            logger.warning("MQTT connection lost: %s", exc)
        finally:
            if self._client is client:
                self._connected = False
