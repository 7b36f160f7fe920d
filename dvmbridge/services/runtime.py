"""Bridge controller: the scheduling and config-apply state machine.

One controller task owns every instrument exchange and every publish. The
MQTT reader only enqueues frames on :class:`BridgeState`; they are drained
into the pending slots at the end of each tick.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import tenacity
from transitions import Machine

from ..config.model import DeviceConfig
from ..config.schema import ConfigPayloadError, parse_config_payload
from ..config.settings import RuntimeConfig
from ..config.store import ConfigStore, ConfigStoreError
from ..const import TIMEOUT_STATUS
from ..protocol.instrument import InstrumentResponse
from ..state.context import BridgeState
from ..transport.mqtt import MessagingSession
from ..transport.serial import InstrumentTransport, SleepCallable

logger = logging.getLogger("dvmbridge.service")


class BridgeController:
    """Drive the instrument and the messaging session from a single loop."""

    STATE_DISCONNECTED = "disconnected"
    STATE_CONNECTED_IDLE = "connected_idle"
    STATE_APPLYING_CONFIG = "applying_config"

    # Set by transitions.Machine
    fsm_state: str
    trigger: Any

    def __init__(
        self,
        config: RuntimeConfig,
        state: BridgeState,
        instrument: InstrumentTransport,
        session: MessagingSession,
        store: ConfigStore,
        *,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        self.config = config
        self.state = state
        self.instrument = instrument
        self.session = session
        self.store = store
        self._sleep = sleep
        self.session.on_message = self.state.deliver

        self.fsm_state = self.STATE_DISCONNECTED
        self.machine = Machine(
            model=self,
            states=[
                self.STATE_DISCONNECTED,
                self.STATE_CONNECTED_IDLE,
                self.STATE_APPLYING_CONFIG,
            ],
            initial=self.STATE_DISCONNECTED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition("connected", self.STATE_DISCONNECTED, self.STATE_CONNECTED_IDLE)
        self.machine.add_transition("begin_config_apply", self.STATE_CONNECTED_IDLE, self.STATE_APPLYING_CONFIG)
        self.machine.add_transition("config_applied", self.STATE_APPLYING_CONFIG, self.STATE_CONNECTED_IDLE)
        self.machine.add_transition("connection_lost", "*", self.STATE_DISCONNECTED)

    # ------------------------------------------------------------- connection
    def _log_connect_retry(self, retry_state: tenacity.RetryCallState) -> None:
        logger.warning(
            "Broker %s unreachable; retrying in %.1fs (attempt %d)",
            self.state.config.server,
            self.config.reconnect_delay,
            retry_state.attempt_number,
        )

    async def ensure_connected(self) -> None:
        """Connect to the configured broker, retrying forever at a fixed delay."""
        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_result(lambda ok: not ok),
            wait=tenacity.wait_fixed(self.config.reconnect_delay),
            stop=tenacity.stop_never,
            before_sleep=self._log_connect_retry,
            sleep=self._sleep,
        )
        async for attempt in retryer:
            with attempt:
                ok = await self._connect_sequence()
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(ok)

    async def _connect_sequence(self) -> bool:
        snapshot = self.state.snapshot
        if not await self.session.connect(snapshot.config.server, snapshot.config.device_id):
            return False
        self.trigger("connected")

        await self.status_report()
        await self.session.subscribe(snapshot.topics.command)
        await self.session.subscribe(snapshot.topics.config)
        await self.session.publish(snapshot.topics.state_config, snapshot.config.encode_state())
        return True

    # ------------------------------------------------------------------- tick
    async def tick(self) -> None:
        """One controller iteration."""
        if not self.session.is_connected:
            self.trigger("connection_lost")
            await self.ensure_connected()

        if self.state.pending_command is not None:
            await self.process_command()
        elif self.state.pending_config is not None:
            await self.apply_config()
        elif self.state.countdown_expired():
            await self.auto_report()
        else:
            self.state.decrement_countdown()

        self.state.drain_inbound()

    async def run(self) -> None:
        logger.info("Bridge controller starting as %s.", self.state.config.device_id)
        await self.ensure_connected()
        while True:
            await self.tick()
            await self._sleep(self.config.tick_interval)

    # --------------------------------------------------------------- commands
    async def process_command(self) -> None:
        """Forward the pending command verbatim, then report the display."""
        command = self.state.take_command()
        if command is None:
            return
        logger.info(
            "Forwarding remote command (%d chars) to instrument.",
            len(command),
            extra={"topic": self.state.topics.command},
        )
        await self.instrument.send_command(command)
        await self._sleep(self.config.command_settle)
        await self.display_report()

    async def auto_report(self) -> None:
        await self.display_report()
        await self._sleep(self.config.report_gap)
        await self.status_report()
        self.state.reset_countdown()

    # ----------------------------------------------------------------- config
    async def apply_config(self) -> None:
        """Validate, persist and activate the pending config.

        A payload that fails validation is rejected as a whole; the current
        config stays active and is echoed back on STATE/config.
        """
        payload = self.state.take_config()
        if payload is None:
            return
        self.trigger("begin_config_apply")
        try:
            try:
                new_config = parse_config_payload(payload)
            except ConfigPayloadError as exc:
                logger.warning("Rejected config payload: %s", exc, extra={"payload": payload})
                await self._publish_current_config()
                return

            try:
                self.store.save(new_config)
            except ConfigStoreError as exc:
                logger.error("Config apply abandoned; store write failed: %s", exc)
                await self._publish_current_config()
                return

            await self._activate(new_config)
        finally:
            self.trigger("config_applied")

    async def _activate(self, new_config: DeviceConfig) -> None:
        previous = self.state.config
        self.state.apply(new_config)
        logger.info(
            "Applied config: server=%s id=%s interval=%d (was server=%s id=%s).",
            new_config.server,
            new_config.device_id,
            new_config.interval,
            previous.server,
            previous.device_id,
        )
        await self.session.disconnect()
        self.trigger("connection_lost")
        await self.ensure_connected()

    async def _publish_current_config(self) -> None:
        snapshot = self.state.snapshot
        await self.session.publish(snapshot.topics.state_config, snapshot.config.encode_state())

    # ---------------------------------------------------------------- reports
    async def _publish_state(self, status: str) -> None:
        snapshot = self.state.snapshot
        await self.session.publish(snapshot.topics.state_id, snapshot.config.device_id)
        await self.session.publish(snapshot.topics.state_address, self.state.network_address)
        await self.session.publish(snapshot.topics.state_status, status)

    async def status_report(self) -> InstrumentResponse:
        response = await self.instrument.query_status()
        if response.timed_out:
            await self._publish_state(TIMEOUT_STATUS)
        else:
            await self._publish_state(str(response.status_code))
        return response

    async def display_report(self) -> InstrumentResponse:
        response = await self.instrument.query_display()
        if response.timed_out:
            await self._publish_state(TIMEOUT_STATUS)
            return response

        topics = self.state.topics
        if not await self.session.publish(topics.data_raw, response.line):
            logger.warning("Display response failed to send; skipping mode/value split.")
            return response

        reading = response.reading
        if reading is not None:
            await self.session.publish(topics.data_mode, reading.mode)
            await self.session.publish(topics.data_value, reading.value_text)
        return response
