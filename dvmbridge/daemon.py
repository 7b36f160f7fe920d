#!/usr/bin/env python3
"""Async orchestrator for the DVM bridge daemon.

Architecture:
    main() -> BridgeDaemon -> supervised controller task
        ├── InstrumentTransport (serial link to the meter)
        ├── MessagingSession (MQTT broker session)
        └── BridgeController (tick loop, reports, config apply)

The process never exits on its own: every runtime failure either loops
inside the controller or restarts it under the supervisor's backoff.
Only an unreadable settings file aborts startup.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import NoReturn

import tenacity

# uvloop is mandatory; a missing install must fail at import.
import uvloop

from dvmbridge.config.logging import bind_device_context, configure_logging
from dvmbridge.config.model import DeviceConfig
from dvmbridge.config.settings import RuntimeConfig, get_config_path, load_runtime_config
from dvmbridge.config.store import ConfigStore, ConfigStoreError
from dvmbridge.const import SUPERVISOR_MAX_BACKOFF, SUPERVISOR_MIN_BACKOFF
from dvmbridge.services.runtime import BridgeController
from dvmbridge.state.context import BridgeState, create_bridge_state
from dvmbridge.transport import InstrumentTransport, MessagingSession
from dvmbridge.transport.serial import SleepCallable

logger = logging.getLogger("dvmbridge")


class BridgeDaemon:
    """Owns the long-lived components and supervises the controller.

    Attributes:
        config: Runtime settings loaded from TOML.
        store: Durable device configuration record.
        state: Shared bridge state (config snapshot, inbound queue, countdown).
        instrument: Serial request/response driver.
        session: MQTT messaging session.
    """

    def __init__(self, config: RuntimeConfig, *, sleep: SleepCallable = asyncio.sleep) -> None:
        self.config = config
        self._sleep = sleep
        self.store = ConfigStore(config.store_path, config.factory_config)
        self.state: BridgeState = create_bridge_state(self._load_device_config(), config)
        self.instrument = InstrumentTransport(config, sleep=sleep)
        self.session = MessagingSession(config)

    def _load_device_config(self) -> DeviceConfig:
        try:
            return self.store.load()
        except ConfigStoreError as exc:
            logger.error("Config store unavailable (%s); running on factory defaults.", exc)
            return self.store.factory

    def build_controller(self) -> BridgeController:
        return BridgeController(
            self.config,
            self.state,
            self.instrument,
            self.session,
            self.store,
            sleep=self._sleep,
        )

    async def _run_controller(self) -> None:
        if not self.instrument.is_open:
            await self.instrument.open()
        await self.build_controller().run()

    @staticmethod
    def _before_restart(retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logging.getLogger("dvmbridge.supervisor").error(
            "bridge-controller failed (%s); restarting in %.1fs", exc, delay
        )

    async def _supervise(self) -> None:
        """Run the controller, restarting it on failure with exponential backoff."""
        retryer = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(multiplier=SUPERVISOR_MIN_BACKOFF, max=SUPERVISOR_MAX_BACKOFF),
            retry=tenacity.retry_if_not_exception_type(
                (asyncio.CancelledError, SystemExit, KeyboardInterrupt, GeneratorExit)
            ),
            stop=tenacity.stop_never,
            before_sleep=self._before_restart,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                await self._run_controller()
                logging.getLogger("dvmbridge.supervisor").warning(
                    "bridge-controller exited cleanly; supervisor exiting"
                )

    async def run(self) -> None:
        """Main async entry point."""
        try:
            await self._supervise()
        except asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
            raise
        finally:
            await self.session.disconnect()
            await self.instrument.close()
            logger.info("DVM bridge daemon stopped.")


def main() -> NoReturn:  # pragma: no cover (Entry point wrapper)
    try:
        config = load_runtime_config()
    except ValueError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.critical("Startup aborted: %s", exc)
        sys.exit(1)
    configure_logging(config)

    logger.info(
        "Starting DVM bridge daemon. Settings: %s Serial: %s@%d Store: %s",
        get_config_path(),
        config.serial_port,
        config.serial_baud,
        config.store_path,
    )

    try:
        daemon = BridgeDaemon(config)
        bind_device_context(lambda: daemon.state.config.device_id)
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
