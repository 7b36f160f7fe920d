"""Pytest configuration for DVM bridge tests."""

from __future__ import annotations

from collections import deque
from pathlib import Path

import pytest

from dvmbridge.config.model import DeviceConfig
from dvmbridge.config.settings import RuntimeConfig
from dvmbridge.config.store import ConfigStore
from dvmbridge.protocol.instrument import InstrumentResponse
from dvmbridge.state import context as context_mod
from dvmbridge.state.context import BridgeState, create_bridge_state

TEST_ADDRESS = "192.0.2.10"


class FakeSession:
    """In-memory stand-in for MessagingSession."""

    def __init__(self) -> None:
        self.on_message = None
        self.connected = False
        self.connect_results: deque[bool] = deque()
        self.connects: list[tuple[str, str]] = []
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, str]] = []
        self.sent: list[tuple[str, bytes | str]] = []
        self.fail_publish: set[str] = set()
        self.disconnects = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self, broker: str, client_id: str) -> bool:
        self.connects.append((broker, client_id))
        ok = self.connect_results.popleft() if self.connect_results else True
        self.connected = ok
        return ok

    async def disconnect(self) -> None:
        self.disconnects += 1
        self.connected = False

    async def subscribe(self, topic: str) -> bool:
        self.subscriptions.append(topic)
        return True

    async def publish(self, topic: str, payload: bytes | str) -> bool:
        if topic in self.fail_publish:
            return False
        self.sent.append((topic, payload))
        text = payload.decode("latin-1") if isinstance(payload, bytes) else payload
        self.published.append((topic, text))
        return True

    def payloads(self, topic: str) -> list[str]:
        return [payload for name, payload in self.published if name == topic]


class FakeInstrument:
    """Scripted instrument; an unscripted query times out."""

    def __init__(self) -> None:
        self.status: deque[InstrumentResponse] = deque()
        self.display: deque[InstrumentResponse] = deque()
        self.commands: list[str] = []
        self.queries: list[str] = []
        self.is_open = True

    async def open(self) -> None:
        self.is_open = True

    async def close(self) -> None:
        self.is_open = False

    async def query_status(self) -> InstrumentResponse:
        self.queries.append("S")
        return self.status.popleft() if self.status else InstrumentResponse.timeout()

    async def query_display(self) -> InstrumentResponse:
        self.queries.append("D")
        return self.display.popleft() if self.display else InstrumentResponse.timeout()

    async def send_command(self, text: str) -> bool:
        self.commands.append(text)
        return True


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture(autouse=True)
def _fixed_address(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(context_mod, "local_ipv4_address", lambda _interface=None: TEST_ADDRESS)


@pytest.fixture
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig(
        serial_port="/dev/null",
        store_path=str(tmp_path / "preferences.json"),
        factory_server="broker.test",
        factory_device_id="dvm-1",
        factory_interval=3,
    )


@pytest.fixture
def device_config(runtime_config: RuntimeConfig) -> DeviceConfig:
    return runtime_config.factory_config


@pytest.fixture
def store(runtime_config: RuntimeConfig) -> ConfigStore:
    return ConfigStore(runtime_config.store_path, runtime_config.factory_config)


@pytest.fixture
def bridge_state(device_config: DeviceConfig, runtime_config: RuntimeConfig) -> BridgeState:
    return create_bridge_state(device_config, runtime_config)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def instrument() -> FakeInstrument:
    return FakeInstrument()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
