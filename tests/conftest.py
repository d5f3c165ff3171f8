from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from tagbridge.core.device_match import parse_identity
from tagbridge.core.errors import TransportConnectError, TransportSendError
from tagbridge.core.model import (
    AppSettings,
    BleSettings,
    GatewayConfig,
    LinkStatus,
    MqttSettings,
    SensorProfile,
)

BUTTON_UUID = "ef680302-9b35-4933-9b10-52ffa9740042"
MOTION_UUID = "ef680406-9b35-4933-9b10-52ffa9740042"
TOPIC = "gateway/test-host/telemetry"


class FakeHandle:
    def __init__(
        self,
        address: str = "C0:98:E5:00:00:01",
        name: str | None = "Thingy",
        *,
        fail_connect: bool = False,
    ) -> None:
        self._address = address
        self._name = name
        self.fail_connect = fail_connect
        self.connects = 0
        self.teardowns = 0
        self.on_disconnect: Callable[[], None] | None = None
        self.callbacks: dict[str, Callable[[bytes], None]] = {}

    @property
    def address(self) -> str:
        return self._address

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def rssi(self) -> int | None:
        return -60

    @property
    def advertised(self) -> dict[str, Any]:
        return {"local_name": self._name, "service_uuids": [], "tx_power": None}

    @property
    def live(self) -> bool:
        return self.connects > self.teardowns

    async def connect(self, on_disconnect: Callable[[], None]) -> None:
        await asyncio.sleep(0)
        self.connects += 1
        if self.fail_connect:
            raise TransportConnectError(f"BLE connect failed for {self._address}")
        self.on_disconnect = on_disconnect

    async def subscribe(self, char_uuid: str, callback: Callable[[bytes], None]) -> None:
        await asyncio.sleep(0)
        self.callbacks[char_uuid] = callback

    async def teardown(self) -> None:
        await asyncio.sleep(0)
        self.teardowns += 1

    def notify(self, char_uuid: str, data: bytes) -> None:
        self.callbacks[char_uuid](data)

    def drop_link(self) -> None:
        assert self.on_disconnect is not None
        self.on_disconnect()


class FakeScanner:
    def __init__(self, *, fail_starts: int = 0) -> None:
        self.fail_starts = fail_starts
        self.starts = 0
        self.stops = 0
        self.callback: Callable | None = None

    @property
    def scanning(self) -> bool:
        return self.callback is not None

    async def start(self, on_advertisement) -> None:
        self.starts += 1
        if self.fail_starts:
            self.fail_starts -= 1
            raise TransportConnectError("BLE scan could not start: adapter not ready")
        self.callback = on_advertisement

    async def stop(self) -> None:
        self.stops += 1
        self.callback = None

    def advertise(self, handle: FakeHandle) -> None:
        if self.callback is not None:
            self.callback(handle)


class FakeBroker:
    def __init__(self) -> None:
        self.connects: list[tuple[str, int]] = []
        self.published: list[tuple[str, bytes]] = []
        self.closes = 0
        self.fail_publish = False
        self.on_state: Callable[[LinkStatus, str | None], None] | None = None

    def connect(self, host: str, port: int, on_state) -> None:
        self.connects.append((host, port))
        self.on_state = on_state

    def publish(self, topic: str, payload: bytes) -> None:
        if self.fail_publish:
            raise TransportSendError("MQTT publish failed: no connection")
        self.published.append((topic, payload))

    def close(self) -> None:
        self.closes += 1

    def set_state(self, status: LinkStatus, reason: str | None = None) -> None:
        assert self.on_state is not None
        self.on_state(status, reason)


def build_config(
    *,
    target: str = "*",
    restart_delay_ms: int = 10,
    send_interval_ms: int = 20,
    start_delay_ms: int = 0,
) -> GatewayConfig:
    return GatewayConfig(
        ble=BleSettings(
            target=parse_identity(target),
            adapter=None,
            restart_delay_ms=restart_delay_ms,
            profile=SensorProfile(
                button_char_uuid=BUTTON_UUID,
                motion_char_uuid=MOTION_UUID,
                accel_format="<hhh",
                accel_scale=1 / 1024,
            ),
        ),
        mqtt=MqttSettings(host="broker.local", port=1883, topic=TOPIC),
        app=AppSettings(
            send_interval_ms=send_interval_ms,
            start_delay_ms=start_delay_ms,
            logging_level="DEBUG",
        ),
    )


async def _settle(seconds: float = 0.0) -> None:
    await asyncio.sleep(seconds)
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def make_handle():
    return FakeHandle


@pytest.fixture
def make_scanner():
    return FakeScanner


@pytest.fixture
def scanner() -> FakeScanner:
    return FakeScanner()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()
