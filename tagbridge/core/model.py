"""Core data models shared by the session, channel, scheduler and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from tagbridge.core.errors import InvariantViolationError

if TYPE_CHECKING:
    from tagbridge.transports.base import PeripheralHandle

WILDCARD = "*"


@dataclass(frozen=True)
class DeviceIdentity:
    value: str

    @property
    def is_wildcard(self) -> bool:
        return self.value == WILDCARD

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SensorProfile:
    button_char_uuid: str
    motion_char_uuid: str
    accel_format: str = "<hhh"
    accel_scale: float = 1.0


@dataclass(frozen=True)
class BleSettings:
    target: DeviceIdentity
    adapter: str | None
    restart_delay_ms: int
    profile: SensorProfile


@dataclass(frozen=True)
class MqttSettings:
    host: str
    port: int
    topic: str
    client_id: str = ""
    keepalive_s: int = 60

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class AppSettings:
    send_interval_ms: int
    start_delay_ms: int
    logging_level: str


@dataclass(frozen=True)
class GatewayConfig:
    ble: BleSettings
    mqtt: MqttSettings
    app: AppSettings


@dataclass
class Accel:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class DeviceState:
    """Last known sensor values of the connected peripheral.

    ``button_pressed`` latches until the next published snapshot consumes it.
    """

    accel: Accel = field(default_factory=Accel)
    button_pressed: bool = False

    def record_accel(self, x: float, y: float, z: float) -> None:
        self.accel = Accel(x=x, y=y, z=z)

    def record_button(self, pressed: bool) -> None:
        if pressed:
            self.button_pressed = True

    def consume(self) -> dict[str, Any]:
        snapshot = {
            "accel": {"x": self.accel.x, "y": self.accel.y, "z": self.accel.z},
            "button": self.button_pressed,
        }
        self.button_pressed = False
        return snapshot

    def reset(self) -> None:
        self.accel = Accel()
        self.button_pressed = False


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ConnectionRecord:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    handle: PeripheralHandle | None = None

    def mark_connected(self, handle: PeripheralHandle) -> None:
        if self.handle is not None and self.handle is not handle:
            raise InvariantViolationError(
                f"Refusing to hold {handle.address}: already holding {self.handle.address}"
            )
        self.status = ConnectionStatus.CONNECTED
        self.handle = handle

    def mark(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            raise InvariantViolationError("CONNECTED requires a handle; use mark_connected()")
        self.status = status
        self.handle = None


class LinkStatus(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


@dataclass
class BrokerLink:
    endpoint: str
    status: LinkStatus = LinkStatus.CLOSED


class EnvelopeStatus(str, Enum):
    GATEWAY_CONNECTED = "GATEWAY_CONNECTED"
    DEVICE_CONNECTED = "DEVICE_CONNECTED"


@dataclass(frozen=True)
class Envelope:
    status: EnvelopeStatus
    timestamp: int
    payload: dict[str, Any] | None = None


@dataclass
class PublishStats:
    successful: int = 0
    dropped: int = 0
    last_error: str | None = None

    def record_success(self) -> None:
        self.successful += 1

    def record_drop(self, reason: str) -> None:
        self.dropped += 1
        self.last_error = reason
