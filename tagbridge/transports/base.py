"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from tagbridge.core.model import LinkStatus


class PeripheralHandle(Protocol):
    @property
    def address(self) -> str: ...

    @property
    def name(self) -> str | None: ...

    @property
    def rssi(self) -> int | None: ...

    @property
    def advertised(self) -> dict[str, Any]:
        """Advertisement details such as local name, service UUIDs and TX power."""

    async def connect(self, on_disconnect: Callable[[], None]) -> None:
        """Connect to the peripheral and arm the disconnect notification."""

    async def subscribe(self, char_uuid: str, callback: Callable[[bytes], None]) -> None:
        """Enable notifications on a characteristic."""

    async def teardown(self) -> None:
        """Disconnect and release the peripheral; must tolerate a gone link."""


class ScannerTransport(Protocol):
    async def start(self, on_advertisement: Callable[[PeripheralHandle], None]) -> None:
        """Start discovery, reporting every advertisement seen."""

    async def stop(self) -> None:
        """Stop discovery."""


class BrokerTransport(Protocol):
    def connect(self, host: str, port: int, on_state: Callable[[LinkStatus, str | None], None]) -> None:
        """Begin an auto-reconnecting connection; state changes go to ``on_state``."""

    def publish(self, topic: str, payload: bytes) -> None:
        """Hand a message to the network layer or raise TransportSendError."""

    def close(self) -> None:
        """Disconnect and stop reconnecting."""
