"""Stable public API for embedding the tagbridge gateway.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from tagbridge.core.config_loader import LoadedConfig, load_config
from tagbridge.core.controller import AppState, GatewayController
from tagbridge.core.errors import (
    ConfigLoadError,
    ConfigValidationError,
    GatewayFaultError,
    InvariantViolationError,
    TagbridgeError,
    TransportConnectError,
    TransportError,
    TransportSendError,
)
from tagbridge.core.model import (
    ConnectionStatus,
    DeviceIdentity,
    DeviceState,
    Envelope,
    EnvelopeStatus,
    GatewayConfig,
    LinkStatus,
)
from tagbridge.transports.base import BrokerTransport, PeripheralHandle, ScannerTransport

__all__ = [
    "TagbridgeError",
    "ConfigLoadError",
    "ConfigValidationError",
    "GatewayFaultError",
    "InvariantViolationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "ConnectionStatus",
    "DeviceIdentity",
    "DeviceState",
    "Envelope",
    "EnvelopeStatus",
    "GatewayConfig",
    "LinkStatus",
    "LoadedConfig",
    "BrokerTransport",
    "PeripheralHandle",
    "ScannerTransport",
    "AppState",
    "Gateway",
    "load_config",
]


class Gateway:
    """Public facade over the gateway controller.

    A `Gateway` owns one controller run: construct it from a loaded
    configuration (optionally with custom transports), then either drive
    ``start()``/``stop()`` yourself or hand a stop event to ``run()``.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        scanner: ScannerTransport | None = None,
        broker: BrokerTransport | None = None,
    ) -> None:
        self._controller = GatewayController(config, scanner=scanner, broker=broker)

    @classmethod
    def from_file(cls, path: Path | None = None, **kwargs) -> Gateway:
        return cls(load_config(path).config, **kwargs)

    @property
    def state(self) -> AppState:
        return self._controller.state

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._controller.context.record.status

    @property
    def link_status(self) -> LinkStatus:
        return self._controller.channel.status

    async def start(self) -> None:
        await self._controller.start()

    async def stop(self) -> None:
        await self._controller.stop()

    async def run(self, stop_event: asyncio.Event) -> None:
        await self._controller.run(stop_event)
