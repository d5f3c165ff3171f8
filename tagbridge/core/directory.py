"""Peripheral discovery filtered by target identity."""

from __future__ import annotations

import logging
from collections.abc import Callable

from tagbridge.core.device_match import matches
from tagbridge.core.model import DeviceIdentity
from tagbridge.transports.base import PeripheralHandle, ScannerTransport

LOGGER = logging.getLogger(__name__)


class PeripheralDirectory:
    def __init__(self, scanner: ScannerTransport) -> None:
        self._scanner = scanner
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def scan(self, identity: DeviceIdentity, on_candidate: Callable[[PeripheralHandle], None]) -> None:
        if self._scanning:
            await self.stop_scan()

        def _on_advertisement(handle: PeripheralHandle) -> None:
            LOGGER.debug(
                "Advertisement from %s (name=%s, rssi=%s): %s",
                handle.address,
                handle.name,
                handle.rssi,
                handle.advertised,
            )
            if matches(identity, handle.address):
                on_candidate(handle)

        LOGGER.info("Scanning for peripheral %s", identity)
        await self._scanner.start(_on_advertisement)
        self._scanning = True

    async def stop_scan(self) -> None:
        if not self._scanning:
            return
        self._scanning = False
        LOGGER.info("Stopping peripheral scan")
        await self._scanner.stop()
