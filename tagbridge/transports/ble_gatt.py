"""BLE GATT transport implementation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from tagbridge.core.errors import TransportConnectError
from tagbridge.transports.base import PeripheralHandle

LOGGER = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_S = 20.0


def _adapter_kwargs(adapter: str | None) -> dict[str, Any]:
    return {"adapter": adapter} if adapter else {}


class BleakPeripheralHandle:
    def __init__(
        self,
        device: BLEDevice,
        *,
        rssi: int | None = None,
        advertisement: AdvertisementData | None = None,
        adapter: str | None = None,
        timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ) -> None:
        self._device = device
        self._rssi = rssi
        self._advertisement = advertisement
        self._adapter = adapter
        self._timeout_s = timeout_s
        self._client: BleakClient | None = None

    @property
    def address(self) -> str:
        return self._device.address

    @property
    def name(self) -> str | None:
        return self._device.name

    @property
    def rssi(self) -> int | None:
        return self._rssi

    @property
    def advertised(self) -> dict[str, Any]:
        adv = self._advertisement
        if adv is None:
            return {}
        return {
            "local_name": adv.local_name,
            "service_uuids": list(adv.service_uuids),
            "service_data": {uuid: data.hex() for uuid, data in adv.service_data.items()},
            "manufacturer_data": {company: data.hex() for company, data in adv.manufacturer_data.items()},
            "tx_power": adv.tx_power,
        }

    async def connect(self, on_disconnect: Callable[[], None]) -> None:
        def _disconnected(_: BleakClient) -> None:
            on_disconnect()

        client = BleakClient(
            self._device,
            disconnected_callback=_disconnected,
            timeout=self._timeout_s,
            **_adapter_kwargs(self._adapter),
        )
        self._client = client
        try:
            await client.connect()
        except Exception as exc:
            raise TransportConnectError(f"BLE connect failed for {self.address}: {exc}") from exc

    async def subscribe(self, char_uuid: str, callback: Callable[[bytes], None]) -> None:
        client = self._client
        if client is None or not client.is_connected:
            raise TransportConnectError(f"BLE link to {self.address} is not connected")

        def _notify_handler(_: Any, data: bytearray) -> None:
            callback(bytes(data))

        try:
            await client.start_notify(char_uuid, _notify_handler)
        except Exception as exc:
            raise TransportConnectError(
                f"Could not enable notifications on {char_uuid} for {self.address}: {exc}"
            ) from exc

    async def teardown(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:
            LOGGER.debug("Ignoring BLE disconnect error for %s: %s", self.address, exc)


class BleakScannerTransport:
    def __init__(self, *, adapter: str | None = None) -> None:
        self.adapter = adapter
        self._scanner: BleakScanner | None = None

    async def start(self, on_advertisement: Callable[[PeripheralHandle], None]) -> None:
        def _detected(device: BLEDevice, advertisement: AdvertisementData) -> None:
            on_advertisement(
                BleakPeripheralHandle(
                    device,
                    rssi=advertisement.rssi,
                    advertisement=advertisement,
                    adapter=self.adapter,
                )
            )

        scanner = BleakScanner(detection_callback=_detected, **_adapter_kwargs(self.adapter))
        try:
            await scanner.start()
        except Exception as exc:
            raise TransportConnectError(f"BLE scan could not start: {exc}") from exc
        self._scanner = scanner

    async def stop(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except Exception as exc:
            raise TransportConnectError(f"BLE scan could not stop: {exc}") from exc
