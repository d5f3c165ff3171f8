"""Gateway lifecycle: wiring, start order and exactly-once shutdown."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from tagbridge.core.channel import BrokerChannel
from tagbridge.core.context import GatewayContext
from tagbridge.core.directory import PeripheralDirectory
from tagbridge.core.errors import GatewayFaultError
from tagbridge.core.model import GatewayConfig
from tagbridge.core.scheduler import TransmissionScheduler
from tagbridge.core.session import PeripheralSession
from tagbridge.transports.base import BrokerTransport, ScannerTransport
from tagbridge.transports.ble_gatt import BleakScannerTransport
from tagbridge.transports.mqtt import PahoBrokerTransport

LOGGER = logging.getLogger(__name__)


class AppState(str, Enum):
    RUNNING = "running"
    STOPPING = "stopping"


class GatewayController:
    def __init__(
        self,
        config: GatewayConfig,
        *,
        scanner: ScannerTransport | None = None,
        broker: BrokerTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.context = GatewayContext(config)
        self.directory = PeripheralDirectory(scanner or BleakScannerTransport(adapter=config.ble.adapter))
        self.session = PeripheralSession(self.context, self.directory)
        self.channel = BrokerChannel(
            config.mqtt,
            broker
            or PahoBrokerTransport(
                client_id=config.mqtt.client_id,
                keepalive_s=config.mqtt.keepalive_s,
            ),
        )
        self.scheduler = TransmissionScheduler(self.context, self.channel, clock=clock)
        self.state = AppState.RUNNING
        self._stop_task: asyncio.Task[Any] | None = None
        self._stop_requested = asyncio.Event()

    async def start(self) -> None:
        app = self.config.app
        if app.start_delay_ms:
            LOGGER.info("Waiting %d ms for Bluetooth adapters to settle", app.start_delay_ms)
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=app.start_delay_ms / 1000)
            except asyncio.TimeoutError:
                pass
        if self.state is AppState.STOPPING:
            LOGGER.info("Stop requested before startup; not starting")
            return
        LOGGER.info(
            "Starting gateway: peripheral %s, broker %s, topic %s",
            self.config.ble.target,
            self.config.mqtt.endpoint,
            self.config.mqtt.topic,
        )
        self.channel.open()
        await self.session.start()
        # stop() may have completed while discovery was starting
        if self.state is AppState.STOPPING:
            LOGGER.info("Stop requested during startup; transmission not started")
            return
        self.scheduler.start(app.send_interval_ms)

    async def stop(self) -> None:
        if self._stop_task is None:
            self.state = AppState.STOPPING
            self._stop_requested.set()
            self._stop_task = asyncio.get_running_loop().create_task(self._teardown(), name="gateway-stop")
        await asyncio.shield(self._stop_task)

    async def _close_channel(self) -> None:
        self.channel.close()

    async def _teardown(self) -> None:
        LOGGER.info("Stopping gateway")
        steps: tuple[tuple[str, Callable[[], Awaitable[None]]], ...] = (
            ("transmission scheduler", self.scheduler.stop),
            ("broker channel", self._close_channel),
            ("peripheral session", self.session.stop),
        )
        for name, step in steps:
            try:
                await step()
            except Exception as exc:
                LOGGER.error("Error while stopping %s: %s", name, exc, exc_info=True)
        LOGGER.info("Gateway stopped")

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if not isinstance(exc, Exception):
            loop.default_exception_handler(context)
            return
        LOGGER.error("Unhandled error in event loop: %s", context.get("message", exc), exc_info=exc)
        self.context.report_fault(exc)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set or a component reports a fault.

        Exceptions escaping plain event loop callbacks (transport callbacks,
        timers) are treated as faults for the duration of the run.
        """
        loop = asyncio.get_running_loop()
        fault = self.context.fault
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)
        stop_wait = asyncio.ensure_future(stop_event.wait())
        start_task = asyncio.ensure_future(self.start())
        try:
            done, _ = await asyncio.wait({start_task, stop_wait, fault}, return_when=asyncio.FIRST_COMPLETED)
            if start_task in done:
                start_task.result()
                await asyncio.wait({stop_wait, fault}, return_when=asyncio.FIRST_COMPLETED)
            if fault.done():
                LOGGER.critical("Unexpected fault, shutting down: %r", fault.result())
        finally:
            stop_wait.cancel()
            await self.stop()
            if not start_task.done():
                await asyncio.wait({start_task})
                if not start_task.cancelled() and start_task.exception() is not None:
                    LOGGER.error("Startup failed during shutdown: %s", start_task.exception())
            loop.set_exception_handler(previous_handler)

        if fault.done():
            exc = fault.result()
            raise GatewayFaultError(f"Unexpected fault: {exc}") from exc
