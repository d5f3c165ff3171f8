"""Fixed-interval publishing of device state or gateway heartbeats."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from tagbridge.core.channel import BrokerChannel
from tagbridge.core.codec import encode_envelope
from tagbridge.core.context import GatewayContext
from tagbridge.core.model import ConnectionStatus, Envelope, EnvelopeStatus, LinkStatus

LOGGER = logging.getLogger(__name__)


class TransmissionScheduler:
    def __init__(
        self,
        context: GatewayContext,
        channel: BrokerChannel,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._context = context
        self._channel = channel
        self._topic = context.config.mqtt.topic
        self._clock = clock
        self._task: asyncio.Task[Any] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_ms: int) -> None:
        if self.running:
            LOGGER.warning("Transmission scheduler already running")
            return
        LOGGER.info("Publishing to %s every %d ms", self._topic, interval_ms)
        self._task = self._context.spawn(self._run(interval_ms / 1000), name="transmission-scheduler")

    async def _run(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            self.tick()

    def build_envelope(self) -> Envelope:
        timestamp = int(self._clock())
        if self._context.record.status is ConnectionStatus.CONNECTED:
            return Envelope(
                status=EnvelopeStatus.DEVICE_CONNECTED,
                timestamp=timestamp,
                payload=self._context.state.consume(),
            )
        return Envelope(status=EnvelopeStatus.GATEWAY_CONNECTED, timestamp=timestamp, payload=None)

    def tick(self) -> None:
        if self._channel.status is not LinkStatus.OPEN:
            LOGGER.debug("Broker link %s; skipping transmission", self._channel.status.value)
            return
        envelope = self.build_envelope()
        self._channel.publish(self._topic, encode_envelope(envelope))

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        LOGGER.info("Stopping transmission scheduler")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
