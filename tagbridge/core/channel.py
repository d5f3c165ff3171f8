"""Best-effort publish channel to the MQTT broker."""

from __future__ import annotations

import logging

from tagbridge.core.errors import TransportError
from tagbridge.core.model import BrokerLink, LinkStatus, MqttSettings, PublishStats
from tagbridge.transports.base import BrokerTransport

LOGGER = logging.getLogger(__name__)


class BrokerChannel:
    """Owns the broker link; never blocks and never raises on publish.

    Messages offered while the link is not open are dropped and counted, not
    queued.
    """

    def __init__(self, settings: MqttSettings, transport: BrokerTransport) -> None:
        self._settings = settings
        self._transport = transport
        self.link = BrokerLink(endpoint=settings.endpoint)
        self._stats = PublishStats()
        self._opened = False
        self._closed = False

    @property
    def status(self) -> LinkStatus:
        return self.link.status

    @property
    def stats(self) -> PublishStats:
        return self._stats

    def open(self) -> None:
        if self._opened:
            LOGGER.warning("Broker channel to %s already opened", self.link.endpoint)
            return
        self._opened = True
        self.link.status = LinkStatus.CONNECTING
        LOGGER.info("Connecting to MQTT broker %s", self.link.endpoint)
        try:
            self._transport.connect(self._settings.host, self._settings.port, self._on_state)
        except TransportError as exc:
            LOGGER.error("MQTT connect to %s failed, retrying in background: %s", self.link.endpoint, exc)

    def _on_state(self, status: LinkStatus, reason: str | None = None) -> None:
        if self._closed:
            return
        previous = self.link.status
        self.link.status = status
        if status is LinkStatus.OPEN:
            LOGGER.info("MQTT broker %s connected", self.link.endpoint)
        elif previous is LinkStatus.OPEN:
            LOGGER.error("MQTT broker %s connection lost: %s", self.link.endpoint, reason or "unknown")
        else:
            LOGGER.debug("MQTT broker %s is %s (%s)", self.link.endpoint, status.value, reason or "-")

    def publish(self, topic: str, payload: bytes) -> bool:
        if self.link.status is not LinkStatus.OPEN:
            self._drop(f"link {self.link.status.value}")
            return False
        try:
            self._transport.publish(topic, payload)
        except TransportError as exc:
            self._drop(str(exc))
            return False
        self._stats.record_success()
        LOGGER.debug("Published %d bytes to %s", len(payload), topic)
        return True

    def _drop(self, reason: str) -> None:
        self._stats.record_drop(reason)
        LOGGER.error("Dropped MQTT message (%s); %d dropped so far", reason, self._stats.dropped)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.link.status = LinkStatus.CLOSED
        if not self._opened:
            return
        LOGGER.info("Closing MQTT connection to %s", self.link.endpoint)
        self._transport.close()
