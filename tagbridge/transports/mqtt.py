"""MQTT broker transport built on paho-mqtt."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from tagbridge.core.errors import TransportConnectError, TransportSendError
from tagbridge.core.model import LinkStatus

LOGGER = logging.getLogger(__name__)

RECONNECT_MIN_DELAY_S = 1
RECONNECT_MAX_DELAY_S = 30


def create_mqtt_client(client_id: str | None = None, **kwargs: Any) -> mqtt.Client:
    """Create a paho client using the version 2 callback signatures.

    Args:
        client_id: Optional client identifier; empty lets the broker assign one.
        kwargs: Extra keyword arguments forwarded to the client constructor.
    """
    client_kwargs: dict[str, Any] = {"client_id": client_id or ""}
    client_kwargs["protocol"] = kwargs.pop("protocol", mqtt.MQTTv311)
    client_kwargs.update(kwargs)
    return mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, **client_kwargs)


class PahoBrokerTransport:
    """Auto-reconnecting publisher.

    paho runs its network loop on its own thread; connection state changes are
    handed back to the asyncio loop that called :meth:`connect`.
    """

    def __init__(
        self,
        *,
        client_id: str = "",
        keepalive_s: int = 60,
        client: mqtt.Client | None = None,
    ) -> None:
        self.client = client or create_mqtt_client(client_id=client_id)
        self.keepalive_s = keepalive_s
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_state: Callable[[LinkStatus, str | None], None] | None = None
        self._started = False

    def connect(self, host: str, port: int, on_state: Callable[[LinkStatus, str | None], None]) -> None:
        self._loop = asyncio.get_running_loop()
        self._on_state = on_state
        self.client.on_connect = self._handle_connect
        self.client.on_disconnect = self._handle_disconnect
        self.client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY_S, max_delay=RECONNECT_MAX_DELAY_S)
        try:
            self.client.connect_async(host, port, keepalive=self.keepalive_s)
            self.client.loop_start()
        except (OSError, ValueError) as exc:
            raise TransportConnectError(f"MQTT connect to {host}:{port} failed: {exc}") from exc
        self._started = True

    def _emit(self, status: LinkStatus, reason: str | None) -> None:
        if self._loop is None or self._on_state is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_state, status, reason)

    def _handle_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self._emit(LinkStatus.CONNECTING, str(reason_code))
            return
        self._emit(LinkStatus.OPEN, None)

    def _handle_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._emit(LinkStatus.CONNECTING, str(reason_code))

    def publish(self, topic: str, payload: bytes) -> None:
        try:
            info = self.client.publish(topic, payload, qos=0)
        except (OSError, ValueError) as exc:
            raise TransportSendError(f"MQTT publish to {topic} failed: {exc}") from exc
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportSendError(f"MQTT publish to {topic} failed: {mqtt.error_string(info.rc)}")

    def close(self) -> None:
        self._on_state = None
        if not self._started:
            return
        self._started = False
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()
