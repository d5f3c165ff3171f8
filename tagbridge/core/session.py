"""Peripheral connection lifecycle.

The session walks a single peripheral through discovery, connect/setup and
teardown, and mirrors its button and motion notifications into the shared
:class:`~tagbridge.core.model.DeviceState`::

    IDLE -> DISCOVERING -> CONNECTING -> CONNECTED -> DISCONNECTING
                 ^                                         |
                 +------------ restart delay --------------+

Setup failures and disconnects always go through DISCONNECTING: the handle is
torn down first, then one restart timer re-enters discovery. ``stop()`` moves
the session to the terminal STOPPED state and releases every timer, task and
handle it owns.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from tagbridge.core.codec import decode_accel, decode_button
from tagbridge.core.context import GatewayContext
from tagbridge.core.directory import PeripheralDirectory
from tagbridge.core.errors import InvariantViolationError, TransportError
from tagbridge.core.model import ConnectionStatus
from tagbridge.transports.base import PeripheralHandle

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    STOPPED = "stopped"


_RECORD_STATUS = {
    SessionState.IDLE: ConnectionStatus.DISCONNECTED,
    SessionState.DISCOVERING: ConnectionStatus.DISCOVERING,
    SessionState.CONNECTING: ConnectionStatus.CONNECTING,
    SessionState.DISCONNECTING: ConnectionStatus.DISCONNECTED,
    SessionState.STOPPED: ConnectionStatus.DISCONNECTED,
}


class PeripheralSession:
    def __init__(self, context: GatewayContext, directory: PeripheralDirectory) -> None:
        self._context = context
        self._directory = directory
        self._settings = context.config.ble
        self._state = SessionState.IDLE
        self._candidate: PeripheralHandle | None = None
        self._releasing: PeripheralHandle | None = None
        self._lost_during_setup = False
        self._restart_timer: asyncio.TimerHandle | None = None
        self._discover_task: asyncio.Task[Any] | None = None
        self._connect_task: asyncio.Task[Any] | None = None
        self._teardown_task: asyncio.Task[Any] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def restart_pending(self) -> bool:
        return self._restart_timer is not None

    def _transition(self, state: SessionState, handle: PeripheralHandle | None = None) -> None:
        LOGGER.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state
        if state is SessionState.CONNECTED:
            if handle is None:
                raise InvariantViolationError("Entering CONNECTED without a peripheral handle")
            self._context.record.mark_connected(handle)
        else:
            self._context.record.mark(_RECORD_STATUS[state])

    async def start(self) -> None:
        if self._state is not SessionState.IDLE:
            raise InvariantViolationError(f"Cannot start a session in state {self._state.value}")
        await self._discover()

    async def _discover(self) -> None:
        self._transition(SessionState.DISCOVERING)
        try:
            await self._directory.scan(self._settings.target, self._on_candidate)
        except TransportError as exc:
            LOGGER.error("Peripheral scan failed: %s", exc)
            if self._state is SessionState.DISCOVERING:
                self._transition(SessionState.DISCONNECTING)
                self._schedule_restart()
            return
        if self._state is not SessionState.DISCOVERING:
            await self._directory.stop_scan()

    def _on_candidate(self, handle: PeripheralHandle) -> None:
        if self._state is not SessionState.DISCOVERING or self._context.record.status in (
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ):
            LOGGER.debug("Ignoring candidate %s while %s", handle.address, self._state.value)
            return
        LOGGER.info("Found peripheral %s (%s)", handle.address, handle.name or "unnamed")
        self._candidate = handle
        self._lost_during_setup = False
        self._transition(SessionState.CONNECTING)
        self._connect_task = self._context.spawn(self._connect(handle), name="session-connect")

    async def _connect(self, handle: PeripheralHandle) -> None:
        profile = self._settings.profile
        try:
            await self._directory.stop_scan()
            await handle.connect(self._on_disconnect)
            await handle.subscribe(profile.button_char_uuid, self._on_button)
            await handle.subscribe(profile.motion_char_uuid, self._on_motion)
        except TransportError as exc:
            LOGGER.error("Setup of peripheral %s failed: %s", handle.address, exc)
            self._begin_restart(handle)
            return

        if self._lost_during_setup:
            LOGGER.error("Peripheral %s disconnected during setup", handle.address)
            self._begin_restart(handle)
            return

        self._candidate = None
        self._context.state.reset()
        self._transition(SessionState.CONNECTED, handle)
        LOGGER.info("Connected to peripheral %s", handle.address)

    def _on_disconnect(self) -> None:
        if self._state is SessionState.CONNECTING:
            self._lost_during_setup = True
            return
        if self._state is not SessionState.CONNECTED:
            return
        handle = self._context.record.handle
        LOGGER.error("Peripheral %s disconnected", handle.address if handle else "<unknown>")
        self._begin_restart(handle)

    def _on_button(self, data: bytes) -> None:
        if self._state not in (SessionState.CONNECTING, SessionState.CONNECTED):
            return
        try:
            pressed = decode_button(data)
        except ValueError as exc:
            LOGGER.warning("Ignoring button notification: %s", exc)
            return
        LOGGER.debug("Button %s", "pressed" if pressed else "released")
        self._context.state.record_button(pressed)

    def _on_motion(self, data: bytes) -> None:
        if self._state not in (SessionState.CONNECTING, SessionState.CONNECTED):
            return
        try:
            x, y, z = decode_accel(data, self._settings.profile)
        except ValueError as exc:
            LOGGER.warning("Ignoring motion notification: %s", exc)
            return
        self._context.state.record_accel(x, y, z)

    def _begin_restart(self, handle: PeripheralHandle | None) -> None:
        self._transition(SessionState.DISCONNECTING)
        self._candidate = None
        self._context.state.reset()
        self._releasing = handle
        self._teardown_task = self._context.spawn(
            self._teardown_then_restart(handle),
            name="session-teardown",
        )

    async def _teardown_then_restart(self, handle: PeripheralHandle | None) -> None:
        if handle is not None:
            await self._teardown(handle)
        self._releasing = None
        if self._state is SessionState.DISCONNECTING:
            self._schedule_restart()

    async def _teardown(self, handle: PeripheralHandle) -> None:
        try:
            await handle.teardown()
        except TransportError as exc:
            LOGGER.warning("Teardown of peripheral %s failed: %s", handle.address, exc)

    def _schedule_restart(self) -> None:
        if self._restart_timer is not None:
            raise InvariantViolationError("A discovery restart is already pending")
        delay_s = self._settings.restart_delay_ms / 1000
        LOGGER.info("Restarting discovery in %.1fs", delay_s)
        self._restart_timer = asyncio.get_running_loop().call_later(delay_s, self._restart)

    def _restart(self) -> None:
        self._restart_timer = None
        if self._state is not SessionState.DISCONNECTING:
            return
        self._discover_task = self._context.spawn(self._discover(), name="session-discover")

    async def stop(self) -> None:
        if self._state is SessionState.STOPPED:
            return
        handles = [self._context.record.handle, self._candidate, self._releasing]
        self._transition(SessionState.STOPPED)
        LOGGER.info("Stopping peripheral session")

        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

        tasks = [
            task
            for task in (self._discover_task, self._connect_task, self._teardown_task)
            if task is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        try:
            await self._directory.stop_scan()
        except TransportError as exc:
            LOGGER.warning("Stopping scan failed: %s", exc)

        released: list[PeripheralHandle] = []
        for handle in handles:
            if handle is not None and not any(handle is seen for seen in released):
                released.append(handle)
                await self._teardown(handle)

        self._candidate = None
        self._releasing = None
        self._context.state.reset()
