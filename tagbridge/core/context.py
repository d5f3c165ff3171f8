"""Per-run state shared by the gateway components."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from tagbridge.core.model import ConnectionRecord, DeviceState, GatewayConfig

LOGGER = logging.getLogger(__name__)


class GatewayContext:
    """Configuration, shared records and fault reporting for one gateway run.

    Components receive the context at construction instead of reaching for
    module-level state. Background work started through :meth:`spawn` reports
    any exception it does not handle itself to :attr:`fault`, which the
    controller watches to trigger a full shutdown.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config
        self.state = DeviceState()
        self.record = ConnectionRecord()
        self._fault: asyncio.Future[BaseException] | None = None

    @property
    def fault(self) -> asyncio.Future[BaseException]:
        if self._fault is None:
            self._fault = asyncio.get_running_loop().create_future()
        return self._fault

    def report_fault(self, exc: BaseException) -> None:
        if self.fault.done():
            LOGGER.error("Additional fault after shutdown was requested: %r", exc)
            return
        self.fault.set_result(exc)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.debug("Task %s failed", task.get_name(), exc_info=exc)
            self.report_fault(exc)
