from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger


class IdleTimer:
    """Calls ``on_idle`` once nothing has reset the timer for ``timeout_seconds``."""

    def __init__(self, timeout_seconds: float, on_idle: Callable[[], Awaitable[None]]):
        self._timeout = timeout_seconds
        self._on_idle = on_idle
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

    def reset(self) -> None:
        if self._timeout <= 0:
            return
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._timeout, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.info(f"Idle for {self._timeout:.0f}s")
        self._task = asyncio.ensure_future(self._on_idle())
