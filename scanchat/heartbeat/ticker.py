"""Heartbeat ticker - periodic progress callback while a plugin runs."""

import asyncio
import time
from typing import Any, Callable

from loguru import logger

DEFAULT_HEARTBEAT_INTERVAL_S = 15.0

HEARTBEAT_TEXT = "⏳ Still working on it, please hold on..."


class HeartbeatTicker:
    """
    Fire ``on_tick`` every ``interval_s`` seconds until stopped.

    The loop runs as a child asyncio task. ``stop`` cancels it and waits for it
    to finish, so no tick can fire after ``stop`` returns.
    """

    def __init__(
        self,
        on_tick: Callable[[int], Any],
        interval_s: float = DEFAULT_HEARTBEAT_INTERVAL_S,
        name: str = "heartbeat",
    ):
        self.on_tick = on_tick
        self.interval_s = interval_s
        self.name = name
        self.ticks = 0
        self._running = False
        self._task: asyncio.Task | None = None
        self._started_at: float | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start ticking."""
        if self._task is not None:
            return
        self._running = True
        self._started_at = time.monotonic()
        self._task = asyncio.create_task(self._run_loop(), name=f"{self.name}-ticker")
        logger.debug(f"Heartbeat {self.name} started (every {self.interval_s}s)")

    async def stop(self) -> None:
        """Stop ticking and join the loop task."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        if self._started_at is not None:
            elapsed = time.monotonic() - self._started_at
            logger.debug(f"Heartbeat {self.name} stopped after {self.ticks} tick(s), {elapsed:.1f}s")

    async def _run_loop(self) -> None:
        """Main heartbeat loop."""
        while self._running:
            await asyncio.sleep(self.interval_s)
            if not self._running:
                break
            self.ticks += 1
            try:
                result = self.on_tick(self.ticks)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Heartbeat {self.name} callback failed: {e}")

    async def __aenter__(self) -> "HeartbeatTicker":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
