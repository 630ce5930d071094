"""Session tick scheduling.

A publishing session owns one :class:`Scheduler`, and the scheduler owns
exactly one tick source. How ticks are produced is a pluggable
:class:`TickStrategy`:

* :class:`AsyncioTickStrategy` sleeps on the event loop (default).
* :class:`ThreadTickStrategy` runs a dedicated timer thread and hands each
  tick to the loop, so ticks keep coming while the loop is busy.

Ticks are always delivered on the event loop thread. Timers in a
backgrounded host can still be throttled by the platform; neither
strategy can prevent that.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Protocol

from pylivetrack._constants import DEFAULT_UPDATE_INTERVAL

TickCallback = Callable[[], None]

_logger = logging.getLogger(__name__)


class TickStrategy(Protocol):
    @property
    def is_running(self) -> bool:
        ...

    def start(self, interval: float, on_tick: TickCallback) -> None:
        ...

    def stop(self) -> None:
        ...


class AsyncioTickStrategy:
    """Fixed-interval tick driven by an asyncio task."""

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float, on_tick: TickCallback) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(interval, on_tick))

    async def _run(self, interval: float, on_tick: TickCallback) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            next_at += interval
            try:
                on_tick()
            except Exception:
                _logger.warning("Tick callback failed", exc_info=True)

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()


class ThreadTickStrategy:
    """Fixed-interval tick driven by a background thread."""

    def __init__(self, *, name: str = "pylivetrack-tick") -> None:
        self._name = name
        self._thread: threading.Thread | None = None
        self._stopped: threading.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval: float, on_tick: TickCallback) -> None:
        self.stop()
        loop = asyncio.get_running_loop()
        stopped = threading.Event()

        def deliver() -> None:
            if stopped.is_set():
                return
            try:
                on_tick()
            except Exception:
                _logger.warning("Tick callback failed", exc_info=True)

        def run() -> None:
            while not stopped.wait(interval):
                try:
                    loop.call_soon_threadsafe(deliver)
                except RuntimeError:
                    # Event loop closed underneath us.
                    return

        thread = threading.Thread(target=run, name=self._name, daemon=True)
        self._stopped = stopped
        self._thread = thread
        thread.start()

    def stop(self) -> None:
        stopped = self._stopped
        thread = self._thread
        self._stopped = None
        self._thread = None
        if stopped is not None:
            stopped.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)


class Scheduler:
    """Single logical tick source for a session."""

    def __init__(
        self,
        strategy: TickStrategy | None = None,
        *,
        interval: float = DEFAULT_UPDATE_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        self._strategy: TickStrategy = strategy or AsyncioTickStrategy()
        self._interval = interval

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def strategy(self) -> TickStrategy:
        return self._strategy

    @property
    def is_running(self) -> bool:
        return self._strategy.is_running

    def start(self, on_tick: TickCallback) -> None:
        """Start ticking, replacing any tick source already running."""
        self._strategy.stop()
        self._strategy.start(self._interval, on_tick)
        _logger.debug("Scheduler started interval=%.3fs strategy=%s", self._interval, type(self._strategy).__name__)

    def stop(self) -> None:
        if self._strategy.is_running:
            _logger.debug("Scheduler stopped")
        self._strategy.stop()
