"""Platform capability interfaces.

Geolocation and wake-lock are supplied by the host platform. The
publisher only depends on the protocols below; hosts without a wake-lock
pass :class:`UnsupportedWakeLockProvider` (the default) and tracking runs
degraded instead of branching on support everywhere.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from pylivetrack._clock import MsClock, now_ms
from pylivetrack.exceptions import GeolocationError, PositionUnavailableError, WakeLockUnavailableError
from pylivetrack.models.location import Coordinates, Position

_logger = logging.getLogger(__name__)

PositionCallback = Callable[[Position], None]
PositionErrorCallback = Callable[[GeolocationError], None]
WatchHandle = int


@dataclasses.dataclass(frozen=True)
class PositionOptions:
    """Options for a fix request. Durations are in seconds."""

    enable_high_accuracy: bool = True
    timeout: float = 5.0
    maximum_age: float = 0.0


class GeolocationProvider(Protocol):
    async def get_current_position(self, options: PositionOptions) -> Position:
        """Take one fix.

        Raises :class:`~pylivetrack.exceptions.PermissionDeniedError`,
        :class:`~pylivetrack.exceptions.AcquisitionTimeoutError` or
        :class:`~pylivetrack.exceptions.PositionUnavailableError`.
        """
        ...

    def watch_position(
        self,
        on_success: PositionCallback,
        on_error: PositionErrorCallback,
        options: PositionOptions,
    ) -> WatchHandle:
        ...

    def clear_watch(self, handle: WatchHandle) -> None:
        ...


class WakeLockHandle(Protocol):
    @property
    def released(self) -> bool:
        ...

    async def release(self) -> None:
        ...

    def add_release_listener(self, callback: Callable[[], None]) -> None:
        """Register *callback* for when the lock is released, by us or by the platform."""
        ...


class WakeLockProvider(Protocol):
    async def request(self, kind: str) -> WakeLockHandle:
        """Acquire a wake-lock; raises :class:`WakeLockUnavailableError`."""
        ...


class UnsupportedWakeLockProvider:
    """Wake-lock provider for platforms without the capability."""

    async def request(self, kind: str) -> WakeLockHandle:
        raise WakeLockUnavailableError(f"Wake-lock {kind!r} is not supported on this platform")


class ReplayGeolocationProvider:
    """Geolocation provider that replays a fixed route.

    Each fix (one-shot or watched) advances one point along *route*;
    with ``repeat=True`` the route wraps around, otherwise the last point
    is reported again. Watches emit every *interval* seconds.
    """

    def __init__(
        self,
        route: Sequence[Coordinates | tuple[float, float]],
        *,
        interval: float = 1.0,
        repeat: bool = True,
        accuracy: float | None = 5.0,
        clock: MsClock = now_ms,
    ) -> None:
        self._route = [
            point if isinstance(point, Coordinates) else Coordinates(latitude=point[0], longitude=point[1])
            for point in route
        ]
        self._interval = interval
        self._repeat = repeat
        self._accuracy = accuracy
        self._clock = clock
        self._cursor = 0
        self._handles = itertools.count(1)
        self._watches: dict[WatchHandle, asyncio.Task[None]] = {}

    def _next_position(self) -> Position:
        if not self._route:
            raise PositionUnavailableError("Replay route is empty")
        if self._repeat:
            point = self._route[self._cursor % len(self._route)]
        else:
            point = self._route[min(self._cursor, len(self._route) - 1)]
        self._cursor += 1
        return Position(coords=point, accuracy=self._accuracy, timestamp=self._clock())

    async def get_current_position(self, options: PositionOptions) -> Position:
        return self._next_position()

    def watch_position(
        self,
        on_success: PositionCallback,
        on_error: PositionErrorCallback,
        options: PositionOptions,
    ) -> WatchHandle:
        handle = next(self._handles)
        self._watches[handle] = asyncio.get_running_loop().create_task(self._run_watch(on_success, on_error))
        return handle

    async def _run_watch(self, on_success: PositionCallback, on_error: PositionErrorCallback) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                position = self._next_position()
            except GeolocationError as exc:
                on_error(exc)
                continue
            on_success(position)

    def clear_watch(self, handle: WatchHandle) -> None:
        task = self._watches.pop(handle, None)
        if task is not None:
            task.cancel()

    @property
    def active_watches(self) -> int:
        return len(self._watches)
