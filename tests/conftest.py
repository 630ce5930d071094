from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator

import pytest

from pylivetrack.capabilities import PositionOptions
from pylivetrack.exceptions import GeolocationError
from pylivetrack.models.location import Coordinates, Position
from pylivetrack.store.client import reset_store
from pylivetrack.store.memory import InMemoryLocationStore

T0 = 1_767_225_600_000  # 2026-01-01T00:00:00Z


class _FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class _FakeGeolocation:
    """Geolocation double; fixes advance through *fixes*, the last one repeats."""

    def __init__(self, fixes: list[tuple[float, float]] | None = None) -> None:
        self.fixes = fixes or [(51.5, -0.09), (51.501, -0.091), (51.502, -0.092)]
        self.error: GeolocationError | None = None
        self.gate: asyncio.Event | None = None
        self.calls = 0
        self.options: list[PositionOptions] = []
        self.watches: dict[int, tuple[Callable[[Position], None], Callable[[GeolocationError], None]]] = {}
        self.cleared: list[int] = []
        self._next_handle = 1

    async def get_current_position(self, options: PositionOptions) -> Position:
        self.calls += 1
        self.options.append(options)
        if self.error is not None:
            raise self.error
        # The gate only holds scheduled fixes, never the initial one.
        if self.gate is not None and self.calls > 1:
            await self.gate.wait()
        lat, lng = self.fixes[min(self.calls - 1, len(self.fixes) - 1)]
        return Position(coords=Coordinates(latitude=lat, longitude=lng))

    def watch_position(
        self,
        on_success: Callable[[Position], None],
        on_error: Callable[[GeolocationError], None],
        options: PositionOptions,
    ) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.watches[handle] = (on_success, on_error)
        return handle

    def clear_watch(self, handle: int) -> None:
        self.watches.pop(handle, None)
        self.cleared.append(handle)

    def emit(self, lat: float, lng: float) -> None:
        for on_success, _on_error in list(self.watches.values()):
            on_success(Position(coords=Coordinates(latitude=lat, longitude=lng)))


class _ManualTicks:
    """Tick strategy that only ticks when the test says so."""

    def __init__(self) -> None:
        self.on_tick: Callable[[], None] | None = None
        self.starts = 0

    @property
    def is_running(self) -> bool:
        return self.on_tick is not None

    def start(self, interval: float, on_tick: Callable[[], None]) -> None:
        self.starts += 1
        self.on_tick = on_tick

    def stop(self) -> None:
        self.on_tick = None

    def fire(self) -> None:
        assert self.on_tick is not None, "scheduler is not running"
        self.on_tick()


class _FakeWakeLock:
    def __init__(self) -> None:
        self._released = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        self.revoke()

    def add_release_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def revoke(self) -> None:
        if self._released:
            return
        self._released = True
        for callback in list(self._listeners):
            callback()


class _FakeWakeLockProvider:
    def __init__(self) -> None:
        self.handles: list[_FakeWakeLock] = []
        self.suspend = False

    async def request(self, kind: str) -> _FakeWakeLock:
        if self.suspend:
            await asyncio.sleep(0)
        handle = _FakeWakeLock()
        self.handles.append(handle)
        return handle


async def _drain() -> None:
    """Let spawned tasks run to their next real suspension point."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def _reset_process_store() -> Iterator[None]:
    reset_store()
    yield
    reset_store()


@pytest.fixture
def clock() -> _FakeClock:
    return _FakeClock()


@pytest.fixture
def store() -> InMemoryLocationStore:
    return InMemoryLocationStore()


@pytest.fixture
def geolocation() -> _FakeGeolocation:
    return _FakeGeolocation()


@pytest.fixture
def ticks() -> _ManualTicks:
    return _ManualTicks()


@pytest.fixture
def drain() -> Callable[[], Awaitable[None]]:
    return _drain


@pytest.fixture
def wake_lock() -> _FakeWakeLockProvider:
    return _FakeWakeLockProvider()
