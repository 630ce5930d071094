from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pylivetrack.config import TrackingConfig
from pylivetrack.exceptions import PermissionDeniedError, StoreWriteError
from pylivetrack.models.location import Coordinates, Position
from pylivetrack.publisher import LocationPublisher
from pylivetrack.scheduler import Scheduler
from pylivetrack.store.memory import InMemoryLocationStore


class _FlakyStore(InMemoryLocationStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    async def write(self, path: str, patch: Any) -> None:
        if self.fail_writes:
            raise StoreWriteError("HTTP 503 from PATCH", path=path)
        await super().write(path, patch)


class _RecordingStore(InMemoryLocationStore):
    def __init__(self) -> None:
        super().__init__()
        self.patches: list[dict[str, Any]] = []

    async def write(self, path: str, patch: Any) -> None:
        self.patches.append(dict(patch))
        await super().write(path, patch)


class _GatedStore(InMemoryLocationStore):
    """Holds every write until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def write(self, path: str, patch: Any) -> None:
        await self.gate.wait()
        await super().write(path, patch)


def _position(lat: float, lng: float) -> Position:
    return Position(coords=Coordinates(latitude=lat, longitude=lng))


def _publisher(geolocation: Any, store: Any, ticks: Any, clock: Any, **kwargs: Any) -> LocationPublisher:
    return LocationPublisher(geolocation, store=store, scheduler=Scheduler(ticks), clock=clock, **kwargs)


@pytest.mark.asyncio
async def test_start_writes_active_record(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)

    assert await publisher.start("Sam") is True

    assert publisher.is_tracking
    assert publisher.session_label == "Sam"
    assert publisher.last_write_at == clock.now
    assert await store.read("public_location") == {
        "latitude": 51.5,
        "longitude": -0.09,
        "timestamp": clock.now,
        "driverName": "Sam",
        "isTracking": True,
    }
    assert len(geolocation.watches) == 1
    assert ticks.is_running
    assert geolocation.options[0].timeout == 5.0
    assert geolocation.options[0].enable_high_accuracy is True


@pytest.mark.asyncio
async def test_start_uses_order_slot(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock, order_id="A17")

    assert await publisher.start() is True

    assert publisher.path == "locations/A17"
    record = await store.read("locations/A17")
    assert record is not None
    assert record["driverName"] == "Delivery Driver"
    assert await store.read("public_location") is None


@pytest.mark.asyncio
async def test_denied_start_creates_nothing(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    geolocation.error = PermissionDeniedError("User denied Geolocation")
    publisher = _publisher(geolocation, store, ticks, clock)

    assert await publisher.start("Sam") is False

    assert publisher.last_error == "User denied Geolocation"
    assert not publisher.is_tracking
    assert geolocation.watches == {}
    assert not ticks.is_running
    assert store.write_count == 0
    assert await store.read("public_location") is None


@pytest.mark.asyncio
async def test_start_without_geolocation_fails(store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(None, store, ticks, clock)

    assert await publisher.start("Sam") is False
    assert publisher.last_error == "Geolocation is not supported on this device"
    assert store.write_count == 0


@pytest.mark.asyncio
async def test_failed_initial_write_leaves_session_stopped(geolocation: Any, ticks: Any, clock: Any) -> None:
    store = _FlakyStore()
    store.fail_writes = True
    publisher = _publisher(geolocation, store, ticks, clock)

    assert await publisher.start("Sam") is False
    assert not publisher.is_tracking
    assert "503" in (publisher.last_error or "")
    assert geolocation.watches == {}
    assert not ticks.is_running


@pytest.mark.asyncio
async def test_start_twice_keeps_one_watch_and_one_tick(
    geolocation: Any, store: Any, ticks: Any, clock: Any
) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)

    assert await publisher.start("Sam") is True
    assert await publisher.start("Sam") is True

    assert list(geolocation.watches) == [2]
    assert geolocation.cleared == [1]
    assert ticks.is_running
    assert ticks.starts == 2


@pytest.mark.asyncio
async def test_stale_session_callbacks_never_write(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")
    old_on_success, _ = geolocation.watches[1]
    old_tick = ticks.on_tick

    await publisher.start("Sam")
    writes = store.write_count
    old_on_success(_position(1.0, 1.0))
    old_tick()

    assert store.write_count == writes


@pytest.mark.asyncio
async def test_tick_writes_fresh_fix_with_increasing_timestamp(
    geolocation: Any, store: Any, ticks: Any, clock: Any, drain: Any
) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")
    started_at = clock.now

    ticks.fire()
    await drain()

    record = await store.read("public_location")
    assert record is not None
    assert (record["latitude"], record["longitude"]) == (51.501, -0.091)
    # Frozen clock: timestamps still strictly increase.
    assert record["timestamp"] == started_at + 1
    assert record["isTracking"] is True
    assert geolocation.options[1].timeout == 1.0


@pytest.mark.asyncio
async def test_tick_skipped_while_previous_fix_in_flight(
    geolocation: Any, store: Any, ticks: Any, clock: Any, drain: Any
) -> None:
    geolocation.gate = asyncio.Event()
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")

    ticks.fire()
    await drain()
    ticks.fire()
    await drain()
    assert geolocation.calls == 2

    geolocation.gate.set()
    await drain()
    assert store.write_count == 2

    ticks.fire()
    await drain()
    assert geolocation.calls == 3
    assert store.write_count == 3


@pytest.mark.asyncio
async def test_watch_position_is_written(geolocation: Any, store: Any, ticks: Any, clock: Any, drain: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")

    clock.advance(1500)
    geolocation.emit(48.85, 2.35)
    await drain()

    record = await store.read("public_location")
    assert record is not None
    assert (record["latitude"], record["longitude"]) == (48.85, 2.35)
    assert record["timestamp"] == clock.now
    assert publisher.last_write_at == clock.now


@pytest.mark.asyncio
async def test_watch_permission_error_sets_last_error(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")

    _, on_error = geolocation.watches[1]
    on_error(PermissionDeniedError())

    assert publisher.last_error == "Failed to track location. Please check location permissions."
    assert publisher.is_tracking


@pytest.mark.asyncio
async def test_failed_scheduled_write_is_skipped(geolocation: Any, ticks: Any, clock: Any, drain: Any) -> None:
    store = _FlakyStore()
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")
    first_write_at = publisher.last_write_at

    store.fail_writes = True
    clock.advance(1000)
    ticks.fire()
    await drain()
    assert publisher.is_tracking
    assert publisher.last_write_at == first_write_at

    store.fail_writes = False
    clock.advance(1000)
    ticks.fire()
    await drain()
    assert publisher.last_write_at == clock.now


@pytest.mark.asyncio
async def test_stop_marks_inactive_once(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")

    assert await publisher.stop() is True
    assert not publisher.is_tracking
    assert geolocation.watches == {}
    assert not ticks.is_running
    record = await store.read("public_location")
    assert record is not None
    assert record["isTracking"] is False
    assert (record["latitude"], record["longitude"]) == (51.5, -0.09)
    writes = store.write_count

    assert await publisher.stop() is True
    assert store.write_count == writes


@pytest.mark.asyncio
async def test_stop_without_record_succeeds(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)

    assert await publisher.stop() is True
    assert store.write_count == 0
    assert await store.read("public_location") is None


@pytest.mark.asyncio
async def test_callbacks_after_stop_never_write(geolocation: Any, store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")
    on_success, _ = geolocation.watches[1]
    tick = ticks.on_tick
    await publisher.stop()
    writes = store.write_count

    on_success(_position(1.0, 1.0))
    tick()

    assert store.write_count == writes


@pytest.mark.asyncio
async def test_wake_lock_held_for_session(
    geolocation: Any, store: Any, ticks: Any, clock: Any, wake_lock: Any
) -> None:
    publisher = _publisher(geolocation, store, ticks, clock, wake_lock=wake_lock)

    await publisher.start("Sam")
    assert publisher.wake_lock_held

    await publisher.stop()
    assert not publisher.wake_lock_held
    assert all(handle.released for handle in wake_lock.handles)


@pytest.mark.asyncio
async def test_denied_start_releases_wake_lock(
    geolocation: Any, store: Any, ticks: Any, clock: Any, wake_lock: Any
) -> None:
    geolocation.error = PermissionDeniedError()
    publisher = _publisher(geolocation, store, ticks, clock, wake_lock=wake_lock)

    assert await publisher.start("Sam") is False
    assert len(wake_lock.handles) == 1
    assert wake_lock.handles[0].released
    assert not publisher.wake_lock_held


@pytest.mark.asyncio
async def test_refresh_if_stalled_restarts_only_after_threshold(
    geolocation: Any, store: Any, ticks: Any, clock: Any
) -> None:
    publisher = _publisher(geolocation, store, ticks, clock, config=TrackingConfig(stall_threshold=10.0))
    await publisher.start("Sam")

    clock.advance(5_000)
    assert await publisher.refresh_if_stalled() is False
    assert geolocation.calls == 1

    clock.advance(20_000)
    assert await publisher.refresh_if_stalled() is True
    assert geolocation.calls == 2
    assert publisher.session_label == "Sam"
    assert publisher.last_write_at == clock.now


@pytest.mark.asyncio
async def test_refresh_if_stalled_ignores_stopped_publisher(
    geolocation: Any, store: Any, ticks: Any, clock: Any
) -> None:
    publisher = _publisher(geolocation, store, ticks, clock)

    clock.advance(60_000)
    assert await publisher.refresh_if_stalled() is False
    assert geolocation.calls == 0


@pytest.mark.asyncio
async def test_update_location_writes_without_session(store: Any, ticks: Any, clock: Any) -> None:
    publisher = _publisher(None, store, ticks, clock, order_id="B2")

    assert await publisher.update_location((40.0, -3.7), "Ana") is True

    record = await store.read("locations/B2")
    assert record == {"latitude": 40.0, "longitude": -3.7, "timestamp": clock.now, "driverName": "Ana"}


@pytest.mark.asyncio
async def test_stop_during_initial_write_leaves_slot_inactive(
    geolocation: Any, ticks: Any, clock: Any, drain: Any
) -> None:
    store = _GatedStore()
    publisher = _publisher(geolocation, store, ticks, clock)

    start = asyncio.create_task(publisher.start("Sam"))
    await drain()
    stop = asyncio.create_task(publisher.stop())
    await drain()
    assert not stop.done()

    store.gate.set()

    assert await start is True
    assert await stop is True
    assert not publisher.is_tracking
    assert not ticks.is_running
    assert geolocation.watches == {}
    record = await store.read("public_location")
    assert record is not None
    assert record["isTracking"] is False


@pytest.mark.asyncio
async def test_overlapping_starts_hold_one_wake_lock(
    geolocation: Any, store: Any, ticks: Any, clock: Any, wake_lock: Any
) -> None:
    wake_lock.suspend = True
    publisher = _publisher(geolocation, store, ticks, clock, wake_lock=wake_lock)

    results = await asyncio.gather(publisher.start("Sam"), publisher.start("Sam"))

    assert results == [True, True]
    assert len(geolocation.watches) == 1
    assert [handle.released for handle in wake_lock.handles].count(False) == 1

    await publisher.stop()
    assert all(handle.released for handle in wake_lock.handles)


@pytest.mark.asyncio
async def test_position_patches_carry_no_tracking_flag(
    geolocation: Any, ticks: Any, clock: Any, drain: Any
) -> None:
    store = _RecordingStore()
    publisher = _publisher(geolocation, store, ticks, clock)
    await publisher.start("Sam")

    ticks.fire()
    await drain()

    assert store.patches[0]["isTracking"] is True
    assert set(store.patches[1]) == {"latitude", "longitude", "timestamp", "driverName"}
