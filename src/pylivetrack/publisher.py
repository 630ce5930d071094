"""Driver-side location publishing.

A session pushes this device's position into one store slot from two
independent sources: the platform watch (fires on every reported change)
and the scheduler tick (asks for a fresh fix every ``update_interval``
even when the watch is quiet). A wake-lock is held for the whole session.

Hosts throttle background timers and watches; the redundant sources are a
mitigation, not a guarantee of one update per interval.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from functools import partial
from typing import Any

from pylivetrack._clock import MsClock, now_ms
from pylivetrack._constants import slot_path
from pylivetrack.capabilities import GeolocationProvider, PositionOptions, WakeLockProvider, WatchHandle
from pylivetrack.config import TrackingConfig
from pylivetrack.exceptions import (
    AcquisitionTimeoutError,
    GeolocationError,
    GeolocationUnsupportedError,
    PermissionDeniedError,
    StoreError,
)
from pylivetrack.models.location import Coordinates, LocationRecord, Position
from pylivetrack.scheduler import AsyncioTickStrategy, Scheduler, ThreadTickStrategy
from pylivetrack.store.base import LocationStore
from pylivetrack.store.client import get_store
from pylivetrack.wakelock import WakeLockManager

_logger = logging.getLogger(__name__)


def _as_coordinates(value: Coordinates | tuple[float, float]) -> Coordinates:
    if isinstance(value, Coordinates):
        return value
    return Coordinates(latitude=value[0], longitude=value[1])


class LocationPublisher:
    """Publishes this device's position to the public or a per-order slot.

    Usage::

        publisher = LocationPublisher(geolocation, store=store)
        if not await publisher.start("Sam"):
            print(publisher.last_error)
        ...
        await publisher.stop()

    Every session carries a generation number; callbacks and in-flight
    fixes from a superseded or stopped session never write.
    """

    def __init__(
        self,
        geolocation: GeolocationProvider | None,
        *,
        store: LocationStore | None = None,
        order_id: str | None = None,
        wake_lock: WakeLockProvider | None = None,
        config: TrackingConfig | None = None,
        scheduler: Scheduler | None = None,
        clock: MsClock = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or TrackingConfig()
        self._geolocation = geolocation
        self._store = store if store is not None else get_store()
        self._order_id = order_id
        self._path = slot_path(order_id)
        self._clock = clock
        self._logger = logger or _logger
        if scheduler is None:
            strategy = ThreadTickStrategy() if self._config.background_ticks else AsyncioTickStrategy()
            scheduler = Scheduler(strategy, interval=self._config.update_interval)
        self._scheduler = scheduler
        self._wake_lock = WakeLockManager(wake_lock, kind=self._config.wake_lock_kind, logger=self._logger)

        self._session = 0
        self._lifecycle = asyncio.Lock()
        self._is_tracking = False
        self._label: str | None = None
        self._last_error: str | None = None
        self._watch_handle: WatchHandle | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._fix_in_flight = False
        self._last_timestamp = 0
        self._last_write_at: int | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def path(self) -> str:
        return self._path

    @property
    def order_id(self) -> str | None:
        return self._order_id

    @property
    def is_tracking(self) -> bool:
        return self._is_tracking

    @property
    def session_label(self) -> str | None:
        return self._label

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_write_at(self) -> int | None:
        """Epoch ms of the last successful write, ``None`` before the first."""
        return self._last_write_at

    @property
    def wake_lock_held(self) -> bool:
        return self._wake_lock.held

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self, session_label: str | None = None) -> bool:
        """Start (or restart) a publishing session.

        Returns ``False`` when geolocation is unsupported, the first fix
        fails, or the first write fails; :attr:`last_error` says why and
        the slot is left untouched.

        Overlapping calls to :meth:`start` and :meth:`stop` run one after
        the other, in call order.
        """
        async with self._lifecycle:
            return await self._start(session_label)

    async def _start(self, session_label: str | None) -> bool:
        await self._teardown()
        self._is_tracking = False
        self._session += 1
        session = self._session
        self._last_error = None
        label = session_label or self._config.default_driver_name

        if self._geolocation is None:
            self._last_error = str(GeolocationUnsupportedError("Geolocation is not supported on this device"))
            self._logger.warning("Cannot start tracking: %s", self._last_error)
            return False

        await self._wake_lock.acquire()

        try:
            position = await self._geolocation.get_current_position(self._fix_options(self._config.fix_timeout))
        except GeolocationError as exc:
            self._last_error = str(exc)
            self._logger.warning("Cannot start tracking, initial fix failed: %s", exc)
            await self._release_wake_lock()
            return False

        try:
            await self._store.write(self._path, self._build_patch(position.coords, label, is_tracking=True))
        except StoreError as exc:
            self._last_error = str(exc)
            self._logger.warning("Cannot start tracking, initial write to %s failed: %s", self._path, exc)
            await self._release_wake_lock()
            return False

        self._last_write_at = self._clock()
        self._label = label
        self._is_tracking = True

        try:
            self._watch_handle = self._geolocation.watch_position(
                partial(self._on_watch_position, session),
                partial(self._on_watch_error, session),
                self._fix_options(self._config.tick_fix_timeout),
            )
        except GeolocationError as exc:
            self._logger.warning("Position watch unavailable, relying on scheduled fixes: %s", exc)
        self._scheduler.start(partial(self._on_tick, session))
        self._logger.debug("Tracking started path=%s label=%s session=%d", self._path, label, session)
        return True

    async def stop(self) -> bool:
        """Stop the session and mark the slot inactive.

        Each cleanup step runs even when an earlier one fails; the result
        is ``True`` only if all of them succeeded. A slot that was never
        written, or is already inactive, is left alone.
        """
        async with self._lifecycle:
            return await self._stop()

    async def _stop(self) -> bool:
        self._session += 1
        self._is_tracking = False
        ok = await self._teardown()

        try:
            record = await self._store.read(self._path)
            if record is not None and record.get("isTracking"):
                await self._store.write(self._path, {"isTracking": False})
                self._logger.debug("Slot %s marked inactive", self._path)
        except StoreError as exc:
            self._last_error = str(exc)
            self._logger.warning("Could not mark %s inactive: %s", self._path, exc)
            ok = False
        return ok

    async def refresh_if_stalled(self, now: int | None = None) -> bool:
        """Restart an active session whose writes have stalled.

        Call when the host regains visibility or focus. Returns ``True``
        when a restart happened and succeeded.
        """
        if not self._is_tracking:
            return False
        current = self._clock() if now is None else now
        last = self._last_write_at
        if last is not None and current - last <= self._config.stall_threshold * 1000:
            return False
        self._logger.debug("No write for %sms, restarting tracking", None if last is None else current - last)
        return await self.start(self._label)

    async def update_location(
        self,
        coords: Coordinates | tuple[float, float],
        label: str | None = None,
    ) -> bool:
        """Write one position to the slot, outside of any session schedule."""
        point = _as_coordinates(coords)
        name = label or self._label or self._config.default_driver_name
        try:
            await self._store.write(self._path, self._build_patch(point, name))
        except StoreError as exc:
            self._last_error = str(exc)
            self._logger.warning("Location write to %s failed: %s", self._path, exc)
            return False
        self._last_write_at = self._clock()
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fix_options(self, timeout: float) -> PositionOptions:
        return PositionOptions(enable_high_accuracy=True, timeout=timeout, maximum_age=0.0)

    def _next_timestamp(self) -> int:
        # Strictly increasing per publisher so readers can order our writes.
        timestamp = max(self._clock(), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        return timestamp

    def _build_patch(self, coords: Coordinates, label: str, *, is_tracking: bool | None = None) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "latitude": coords.latitude,
            "longitude": coords.longitude,
            "timestamp": self._next_timestamp(),
            "driver_name": label,
        }
        if is_tracking is not None:
            fields["is_tracking"] = is_tracking
        return LocationRecord.model_validate(fields).to_wire()

    def _is_current(self, session: int) -> bool:
        return session == self._session and self._is_tracking

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_tick(self, session: int) -> None:
        if not self._is_current(session):
            return
        if self._fix_in_flight:
            self._logger.debug("Previous scheduled fix still pending, skipping tick")
            return
        self._fix_in_flight = True
        self._spawn(self._scheduled_fix(session))

    async def _scheduled_fix(self, session: int) -> None:
        assert self._geolocation is not None
        try:
            position = await self._geolocation.get_current_position(
                self._fix_options(self._config.tick_fix_timeout)
            )
        except AcquisitionTimeoutError:
            self._logger.debug("Scheduled fix timed out")
            return
        except PermissionDeniedError as exc:
            if self._is_current(session):
                self._last_error = str(exc)
            self._logger.warning("Scheduled fix refused: %s", exc)
            return
        except GeolocationError as exc:
            self._logger.debug("Scheduled fix failed: %s", exc)
            return
        finally:
            if session == self._session:
                self._fix_in_flight = False
        await self._write_position(session, position)

    def _on_watch_position(self, session: int, position: Position) -> None:
        if not self._is_current(session):
            return
        self._spawn(self._write_position(session, position))

    def _on_watch_error(self, session: int, error: GeolocationError) -> None:
        if not self._is_current(session):
            return
        if isinstance(error, PermissionDeniedError):
            self._last_error = "Failed to track location. Please check location permissions."
            self._logger.warning("Position watch refused: %s", error)
        else:
            self._logger.debug("Position watch error: %s", error)

    async def _write_position(self, session: int, position: Position) -> bool:
        if not self._is_current(session):
            return False
        assert self._label is not None
        try:
            await self._store.write(self._path, self._build_patch(position.coords, self._label))
        except StoreError as exc:
            # Dropped: the next tick carries a fresher fix.
            self._logger.warning("Location write to %s failed, skipping: %s", self._path, exc)
            return False
        self._last_write_at = self._clock()
        return True

    async def _release_wake_lock(self) -> None:
        try:
            await self._wake_lock.release()
        except Exception:
            self._logger.debug("Wake-lock release failed", exc_info=True)

    async def _teardown(self) -> bool:
        """Release every session resource; return ``False`` if any step failed."""
        ok = True

        try:
            self._scheduler.stop()
        except Exception:
            ok = False
            self._logger.warning("Stopping the scheduler failed", exc_info=True)

        handle = self._watch_handle
        self._watch_handle = None
        if handle is not None and self._geolocation is not None:
            try:
                self._geolocation.clear_watch(handle)
            except Exception:
                ok = False
                self._logger.warning("Clearing the position watch failed", exc_info=True)

        pending = list(self._pending)
        self._pending.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._fix_in_flight = False

        try:
            await self._wake_lock.release()
        except Exception:
            ok = False
            self._logger.warning("Releasing the wake-lock failed", exc_info=True)

        return ok
