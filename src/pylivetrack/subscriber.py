"""Viewer-side reconciliation of the public and per-order feeds."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pylivetrack._clock import MsClock, now_ms
from pylivetrack._constants import (
    DEFAULT_DRIVER_NAME,
    ORDER_LOCATIONS_PATH,
    PUBLIC_LOCATION_PATH,
    order_location_path,
    slot_path,
)
from pylivetrack.exceptions import StoreError
from pylivetrack.models.location import Coordinates, LocationRecord
from pylivetrack.policy import TrackingSource, pick_authoritative, should_accept_record
from pylivetrack.store.base import LocationStore, Unsubscribe
from pylivetrack.store.client import get_store

_logger = logging.getLogger(__name__)

SubscriberListener = Callable[["LocationSubscriber"], None]


class LocationSubscriber:
    """Presents one "current delivery location" built from two push feeds.

    Reconciliation, evaluated on every push:

    1. an active public record wins, whatever its timestamp;
    2. otherwise an active order record;
    3. otherwise the location shown last, kept with ``is_tracking=False``;
    4. otherwise the inactive order record, if any.

    Usage::

        with LocationSubscriber(store=store, order_id="A17") as feed:
            feed.add_listener(lambda f: print(f.current_location))
    """

    def __init__(
        self,
        *,
        store: LocationStore | None = None,
        order_id: str | None = None,
        clock: MsClock = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store if store is not None else get_store()
        self._order_id = order_id
        self._order_path = order_location_path(order_id) if order_id is not None else None
        self._clock = clock
        self._logger = logger or _logger

        self._records: dict[TrackingSource, LocationRecord] = {}
        self._current: LocationRecord | None = None
        self._source: TrackingSource | None = None
        self._last_error: str | None = None
        self._awaiting_initial: set[TrackingSource] = self._initial_sources()
        self._unsubscribers: dict[TrackingSource, Unsubscribe] = {}
        self._listeners: list[SubscriberListener] = []
        self._subscribed = False

    # ------------------------------------------------------------------
    # Exposed view
    # ------------------------------------------------------------------

    @property
    def order_id(self) -> str | None:
        return self._order_id

    @property
    def current_location(self) -> LocationRecord | None:
        return self._current

    @property
    def source(self) -> TrackingSource | None:
        return self._source

    @property
    def is_active(self) -> bool:
        return self._current is not None and self._current.is_tracking

    @property
    def loading(self) -> bool:
        return bool(self._awaiting_initial)

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self._current is None:
            return None
        return self._current.as_tuple()

    def staleness_ms(self, now: int | None = None) -> int | None:
        """Milliseconds since the displayed record was written."""
        if self._current is None:
            return None
        current = self._clock() if now is None else now
        return max(0, current - self._current.timestamp)

    def add_listener(self, listener: SubscriberListener) -> Callable[[], None]:
        """Call *listener* whenever the reconciled view changes."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> LocationSubscriber:
        self.subscribe()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.unsubscribe()

    def subscribe(self) -> None:
        """Open the public feed and, with an order id, the order feed."""
        if self._subscribed:
            return
        self._subscribed = True
        self._awaiting_initial = self._initial_sources()

        self._unsubscribers[TrackingSource.PUBLIC] = self._store.subscribe(
            PUBLIC_LOCATION_PATH,
            lambda value: self._ingest(TrackingSource.PUBLIC, value),
        )
        if self._order_path is not None:
            self._unsubscribers[TrackingSource.ORDER] = self._store.subscribe(
                self._order_path,
                lambda value: self._ingest(TrackingSource.ORDER, value),
            )
        self._logger.debug("Subscribed public=%s order=%s", PUBLIC_LOCATION_PATH, self._order_path)

    def _initial_sources(self) -> set[TrackingSource]:
        sources = {TrackingSource.PUBLIC}
        if self._order_path is not None:
            sources.add(TrackingSource.ORDER)
        return sources

    def unsubscribe(self) -> None:
        """Cancel every opened feed. Safe to call more than once."""
        unsubscribers = self._unsubscribers
        self._unsubscribers = {}
        self._subscribed = False
        for source, unsubscribe in unsubscribers.items():
            try:
                unsubscribe()
            except Exception:
                self._logger.warning("Cancelling the %s feed failed", source, exc_info=True)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _ingest(self, source: TrackingSource, value: dict[str, Any] | None) -> None:
        if not self._subscribed:
            return
        self._awaiting_initial.discard(source)
        try:
            record = LocationRecord.from_store(value)
        except ValueError as exc:
            self._last_error = f"Failed to get location data from the {source} slot"
            self._logger.warning("Ignoring malformed %s record: %s", source, exc)
            self._notify()
            return

        cached = self._records.get(source)
        if not should_accept_record(cached, record):
            self._logger.debug(
                "Dropping out-of-order %s record ts=%s < %s",
                source,
                record.timestamp if record else None,
                cached.timestamp if cached else None,
            )
            return

        if record is None:
            self._records.pop(source, None)
        else:
            self._records[source] = record
        self._reconcile()

    def _reconcile(self) -> None:
        public = self._records.get(TrackingSource.PUBLIC)
        order = self._records.get(TrackingSource.ORDER)
        record, source = pick_authoritative(public, order)

        if record is None:
            previous = self._current
            if previous is not None:
                record = previous.model_copy(update={"is_tracking": False}) if previous.is_tracking else previous
                source = self._source
            elif order is not None:
                record, source = order, TrackingSource.ORDER

        if record == self._current and source == self._source:
            return
        self._current = record
        self._source = source
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                self._logger.warning("Subscriber listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Store passthroughs
    # ------------------------------------------------------------------

    async def update_location(
        self,
        coords: Coordinates | tuple[float, float],
        label: str | None = None,
    ) -> bool:
        """Write a position to this subscriber's slot (order slot if any)."""
        point = coords if isinstance(coords, Coordinates) else Coordinates(latitude=coords[0], longitude=coords[1])
        name = label or (self._current.display_name if self._current is not None else None)
        patch = LocationRecord.model_validate(
            {
                "latitude": point.latitude,
                "longitude": point.longitude,
                "timestamp": self._clock(),
                "driver_name": name or DEFAULT_DRIVER_NAME,
            }
        ).to_wire()
        try:
            await self._store.write(slot_path(self._order_id), patch)
        except StoreError as exc:
            self._last_error = str(exc)
            self._logger.warning("Error updating location: %s", exc)
            return False
        return True

    async def get_public_location(self) -> LocationRecord | None:
        """Read the public slot once; ``None`` when absent or unreadable."""
        try:
            return LocationRecord.from_store(await self._store.read(PUBLIC_LOCATION_PATH))
        except (StoreError, ValueError) as exc:
            self._logger.warning("Error fetching public location: %s", exc)
            return None

    async def get_active_tracking_orders(self) -> list[tuple[str, LocationRecord]]:
        """List ``(order_id, record)`` for every order slot currently tracking."""
        try:
            slots = await self._store.read(ORDER_LOCATIONS_PATH)
        except StoreError as exc:
            self._logger.warning("Error fetching active tracking orders: %s", exc)
            return []
        active: list[tuple[str, LocationRecord]] = []
        for order_id, value in (slots or {}).items():
            try:
                record = LocationRecord.from_store(value)
            except ValueError:
                self._logger.debug("Skipping malformed order slot %s", order_id)
                continue
            if record is not None and record.is_tracking:
                active.append((order_id, record))
        return active
