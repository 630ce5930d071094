"""Map view model for the tracked delivery.

The tile renderer is external; :class:`MapView` only decides which
markers exist, what their popups say, and when the viewport should be
recentered. Anything implementing :class:`MapViewport` can be driven by
it, including the headless :class:`StaticViewport`.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from pylivetrack._clock import MsClock, now_ms
from pylivetrack._constants import DEFAULT_DRIVER_NAME

if TYPE_CHECKING:
    from pylivetrack.subscriber import LocationSubscriber

_logger = logging.getLogger(__name__)

LatLng = tuple[float, float]

DEFAULT_ZOOM = 13


def format_staleness(timestamp_ms: int, current_ms: int) -> str:
    """Describe how long ago *timestamp_ms* was, relative to *current_ms*.

    >>> format_staleness(0, 3_000)
    'just now'
    >>> format_staleness(0, 30_000)
    '30 seconds ago'
    >>> format_staleness(0, 125_000)
    '2 minutes ago'
    """
    seconds = max(0, current_ms - timestamp_ms) // 1000
    if seconds < 5:
        return "just now"
    if seconds < 60:
        return f"{seconds} seconds ago"
    return f"{seconds // 60} minutes ago"


class MapViewport(Protocol):
    def get_zoom(self) -> int:
        ...

    def set_view(self, center: LatLng, zoom: int) -> None:
        ...


class StaticViewport:
    """Headless viewport that remembers where it was pointed."""

    def __init__(self, center: LatLng, zoom: int = DEFAULT_ZOOM) -> None:
        self.center = center
        self.zoom = zoom
        self.set_view_calls = 0

    def get_zoom(self) -> int:
        return self.zoom

    def set_view(self, center: LatLng, zoom: int) -> None:
        self.center = center
        self.zoom = zoom
        self.set_view_calls += 1


class MarkerKind(StrEnum):
    DESTINATION = "destination"
    COURIER = "courier"


@dataclasses.dataclass(frozen=True)
class Marker:
    kind: MarkerKind
    position: LatLng
    popup: str


@dataclasses.dataclass(frozen=True)
class MapFrame:
    """Everything a renderer needs for one draw."""

    center: LatLng
    zoom: int
    markers: tuple[Marker, ...]
    staleness: str | None = None
    updated_at: str | None = None

    @property
    def courier(self) -> Marker | None:
        return next((marker for marker in self.markers if marker.kind is MarkerKind.COURIER), None)


class MapView:
    """Destination marker plus a moving courier marker.

    With ``auto_center`` the viewport follows the courier, keeping the
    current zoom. It recenters only when the courier coordinates change,
    so re-rendering the same position never undoes a manual pan.
    """

    def __init__(
        self,
        viewport: MapViewport,
        destination: LatLng,
        *,
        label: str = DEFAULT_DRIVER_NAME,
        order_id: str = "public",
        auto_center: bool = True,
        clock: MsClock = now_ms,
    ) -> None:
        self._viewport = viewport
        self._destination = destination
        self._label = label
        self._order_id = order_id
        self._auto_center = auto_center
        self._clock = clock
        self._last_centered: LatLng | None = None
        self._last_frame: MapFrame | None = None

    @property
    def destination(self) -> LatLng:
        return self._destination

    @property
    def last_frame(self) -> MapFrame | None:
        return self._last_frame

    @property
    def auto_center(self) -> bool:
        return self._auto_center

    @auto_center.setter
    def auto_center(self, enabled: bool) -> None:
        self._auto_center = enabled
        if not enabled:
            self._last_centered = None

    def render(
        self,
        tracked: LatLng | None,
        timestamp: int | None = None,
        label: str | None = None,
    ) -> MapFrame:
        name = label or self._label
        markers = [
            Marker(
                kind=MarkerKind.DESTINATION,
                position=self._destination,
                popup=f"Delivery location for order #{self._order_id}",
            )
        ]
        staleness: str | None = None
        updated_at: str | None = None
        if tracked is not None:
            markers.append(Marker(kind=MarkerKind.COURIER, position=tracked, popup=f"{name} is on the way!"))
            if timestamp:
                staleness = format_staleness(timestamp, self._clock())
                updated_at = datetime.fromtimestamp(timestamp / 1000, tz=UTC).strftime("%H:%M:%S")

        if self._auto_center and tracked is not None and tracked != self._last_centered:
            self._viewport.set_view(tracked, self._viewport.get_zoom())
            self._last_centered = tracked
            _logger.debug("Viewport recentered on %s", tracked)

        center = tracked if self._auto_center and tracked is not None else self._destination
        frame = MapFrame(
            center=center,
            zoom=self._viewport.get_zoom(),
            markers=tuple(markers),
            staleness=staleness,
            updated_at=updated_at,
        )
        self._last_frame = frame
        return frame

    def bind(self, subscriber: LocationSubscriber) -> Callable[[], None]:
        """Re-render on every reconciled change of *subscriber*."""

        def on_update(feed: LocationSubscriber) -> None:
            record = feed.current_location
            if record is None:
                self.render(None)
                return
            self.render(record.as_tuple(), record.timestamp, record.display_name)

        remove = subscriber.add_listener(on_update)
        on_update(subscriber)
        return remove
