from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from pylivetrack.mapview import MapView, MarkerKind, StaticViewport, format_staleness
from pylivetrack.subscriber import LocationSubscriber

DESTINATION = (51.505, -0.09)


@pytest.mark.parametrize(
    ("elapsed_ms", "expected"),
    [
        (0, "just now"),
        (3_000, "just now"),
        (4_999, "just now"),
        (30_000, "30 seconds ago"),
        (59_999, "59 seconds ago"),
        (125_000, "2 minutes ago"),
    ],
)
def test_format_staleness(elapsed_ms: int, expected: str) -> None:
    assert format_staleness(1_000_000, 1_000_000 + elapsed_ms) == expected


def test_format_staleness_clamps_future_timestamps() -> None:
    assert format_staleness(10_000, 0) == "just now"


def test_render_without_tracked_position_shows_destination_only(clock: Any) -> None:
    view = MapView(StaticViewport(DESTINATION), DESTINATION, order_id="A17", clock=clock)

    frame = view.render(None)

    assert [marker.kind for marker in frame.markers] == [MarkerKind.DESTINATION]
    assert frame.markers[0].popup == "Delivery location for order #A17"
    assert frame.courier is None
    assert frame.center == DESTINATION
    assert frame.staleness is None


def test_render_courier_marker(clock: Any) -> None:
    timestamp = int(datetime(2026, 1, 1, 12, 34, 56, tzinfo=UTC).timestamp() * 1000)
    clock.now = timestamp + 30_000
    view = MapView(StaticViewport(DESTINATION), DESTINATION, clock=clock)

    frame = view.render((51.51, -0.1), timestamp, "Sam")

    assert frame.courier is not None
    assert frame.courier.position == (51.51, -0.1)
    assert frame.courier.popup == "Sam is on the way!"
    assert frame.markers[0].popup == "Delivery location for order #public"
    assert frame.staleness == "30 seconds ago"
    assert frame.updated_at == "12:34:56"
    assert view.last_frame is frame


def test_auto_center_only_when_position_changes(clock: Any) -> None:
    viewport = StaticViewport(DESTINATION, zoom=15)
    view = MapView(viewport, DESTINATION, clock=clock)

    view.render((51.51, -0.1))
    view.render((51.51, -0.1))
    assert viewport.set_view_calls == 1
    assert viewport.center == (51.51, -0.1)
    assert viewport.zoom == 15

    view.render((51.52, -0.1))
    assert viewport.set_view_calls == 2


def test_auto_center_disabled_keeps_viewport(clock: Any) -> None:
    viewport = StaticViewport(DESTINATION)
    view = MapView(viewport, DESTINATION, auto_center=False, clock=clock)

    frame = view.render((51.51, -0.1))

    assert viewport.set_view_calls == 0
    assert frame.center == DESTINATION

    view.auto_center = True
    view.render((51.51, -0.1))
    assert viewport.set_view_calls == 1


def test_bind_follows_subscriber(store: Any, clock: Any) -> None:
    viewport = StaticViewport(DESTINATION)
    view = MapView(viewport, DESTINATION, clock=clock)
    feed = LocationSubscriber(store=store, clock=clock)
    feed.subscribe()
    remove = view.bind(feed)
    assert view.last_frame is not None
    assert view.last_frame.courier is None

    store.replace(
        "public_location",
        {"latitude": 51.51, "longitude": -0.1, "timestamp": clock.now, "isTracking": True, "driverName": "Sam"},
    )

    assert view.last_frame.courier is not None
    assert view.last_frame.courier.popup == "Sam is on the way!"
    assert view.last_frame.staleness == "just now"
    assert viewport.center == (51.51, -0.1)

    remove()
    store.replace(
        "public_location",
        {"latitude": 51.6, "longitude": -0.1, "timestamp": clock.now + 1, "isTracking": True},
    )
    assert view.last_frame.courier.position == (51.51, -0.1)
