"""Deterministic reconciliation policy.

Two independent push feeds (public slot, per-order slot) can deliver in
any order. These rules only look at record contents, never at arrival
order, so every subscriber converges on the same answer.
"""

from __future__ import annotations

from enum import StrEnum

from pylivetrack.models.location import LocationRecord


class TrackingSource(StrEnum):
    PUBLIC = "public"
    ORDER = "order"


def slot_priority(source: TrackingSource) -> int:
    """Higher wins. Static: recency never overrides it."""
    priorities: dict[TrackingSource, int] = {
        TrackingSource.PUBLIC: 50,
        TrackingSource.ORDER: 10,
    }
    return priorities.get(source, 0)


def should_accept_record(cached: LocationRecord | None, incoming: LocationRecord | None) -> bool:
    """Decide whether a pushed value replaces the cached value of one slot.

    Policy:
    - Absent values (slot cleared) and first values are always accepted.
    - A value whose ``timestamp`` is older than the cached one is an
      out-of-order delivery and is dropped, unless it changes
      ``is_tracking`` (a stop merge keeps the old timestamp).
    """
    if incoming is None or cached is None:
        return True
    if incoming.timestamp >= cached.timestamp:
        return True
    return incoming.is_tracking != cached.is_tracking


def pick_authoritative(
    public: LocationRecord | None,
    order: LocationRecord | None,
) -> tuple[LocationRecord | None, TrackingSource | None]:
    """Return the active record with the highest slot priority.

    Returns ``(None, None)`` when no slot is tracking.
    """
    candidates = [
        (record, source)
        for record, source in ((public, TrackingSource.PUBLIC), (order, TrackingSource.ORDER))
        if record is not None and record.is_tracking
    ]
    if not candidates:
        return None, None
    return max(candidates, key=lambda item: slot_priority(item[1]))
