"""Internal constants shared across the library."""

PUBLIC_LOCATION_PATH = "public_location"
ORDER_LOCATIONS_PATH = "locations"

DEFAULT_DRIVER_NAME = "Delivery Driver"
DEFAULT_WAKE_LOCK_KIND = "screen"

# Seconds.
DEFAULT_UPDATE_INTERVAL = 1.0
DEFAULT_FIX_TIMEOUT = 5.0
DEFAULT_TICK_FIX_TIMEOUT = 1.0
DEFAULT_STALL_THRESHOLD = 10.0
SUCCESS_MESSAGE_TTL = 5.0

# Characters the realtime database rejects inside a key.
_FORBIDDEN_KEY_CHARS = frozenset("/.#$[]")


def order_location_path(order_id: str) -> str:
    """Return the store path of the per-order slot for *order_id*.

    Raises :class:`ValueError` for empty ids or ids containing characters
    that are not valid inside a single path segment.
    """
    value = str(order_id).strip()
    if not value:
        raise ValueError("order_id must be non-empty")
    bad = sorted(set(value) & _FORBIDDEN_KEY_CHARS)
    if bad:
        raise ValueError(f"order_id contains forbidden characters {''.join(bad)!r}: {value!r}")
    return f"{ORDER_LOCATIONS_PATH}/{value}"


def slot_path(order_id: str | None) -> str:
    """Path of the public slot, or of the order slot when *order_id* is given."""
    if order_id is None:
        return PUBLIC_LOCATION_PATH
    return order_location_path(order_id)
