"""Structural interface of the remote location store.

Production adapters (`FirebaseLocationStore`, `MqttLocationStore`) and the
in-process `InMemoryLocationStore` all satisfy :class:`LocationStore`, so
publisher and subscriber code can be handed a test double.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping
from typing import Any, Protocol

ChangeCallback = Callable[[dict[str, Any] | None], None]
Unsubscribe = Callable[[], None]


class LocationStore(Protocol):
    """Push-capable key/value store holding location slots."""

    async def write(self, path: str, patch: Mapping[str, Any]) -> None:
        """Merge *patch* into the record at *path*, creating it if absent."""
        ...

    async def set(self, path: str, record: Mapping[str, Any] | None) -> None:
        """Replace the record at *path* (explicit reset)."""
        ...

    async def read(self, path: str) -> dict[str, Any] | None:
        """Return the current value at *path*, or ``None`` when absent."""
        ...

    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        """Invoke *on_change* with the current value now and on every change."""
        ...


def split_path(path: str) -> list[str]:
    """Split a slash separated store path into non-empty segments."""
    segments = [segment for segment in path.strip().strip("/").split("/") if segment]
    if not segments:
        raise ValueError(f"store path must be non-empty, got {path!r}")
    return segments


def merge_patch(current: Mapping[str, Any] | None, patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return *current* with the keys of *patch* overwritten.

    ``None`` values in the patch delete the key, matching realtime database
    update semantics.
    """
    merged: dict[str, Any] = copy.deepcopy(dict(current)) if current else {}
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
