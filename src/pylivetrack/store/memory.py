"""In-process location store.

Holds the slot tree in memory and fans changes out synchronously. Used as
the test double for publisher/subscriber code and for single-process
deployments where publisher and viewers share an event loop.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from pylivetrack.store.base import ChangeCallback, Unsubscribe, merge_patch, split_path

_logger = logging.getLogger(__name__)


class InMemoryLocationStore:
    """Tree-shaped in-memory store with realtime-database semantics.

    Writes to ``locations/A`` notify subscribers of ``locations/A`` and of
    every ancestor (``locations``); reading a parent returns its child map.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(dict(initial)) if initial else {}
        self._subscribers: dict[tuple[str, ...], list[ChangeCallback]] = {}
        self.write_count = 0

    def _get(self, segments: list[str]) -> Any:
        node: Any = self._root
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _put(self, segments: list[str], value: dict[str, Any] | None) -> None:
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        if value:
            node[segments[-1]] = value
        else:
            node.pop(segments[-1], None)

    def _notify(self, segments: list[str]) -> None:
        for depth in range(len(segments), 0, -1):
            key = tuple(segments[:depth])
            callbacks = list(self._subscribers.get(key, ()))
            if not callbacks:
                continue
            value = self._get(list(key))
            for callback in callbacks:
                try:
                    callback(copy.deepcopy(value))
                except Exception:
                    _logger.warning("Subscriber callback failed for %s", "/".join(key), exc_info=True)

    async def write(self, path: str, patch: Mapping[str, Any]) -> None:
        segments = split_path(path)
        current = self._get(segments)
        merged = merge_patch(current if isinstance(current, dict) else None, patch)
        self._put(segments, merged)
        self.write_count += 1
        _logger.debug("write %s patch=%s", path, dict(patch))
        self._notify(segments)

    async def set(self, path: str, record: Mapping[str, Any] | None) -> None:
        self.replace(path, record)
        self.write_count += 1
        _logger.debug("set %s", path)

    def replace(self, path: str, record: Mapping[str, Any] | None) -> bool:
        """Synchronously replace the value at *path* and notify subscribers.

        Returns ``False`` without notifying when the value is unchanged.
        """
        segments = split_path(path)
        value = copy.deepcopy(dict(record)) if record else None
        if self._get(segments) == value:
            return False
        self._put(segments, value)
        self._notify(segments)
        return True

    async def read(self, path: str) -> dict[str, Any] | None:
        value = self._get(split_path(path))
        return copy.deepcopy(value) if isinstance(value, dict) else None

    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        key = tuple(split_path(path))
        self._subscribers.setdefault(key, []).append(on_change)
        value = self._get(list(key))
        on_change(copy.deepcopy(value) if isinstance(value, dict) else None)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if not callbacks:
                return
            try:
                callbacks.remove(on_change)
            except ValueError:
                return
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, path: str) -> int:
        return len(self._subscribers.get(tuple(split_path(path)), ()))
