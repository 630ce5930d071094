"""Admin-side start/stop panel around a :class:`LocationPublisher`."""

from __future__ import annotations

import logging

from pylivetrack._clock import MsClock, now_ms
from pylivetrack._constants import DEFAULT_DRIVER_NAME, SUCCESS_MESSAGE_TTL
from pylivetrack.mapview import format_staleness
from pylivetrack.publisher import LocationPublisher

_logger = logging.getLogger(__name__)

START_FAILED = "Failed to start location tracking."
STOP_FAILED = "Failed to stop location tracking. Please try again."
STOP_SUCCEEDED = "Location sharing stopped successfully!"


class TrackingControlPanel:
    """Surfaces publisher outcomes as error/success messages.

    The success message clears itself :data:`SUCCESS_MESSAGE_TTL` seconds
    after it was set.
    """

    def __init__(self, publisher: LocationPublisher, *, clock: MsClock = now_ms) -> None:
        self._publisher = publisher
        self._clock = clock
        self.error: str | None = None
        self.is_stopping = False
        self._success: str | None = None
        self._success_set_at = 0

    @property
    def is_tracking(self) -> bool:
        return self._publisher.is_tracking

    @property
    def success_message(self) -> str | None:
        if self._success is None:
            return None
        if self._clock() - self._success_set_at >= SUCCESS_MESSAGE_TTL * 1000:
            self._success = None
        return self._success

    def _clear_messages(self) -> None:
        self.error = None
        self._success = None

    async def handle_start(self, label: str = DEFAULT_DRIVER_NAME) -> bool:
        self._clear_messages()
        started = await self._publisher.start(label)
        if not started:
            reason = self._publisher.last_error or "Please check location permissions."
            self.error = f"{START_FAILED} {reason}"
        return started

    async def handle_stop(self) -> bool:
        self._clear_messages()
        self.is_stopping = True
        try:
            stopped = await self._publisher.stop()
        finally:
            self.is_stopping = False
        if stopped:
            self._success = STOP_SUCCEEDED
            self._success_set_at = self._clock()
        else:
            self.error = STOP_FAILED
        return stopped

    def status_line(self, last_update: int | None, now: int | None = None) -> str | None:
        """Live-broadcast banner text, ``None`` while not tracking."""
        if not self._publisher.is_tracking or last_update is None:
            return None
        current = self._clock() if now is None else now
        return f"Location broadcasting live - Updated {format_staleness(last_update, current)}"
