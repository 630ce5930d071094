"""Wake-lock ownership for a publishing session."""

from __future__ import annotations

import asyncio
import logging

from pylivetrack._constants import DEFAULT_WAKE_LOCK_KIND
from pylivetrack.capabilities import UnsupportedWakeLockProvider, WakeLockHandle, WakeLockProvider
from pylivetrack.exceptions import WakeLockUnavailableError


class WakeLockManager:
    """Holds at most one wake-lock for this device.

    ``acquire`` releases a held lock before requesting a new one. While
    the manager is active, a lock revoked by the platform (tab hidden,
    battery saver) is requested again.
    """

    def __init__(
        self,
        provider: WakeLockProvider | None = None,
        *,
        kind: str = DEFAULT_WAKE_LOCK_KIND,
        logger: logging.Logger | None = None,
    ) -> None:
        self._provider: WakeLockProvider = provider or UnsupportedWakeLockProvider()
        self._kind = kind
        self._logger = logger or logging.getLogger(__name__)
        self._handle: WakeLockHandle | None = None
        self._active = False
        self._generation = 0
        self._reacquire_task: asyncio.Task[bool] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None and not self._handle.released

    @property
    def active(self) -> bool:
        return self._active

    async def acquire(self) -> bool:
        """Request the lock; return ``False`` when the platform refuses.

        When calls overlap only the most recent one keeps its lock; earlier
        ones release what they obtained and return ``False``.
        """
        self._active = True
        self._generation += 1
        generation = self._generation
        previous = self._handle
        self._handle = None
        if previous is not None and not previous.released:
            try:
                await previous.release()
            except Exception:
                self._logger.debug("Releasing previous wake-lock failed", exc_info=True)

        try:
            handle = await self._provider.request(self._kind)
        except WakeLockUnavailableError as exc:
            self._logger.warning("Wake-lock unavailable, tracking continues without it: %s", exc)
            return False

        if not self._active or generation != self._generation:
            # Released, or superseded by a newer acquire, while the request was in flight.
            await handle.release()
            return False
        self._handle = handle
        handle.add_release_listener(lambda: self._on_released(handle))
        self._logger.debug("Wake-lock %r acquired", self._kind)
        return True

    def _on_released(self, handle: WakeLockHandle) -> None:
        if not self._active or handle is not self._handle:
            return
        self._logger.debug("Wake-lock revoked by the platform, reacquiring")
        self._handle = None
        self._reacquire_task = asyncio.get_running_loop().create_task(self.acquire())

    async def release(self) -> None:
        """Release the lock and stop reacquiring it.

        Raises whatever the platform raises while releasing, after the
        manager has already forgotten the handle.
        """
        self._active = False
        task = self._reacquire_task
        self._reacquire_task = None
        if task is not None and not task.done():
            task.cancel()
        handle = self._handle
        self._handle = None
        if handle is None or handle.released:
            return
        await handle.release()
        self._logger.debug("Wake-lock %r released", self._kind)
