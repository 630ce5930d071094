"""Custom exception hierarchy for pylivetrack."""

from __future__ import annotations


class LiveTrackError(Exception):
    """Base exception for all pylivetrack errors."""


class LiveTrackConfigError(LiveTrackError):
    """Invalid or missing configuration."""


class GeolocationError(LiveTrackError):
    """A position fix could not be obtained.

    ``code`` mirrors the W3C ``GeolocationPositionError`` codes
    (1 permission denied, 2 position unavailable, 3 timeout) and is
    ``0`` for failures outside that taxonomy.
    """

    code: int = 0

    def __init__(self, message: str = "", *, code: int | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message or (self.__doc__ or "").strip().split("\n", 1)[0])


class GeolocationUnsupportedError(GeolocationError):
    """No geolocation capability on this device."""


class PermissionDeniedError(GeolocationError):
    """Location access was refused."""

    code = 1


class PositionUnavailableError(GeolocationError):
    """The platform could not determine a position."""

    code = 2


class AcquisitionTimeoutError(GeolocationError):
    """A single fix attempt exceeded its deadline."""

    code = 3


class WakeLockUnavailableError(LiveTrackError):
    """Wake-lock is unsupported or was denied by the platform."""


class StoreError(LiveTrackError):
    """Remote location store failure."""


class StoreWriteError(StoreError):
    """A write to the remote store was rejected or could not be sent."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class StoreTransportError(StoreError):
    """Transport-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)
