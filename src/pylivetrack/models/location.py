"""Location models: device fixes and store records."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pylivetrack._constants import DEFAULT_DRIVER_NAME
from pylivetrack.models._base import LiveTrackBaseModel, coerce_epoch_ms


class Coordinates(LiveTrackBaseModel):
    """A WGS84 point in decimal degrees."""

    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat"), ge=-90.0, le=90.0)
    longitude: float = Field(
        validation_alias=AliasChoices("longitude", "lng", "lon"),
        ge=-180.0,
        le=180.0,
    )

    def as_tuple(self) -> tuple[float, float]:
        """``(latitude, longitude)``, the order map libraries expect."""
        return (self.latitude, self.longitude)


class Position(LiveTrackBaseModel):
    """A single fix reported by a geolocation provider.

    Parameters
    ----------
    coords : Coordinates
        Reported point.
    accuracy : float or None
        Horizontal accuracy radius in metres, when the platform reports one.
    timestamp : int
        Epoch milliseconds at which the platform took the fix.
    """

    coords: Coordinates
    accuracy: float | None = None
    timestamp: int = 0

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        return coerce_epoch_ms(value)


class LocationRecord(Coordinates):
    """The unit of state held in a store slot.

    Parameters
    ----------
    latitude, longitude : float
        Last published point.
    timestamp : int
        Epoch milliseconds stamped by the publisher at write time.
        ``0`` when the record carries none.
    is_tracking : bool
        ``True`` while the publishing session is active. Stopping a
        session flips it to ``False``; the record itself is kept.
    driver_name : str or None
        Free-text label of the publisher.
    """

    timestamp: int = 0
    is_tracking: bool = False
    driver_name: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        return coerce_epoch_ms(value)

    @property
    def display_name(self) -> str:
        return self.driver_name or DEFAULT_DRIVER_NAME

    @classmethod
    def from_store(cls, value: Any) -> LocationRecord | None:
        """Parse a raw store value; ``None`` means the slot is absent.

        Raises :class:`ValueError` (or pydantic's ``ValidationError``, a
        subclass) for values that are not a location record.
        """
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise ValueError(f"location record must be an object, got {type(value).__name__}")
        return cls.model_validate(dict(value))
