"""Data models for location records."""

from pylivetrack.models._base import LiveTrackBaseModel
from pylivetrack.models.location import Coordinates, LocationRecord, Position

__all__ = [
    "Coordinates",
    "LiveTrackBaseModel",
    "LocationRecord",
    "Position",
]
