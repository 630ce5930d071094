"""pylivetrack - Async live delivery-location tracking over a realtime store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pylivetrack")
except PackageNotFoundError:
    __version__ = "0+local"
from pylivetrack.capabilities import (
    GeolocationProvider,
    PositionOptions,
    ReplayGeolocationProvider,
    UnsupportedWakeLockProvider,
    WakeLockHandle,
    WakeLockProvider,
)
from pylivetrack.config import TrackingConfig
from pylivetrack.control import TrackingControlPanel
from pylivetrack.exceptions import (
    AcquisitionTimeoutError,
    GeolocationError,
    GeolocationUnsupportedError,
    LiveTrackConfigError,
    LiveTrackError,
    PermissionDeniedError,
    PositionUnavailableError,
    StoreError,
    StoreTransportError,
    StoreWriteError,
    WakeLockUnavailableError,
)
from pylivetrack.mapview import MapFrame, MapView, MapViewport, Marker, MarkerKind, StaticViewport, format_staleness
from pylivetrack.models import Coordinates, LocationRecord, Position
from pylivetrack.policy import TrackingSource
from pylivetrack.publisher import LocationPublisher
from pylivetrack.scheduler import AsyncioTickStrategy, Scheduler, ThreadTickStrategy, TickStrategy
from pylivetrack.store import (
    FirebaseLocationStore,
    InMemoryLocationStore,
    LocationStore,
    MqttLocationStore,
    create_store,
    get_store,
    init_store,
)
from pylivetrack.subscriber import LocationSubscriber
from pylivetrack.wakelock import WakeLockManager

__all__ = [
    "__version__",
    "AcquisitionTimeoutError",
    "AsyncioTickStrategy",
    "Coordinates",
    "FirebaseLocationStore",
    "GeolocationError",
    "GeolocationProvider",
    "GeolocationUnsupportedError",
    "InMemoryLocationStore",
    "LiveTrackConfigError",
    "LiveTrackError",
    "LocationPublisher",
    "LocationRecord",
    "LocationStore",
    "LocationSubscriber",
    "MapFrame",
    "MapView",
    "MapViewport",
    "Marker",
    "MarkerKind",
    "MqttLocationStore",
    "PermissionDeniedError",
    "Position",
    "PositionOptions",
    "PositionUnavailableError",
    "ReplayGeolocationProvider",
    "Scheduler",
    "StaticViewport",
    "StoreError",
    "StoreTransportError",
    "StoreWriteError",
    "ThreadTickStrategy",
    "TickStrategy",
    "TrackingConfig",
    "TrackingControlPanel",
    "TrackingSource",
    "UnsupportedWakeLockProvider",
    "WakeLockHandle",
    "WakeLockManager",
    "WakeLockProvider",
    "WakeLockUnavailableError",
    "create_store",
    "format_staleness",
    "get_store",
    "init_store",
]
