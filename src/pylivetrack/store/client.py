"""Process-wide store handle.

The application initialises one store at startup with :func:`init_store`
(or builds one from configuration with :func:`create_store`). Publishers
and subscribers take the store as a constructor argument and only fall
back to :func:`get_store` when none is given.
"""

from __future__ import annotations

import logging

from pylivetrack.config import TrackingConfig
from pylivetrack.exceptions import LiveTrackConfigError
from pylivetrack.store.base import LocationStore
from pylivetrack.store.firebase import FirebaseLocationStore
from pylivetrack.store.memory import InMemoryLocationStore
from pylivetrack.store.mqtt import MqttLocationStore

_logger = logging.getLogger(__name__)

_store: LocationStore | None = None


def create_store(config: TrackingConfig) -> LocationStore:
    """Build the store adapter selected by ``config.store_backend``.

    The MQTT adapter still needs ``await store.connect()`` before use.
    """
    if config.store_backend == "firebase":
        assert config.database_url is not None
        return FirebaseLocationStore(
            config.database_url,
            auth_token=config.auth_token,
            retry_delay=config.stream_retry_delay,
        )
    if config.store_backend == "mqtt":
        assert config.mqtt_host is not None
        return MqttLocationStore(
            config.mqtt_host,
            config.mqtt_port,
            topic_prefix=config.mqtt_topic_prefix,
            keepalive=config.mqtt_keepalive,
            tls=config.mqtt_tls,
        )
    return InMemoryLocationStore()


def init_store(store: LocationStore | None = None, *, config: TrackingConfig | None = None) -> LocationStore:
    """Install the process-wide store and return it.

    With no arguments an adapter is built from :meth:`TrackingConfig.from_env`.
    """
    global _store
    if store is None:
        store = create_store(config or TrackingConfig.from_env())
    if _store is not None and _store is not store:
        _logger.debug("Replacing process-wide store %r with %r", _store, store)
    _store = store
    return store


def get_store() -> LocationStore:
    if _store is None:
        raise LiveTrackConfigError("No location store initialised; call init_store() first")
    return _store


def reset_store() -> None:
    """Forget the process-wide store (used by tests)."""
    global _store
    _store = None
