"""Library configuration for pylivetrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pylivetrack._constants import (
    DEFAULT_DRIVER_NAME,
    DEFAULT_FIX_TIMEOUT,
    DEFAULT_STALL_THRESHOLD,
    DEFAULT_TICK_FIX_TIMEOUT,
    DEFAULT_UPDATE_INTERVAL,
    DEFAULT_WAKE_LOCK_KIND,
)
from pylivetrack.exceptions import LiveTrackConfigError

STORE_BACKENDS: frozenset[str] = frozenset({"memory", "firebase", "mqtt"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TrackingConfig:
    """Tracking configuration.

    Parameters
    ----------
    store_backend : str
        Which remote store adapter :func:`pylivetrack.store.create_store`
        builds: ``"memory"``, ``"firebase"`` or ``"mqtt"``.
    database_url : str or None
        Realtime Database root URL (``https://<project>.firebaseio.com``).
        Required for the ``firebase`` backend.
    auth_token : str or None
        Database secret or ID token appended as ``?auth=``.
    mqtt_host : str or None
        Broker host. Required for the ``mqtt`` backend.
    mqtt_port : int
        Broker port.
    mqtt_tls : bool
        Enable TLS on the broker connection.
    mqtt_topic_prefix : str
        Topic prefix under which every slot is published.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    update_interval : float
        Seconds between two scheduled fixes of an active session.
    fix_timeout : float
        Deadline of the first fix taken by ``start``.
    tick_fix_timeout : float
        Deadline of each scheduled or watched fix.
    stall_threshold : float
        Seconds without a successful write after which
        ``refresh_if_stalled`` restarts the session.
    default_driver_name : str
        Label written when a session has none.
    wake_lock_kind : str
        Wake-lock kind requested from the platform.
    background_ticks : bool
        Drive the tick from a dedicated thread instead of the event loop.
    stream_retry_delay : float
        Seconds before a dropped push stream reconnects.
    """

    store_backend: str = "memory"
    database_url: str | None = None
    auth_token: str | None = None
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_tls: bool = False
    mqtt_topic_prefix: str = "livetrack"
    mqtt_keepalive: int = 60
    update_interval: float = DEFAULT_UPDATE_INTERVAL
    fix_timeout: float = DEFAULT_FIX_TIMEOUT
    tick_fix_timeout: float = DEFAULT_TICK_FIX_TIMEOUT
    stall_threshold: float = DEFAULT_STALL_THRESHOLD
    default_driver_name: str = DEFAULT_DRIVER_NAME
    wake_lock_kind: str = DEFAULT_WAKE_LOCK_KIND
    background_ticks: bool = False
    stream_retry_delay: float = 2.0

    def __post_init__(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise LiveTrackConfigError(
                f"store_backend must be one of {sorted(STORE_BACKENDS)}, got {self.store_backend!r}"
            )
        for name in ("update_interval", "fix_timeout", "tick_fix_timeout", "stall_threshold"):
            if getattr(self, name) <= 0:
                raise LiveTrackConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.store_backend == "firebase" and not self.database_url:
            raise LiveTrackConfigError("database_url is required for the firebase store backend")
        if self.store_backend == "mqtt" and not self.mqtt_host:
            raise LiveTrackConfigError("mqtt_host is required for the mqtt store backend")

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackingConfig:
        """Create configuration from ``LIVETRACK_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "LIVETRACK_STORE_BACKEND": "store_backend",
            "LIVETRACK_DATABASE_URL": "database_url",
            "LIVETRACK_AUTH_TOKEN": "auth_token",
            "LIVETRACK_MQTT_HOST": "mqtt_host",
            "LIVETRACK_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "LIVETRACK_DRIVER_NAME": "default_driver_name",
        }
        _ENV_FLOAT_MAP = {
            "LIVETRACK_UPDATE_INTERVAL": "update_interval",
            "LIVETRACK_FIX_TIMEOUT": "fix_timeout",
            "LIVETRACK_TICK_FIX_TIMEOUT": "tick_fix_timeout",
            "LIVETRACK_STALL_THRESHOLD": "stall_threshold",
        }
        _ENV_INT_MAP = {
            "LIVETRACK_MQTT_PORT": "mqtt_port",
            "LIVETRACK_MQTT_KEEPALIVE": "mqtt_keepalive",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise LiveTrackConfigError(f"Invalid numeric environment value: {exc}") from exc

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("LIVETRACK_MQTT_TLS"), False)
        if "background_ticks" not in overrides:
            config_kwargs["background_ticks"] = _env_bool(env.get("LIVETRACK_BACKGROUND_TICKS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
