"""MQTT-backed location store.

Every slot is a retained JSON message on ``{prefix}/{path}``. The store
subscribes to ``{prefix}/#`` and mirrors the retained state locally, so
reads are served from the mirror and merges are computed client-side
before the merged record is republished. The broker offers no
compare-and-set: two writers merging into the same slot race and the last
publish wins.

paho-mqtt runs its network loop on its own thread; inbound messages are
handed to the asyncio loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Mapping
from typing import Any, cast

import paho.mqtt.client as mqtt

from pylivetrack._redact import redact_for_log
from pylivetrack.exceptions import StoreTransportError, StoreWriteError
from pylivetrack.store.base import ChangeCallback, Unsubscribe, merge_patch, split_path
from pylivetrack.store.memory import InMemoryLocationStore

_logger = logging.getLogger(__name__)


def topic_for(prefix: str, path: str) -> str:
    return "/".join([*split_path(prefix), *split_path(path)])


def path_for(prefix: str, topic: str) -> str | None:
    """Map a received topic back to a store path; ``None`` when foreign."""
    prefix_segments = split_path(prefix)
    segments = [segment for segment in topic.split("/") if segment]
    if segments[: len(prefix_segments)] != prefix_segments or len(segments) == len(prefix_segments):
        return None
    return "/".join(segments[len(prefix_segments) :])


def decode_record_payload(payload: bytes) -> dict[str, Any] | None:
    """Decode a retained slot payload; an empty payload clears the slot."""
    if not payload:
        return None
    parsed = json.loads(payload.decode("utf-8"))
    if parsed is None:
        return None
    if not isinstance(parsed, dict):
        raise ValueError("slot payload is not a JSON object")
    return parsed


def encode_record_payload(record: Mapping[str, Any] | None) -> bytes:
    if not record:
        return b""
    return json.dumps(dict(record), separators=(",", ":")).encode("utf-8")


class MqttLocationStore:
    """Location store over retained MQTT messages.

    Usage::

        async with MqttLocationStore("broker.local") as store:
            store.subscribe("public_location", print)
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        *,
        topic_prefix: str = "livetrack",
        keepalive: int = 60,
        tls: bool = False,
        username: str | None = None,
        password: str | None = None,
        client_id: str | None = None,
        connect_timeout: float = 10.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._prefix = topic_prefix
        self._keepalive = keepalive
        self._tls = tls
        self._username = username
        self._password = password
        self._client_id = client_id or f"livetrack_{secrets.token_hex(6)}"
        self._connect_timeout = connect_timeout
        self._logger = logger or _logger
        self._mirror = InMemoryLocationStore()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: mqtt.Client | None = None
        self._ready: asyncio.Future[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> MqttLocationStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Connect, subscribe to the prefix and wait for the subscription ack."""
        await self.close()
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._ready = loop.create_future()
        ready = self._ready
        self._logger.debug(
            "MQTT store connect host=%s port=%s prefix=%s client_id=%s",
            self._host,
            self._port,
            self._prefix,
            self._client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if self._username is not None:
            client.username_pw_set(self._username, self._password)
        if self._tls:
            client.tls_set()

        wildcard = topic_for(self._prefix, "#")

        def on_connect(c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                loop.call_soon_threadsafe(self._fail_ready, ready, f"connect refused: {reason_code}")
                return
            self._logger.debug("MQTT connected, subscribing %s", wildcard)
            c.subscribe(wildcard, qos=1)

        def on_subscribe(_c: mqtt.Client, _userdata: Any, _mid: Any, _reason_codes: Any, _properties: Any) -> None:
            loop.call_soon_threadsafe(self._resolve_ready, ready)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            path = path_for(self._prefix, msg.topic)
            if path is None:
                return
            try:
                record = decode_record_payload(msg.payload)
            except ValueError:
                self._logger.debug("MQTT slot payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            loop.call_soon_threadsafe(self._apply_remote, path, record)

        def on_disconnect(_c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
            self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_subscribe = on_subscribe
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            await loop.run_in_executor(None, client.connect, self._host, self._port, self._keepalive)
        except OSError as exc:
            raise StoreTransportError(f"MQTT connect to {self._host}:{self._port} failed: {exc}") from exc
        client.loop_start()
        self._client = client

        try:
            await asyncio.wait_for(asyncio.shield(ready), self._connect_timeout)
        except TimeoutError as exc:
            await self.close()
            raise StoreTransportError(f"MQTT subscription to {wildcard} not acknowledged") from exc
        except StoreTransportError:
            await self.close()
            raise

    async def close(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            loop = self._loop or asyncio.get_running_loop()
            await loop.run_in_executor(None, client.loop_stop)
            self._logger.debug("MQTT network loop stopped")

    @staticmethod
    def _resolve_ready(ready: asyncio.Future[None]) -> None:
        if not ready.done():
            ready.set_result(None)

    @staticmethod
    def _fail_ready(ready: asyncio.Future[None], reason: str) -> None:
        if not ready.done():
            ready.set_exception(StoreTransportError(f"MQTT {reason}"))

    def _apply_remote(self, path: str, record: dict[str, Any] | None) -> None:
        self._mirror.replace(path, record)

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    def _publish(self, path: str, record: Mapping[str, Any] | None) -> None:
        client = self._client
        if client is None:
            raise StoreWriteError("MQTT store is not connected", path=path)
        topic = topic_for(self._prefix, path)
        self._logger.debug("PUBLISH %s record=%s", topic, redact_for_log(record))
        info = client.publish(topic, encode_record_payload(record), qos=1, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise StoreWriteError(f"MQTT publish to {topic} failed rc={info.rc}", path=path)

    async def write(self, path: str, patch: Mapping[str, Any]) -> None:
        current = await self._mirror.read(path)
        merged = merge_patch(current, patch)
        self._publish(path, merged)
        self._mirror.replace(path, merged)

    async def set(self, path: str, record: Mapping[str, Any] | None) -> None:
        self._publish(path, record)
        self._mirror.replace(path, record)

    async def read(self, path: str) -> dict[str, Any] | None:
        return await self._mirror.read(path)

    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        return self._mirror.subscribe(path, on_change)
