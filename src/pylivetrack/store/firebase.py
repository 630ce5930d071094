"""Firebase Realtime Database adapter over the REST and streaming API.

Reads and writes are plain ``GET``/``PATCH``/``PUT`` requests against
``{database_url}/{path}.json``. Subscriptions hold a Server-Sent Events
stream open per path and rebuild the subscribed value locally from the
``put``/``patch`` events the database emits.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from pylivetrack._redact import redact_for_log, redact_url
from pylivetrack.exceptions import StoreTransportError, StoreWriteError
from pylivetrack.store.base import ChangeCallback, Unsubscribe, split_path

_logger = logging.getLogger(__name__)

_STREAM_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=None)


class SseDecoder:
    """Incremental Server-Sent Events decoder.

    Feed it one line at a time; it returns ``(event, data)`` once a blank
    line terminates an event block.
    """

    def __init__(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []

    def feed(self, line: str) -> tuple[str, str] | None:
        line = line.rstrip("\r\n")
        if not line:
            if self._event is None and not self._data:
                return None
            event = (self._event or "message", "\n".join(self._data))
            self._event = None
            self._data = []
            return event
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None


def _set_at(node: Any, segments: list[str], value: Any) -> Any:
    if not segments:
        return copy.deepcopy(value)
    base = dict(node) if isinstance(node, dict) else {}
    head, rest = segments[0], segments[1:]
    child = _set_at(base.get(head), rest, value)
    if child is None or child == {}:
        base.pop(head, None)
    else:
        base[head] = child
    return base or None


def apply_stream_event(mirror: Any, event: str, payload: Mapping[str, Any]) -> Any:
    """Apply one ``put``/``patch`` stream event to the locally mirrored value.

    ``payload`` is the decoded event data: ``{"path": "/sub/path", "data": ...}``.
    ``put`` replaces the value at ``path``; ``patch`` overwrites each child
    key listed in ``data``.
    """
    raw_path = str(payload.get("path") or "/")
    segments = [segment for segment in raw_path.strip("/").split("/") if segment]
    data = payload.get("data")
    if event == "put":
        return _set_at(mirror, segments, data)
    if event == "patch":
        if not isinstance(data, Mapping):
            return mirror
        for key, value in data.items():
            mirror = _set_at(mirror, [*segments, *split_path(str(key))], value)
        return mirror
    raise ValueError(f"unsupported stream event {event!r}")


class FirebaseLocationStore:
    """Location store backed by a Firebase Realtime Database.

    Usage::

        async with FirebaseLocationStore(url, auth_token=token) as store:
            await store.write("public_location", {"latitude": 1.0, ...})
    """

    def __init__(
        self,
        database_url: str,
        *,
        auth_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        retry_delay: float = 2.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._base_url = database_url.rstrip("/")
        self._auth_token = auth_token
        self._external_session = session is not None
        self._http_session = session
        self._retry_delay = retry_delay
        self._logger = logger or _logger
        self._streams: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FirebaseLocationStore:
        self._http()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel open streams and close the owned HTTP session."""
        streams = list(self._streams)
        self._streams.clear()
        for task in streams:
            task.cancel()
        if streams:
            await asyncio.gather(*streams, return_exceptions=True)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _http(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    def url_for(self, path: str) -> str:
        url = f"{self._base_url}/{'/'.join(split_path(path))}.json"
        if self._auth_token:
            url = f"{url}?auth={self._auth_token}"
        return url

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = self.url_for(path)
        self._logger.debug("%s %s payload=%s", method, redact_url(url), redact_for_log(payload))
        kwargs: dict[str, Any] = {}
        if payload is not None:
            kwargs["data"] = json.dumps(payload, separators=(",", ":"))
            kwargs["headers"] = {"content-type": "application/json; charset=UTF-8"}
        try:
            async with self._http().request(method, url, **kwargs) as resp:
                text = await resp.text()
                if resp.status // 100 != 2:
                    raise StoreTransportError(
                        f"HTTP {resp.status} from {method} {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except StoreTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise StoreTransportError(f"{method} {path} failed: {exc}", path=path) from exc

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreTransportError(f"Invalid JSON from {method} {path}: {text[:200]}", path=path) from exc

    async def write(self, path: str, patch: Mapping[str, Any]) -> None:
        try:
            await self._request("PATCH", path, dict(patch))
        except StoreTransportError as exc:
            raise StoreWriteError(str(exc), path=path) from exc

    async def set(self, path: str, record: Mapping[str, Any] | None) -> None:
        try:
            if record:
                await self._request("PUT", path, dict(record))
            else:
                await self._request("DELETE", path)
        except StoreTransportError as exc:
            raise StoreWriteError(str(exc), path=path) from exc

    async def read(self, path: str) -> dict[str, Any] | None:
        value = await self._request("GET", path)
        return value if isinstance(value, dict) else None

    # ------------------------------------------------------------------
    # Streaming subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        split_path(path)
        task = asyncio.get_running_loop().create_task(self._run_stream(path, on_change))
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    def _emit(self, path: str, on_change: ChangeCallback, mirror: Any) -> None:
        try:
            on_change(copy.deepcopy(mirror) if isinstance(mirror, dict) else None)
        except Exception:
            self._logger.warning("Subscriber callback failed for %s", path, exc_info=True)

    async def _run_stream(self, path: str, on_change: ChangeCallback) -> None:
        url = self.url_for(path)
        while True:
            try:
                keep_running = await self._consume_stream(path, url, on_change)
                if not keep_running:
                    return
            except (aiohttp.ClientError, StoreTransportError, json.JSONDecodeError, ValueError) as exc:
                self._logger.warning("Stream for %s dropped: %s", path, exc)
            await asyncio.sleep(self._retry_delay)

    async def _consume_stream(self, path: str, url: str, on_change: ChangeCallback) -> bool:
        """Consume one stream connection; return ``False`` to stop for good."""
        self._logger.debug("Opening stream %s", redact_url(url))
        headers = {"accept": "text/event-stream"}
        async with self._http().get(url, headers=headers, timeout=_STREAM_TIMEOUT) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise StoreTransportError(
                    f"HTTP {resp.status} opening stream {path}: {text[:200]}",
                    status_code=resp.status,
                    path=path,
                )
            decoder = SseDecoder()
            mirror: Any = None
            async for raw_line in resp.content:
                decoded = decoder.feed(raw_line.decode("utf-8", errors="replace"))
                if decoded is None:
                    continue
                event, data = decoded
                if event in ("put", "patch"):
                    payload = json.loads(data)
                    if not isinstance(payload, dict):
                        raise ValueError(f"stream event payload is not an object: {data[:64]}")
                    mirror = apply_stream_event(mirror, event, payload)
                    self._emit(path, on_change, mirror)
                elif event == "keep-alive":
                    continue
                elif event == "cancel":
                    self._logger.warning("Stream for %s cancelled by the database: %s", path, data)
                    return False
                elif event == "auth_revoked":
                    raise StoreTransportError(f"Credential for stream {path} revoked", path=path)
        return True
