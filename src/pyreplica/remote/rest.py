"""HTTP remote source over a JSON REST tree with an event stream.

Point operations map onto ``GET``/``PUT``/``PATCH``/``DELETE`` of
``{base_url}/{path}.json``. Subscriptions open one streaming ``GET`` per path
(``Accept: text/event-stream``) and translate the stream's ``put``/``patch``
frames into child events by diffing against a per-path children cache.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import defaultdict
from typing import Any
from urllib.parse import urlencode

import aiohttp

from pyreplica._constants import (
    SSE_CLOSING_EVENTS,
    SSE_CONTENT_TYPE,
    SSE_EVENT_KEEP_ALIVE,
    SSE_EVENT_PATCH,
    SSE_EVENT_PUT,
    USER_AGENT,
)
from pyreplica._redact import redact_for_log, redact_url
from pyreplica.config import ReplicaConfig
from pyreplica.exceptions import ReplicaError, ReplicaTransportError
from pyreplica.models.record import ChildCallback, ChildEventKind, RemoteRecord
from pyreplica.remote._sse import SseEvent, SseParser, apply_patch, apply_put
from pyreplica.remote.base import diff_children, join_path, last_segment

_logger = logging.getLogger(__name__)


class _ChildStream:
    """Background reader for one subscribed path."""

    def __init__(self, remote: RestRemote, path: str) -> None:
        self._remote = remote
        self.path = path
        self.children: dict[str, Any] = {}
        self.callbacks: list[tuple[ChildEventKind, ChildCallback]] = []
        self._task: asyncio.Task[None] | None = None
        self.failures = 0
        self.opens = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"pyreplica-stream:{self.path}")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def handle(self, event: SseEvent) -> bool:
        """Apply one frame; returns ``False`` when the stream must close."""
        if event.event == SSE_EVENT_KEEP_ALIVE:
            return True
        if event.event in SSE_CLOSING_EVENTS:
            _logger.warning("Stream closed by server path=%s event=%s data=%s", self.path, event.event, event.data)
            return False
        if event.event not in (SSE_EVENT_PUT, SSE_EVENT_PATCH):
            _logger.debug("Ignoring stream event path=%s event=%s", self.path, event.event)
            return True

        body = event.json()
        if not isinstance(body, dict):
            _logger.debug("Malformed stream frame path=%s body=%s", self.path, redact_for_log(body))
            return True
        rel_path = str(body.get("path") or "/")
        data = body.get("data")

        before = self.children
        if event.event == SSE_EVENT_PUT:
            self.children = apply_put(before, rel_path, data)
        else:
            self.children = apply_patch(before, rel_path, data)
        self.emit(diff_children(before, self.children))
        return True

    def emit(self, events: list[tuple[ChildEventKind, RemoteRecord, str | None]]) -> None:
        for kind, record, prev_key in events:
            for sub_kind, callback in list(self.callbacks):
                if sub_kind != kind:
                    continue
                try:
                    callback(record, prev_key)
                except Exception:
                    _logger.warning("Child callback failed path=%s kind=%s", self.path, kind, exc_info=True)

    async def _run(self) -> None:
        config = self._remote.config
        self.failures = 0
        while True:
            try:
                await self._read_stream()
                return
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, ReplicaError, TimeoutError) as exc:
                self.failures += 1
                if self.failures > config.stream_max_retries:
                    _logger.warning(
                        "Stream gave up path=%s after %d consecutive failures: %s", self.path, self.failures, exc
                    )
                    return
                _logger.debug("Stream dropped path=%s attempt=%d", self.path, self.failures, exc_info=True)
                await asyncio.sleep(config.stream_reconnect_delay)

    async def _read_stream(self) -> None:
        session = self._remote._require_session()
        url = self._remote.url(self.path)
        headers = {"accept": SSE_CONTENT_TYPE, "user-agent": USER_AGENT}
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)

        _logger.debug("Opening stream %s", redact_url(url))
        async with session.get(url, headers=headers, timeout=timeout) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise ReplicaTransportError(
                    f"HTTP {resp.status} opening stream {self.path}: {text[:200]}",
                    status_code=resp.status,
                    path=self.path,
                )
            # Retries are bounded per outage, not over the stream's lifetime.
            self.failures = 0
            self.opens += 1
            parser = SseParser()
            async for raw in resp.content:
                try:
                    line = raw.decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise ReplicaTransportError(f"Undecodable stream line for {self.path}", path=self.path) from exc
                event = parser.feed(line)
                if event is not None and not self.handle(event):
                    return
        raise ReplicaTransportError(f"Stream ended unexpectedly for {self.path}", path=self.path)


class RestRemote:
    """:class:`~pyreplica.remote.base.RemoteSource` backed by ``aiohttp``.

    Usage::

        async with RestRemote(ReplicaConfig(base_url=...)) as remote:
            module = ReplicaModule("messages", remote=remote, store=store)
            await module.listen()
    """

    def __init__(
        self,
        config: ReplicaConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config
        self._external_session = session is not None
        self._http_session = session
        self._streams: dict[str, _ChildStream] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> RestRemote:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        streams = list(self._streams.values())
        self._streams.clear()
        self._locks.clear()
        for stream in streams:
            await stream.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise ReplicaError("Remote not initialized. Use 'async with RestRemote(...) as remote:'")
        return self._http_session

    def url(self, path: str) -> str:
        base = self.config.base_url.rstrip("/")
        key = join_path(path)
        url = f"{base}/{key}.json" if key else f"{base}/.json"
        if self.config.auth_token:
            url = f"{url}?{urlencode({'auth': self.config.auth_token})}"
        return url

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        session = self._require_session()
        url = self.url(path)
        headers = {"accept": "application/json", "user-agent": USER_AGENT}
        data: str | None = None
        if body is not None:
            headers["content-type"] = "application/json; charset=UTF-8"
            data = json.dumps(body, separators=(",", ":"))

        _logger.debug("%s %s body=%s", method, redact_url(url), redact_for_log(body))

        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        try:
            async with session.request(method, url, data=data, headers=headers, timeout=timeout) as resp:
                text = await resp.text()
                if resp.status // 100 != 2:
                    raise ReplicaTransportError(
                        f"HTTP {resp.status} from {method} {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except ReplicaTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ReplicaTransportError(f"{method} {path} failed: {exc}", path=path) from exc

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ReplicaTransportError(f"Invalid JSON from {method} {path}: {text[:200]}", path=path) from exc

    # ------------------------------------------------------------------
    # RemoteSource
    # ------------------------------------------------------------------

    async def once(self, path: str) -> RemoteRecord:
        value = await self._request("GET", path)
        return RemoteRecord(key=last_segment(path), value=value)

    async def set(self, path: str, value: Any) -> None:
        await self._request("PUT", path, value)

    async def update(self, path: str, value: dict[str, Any]) -> None:
        await self._request("PATCH", path, value)

    async def remove(self, path: str) -> None:
        await self._request("DELETE", path)

    async def subscribe(self, path: str, kind: ChildEventKind, callback: ChildCallback) -> None:
        key = join_path(path)
        async with self._locks[key]:
            stream = self._streams.get(key)
            if stream is None:
                stream = _ChildStream(self, key)
                self._streams[key] = stream
            stream.callbacks.append((kind, callback))
            if kind == ChildEventKind.ADDED and stream.children:
                # Late subscribers still see every current child once.
                replay = diff_children(None, stream.children)
                for _kind, record, prev_key in replay:
                    try:
                        callback(record, prev_key)
                    except Exception:
                        _logger.warning("Child callback failed path=%s kind=%s", key, kind, exc_info=True)
            stream.start()

    async def unsubscribe(self, path: str) -> None:
        key = join_path(path)
        async with self._locks[key]:
            stream = self._streams.pop(key, None)
            if stream is not None:
                await stream.stop()
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
