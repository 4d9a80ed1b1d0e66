"""In-process remote source.

Keeps a JSON tree in memory and fires child events for subscribed paths
synchronously, before the write that caused them returns. This mirrors how
push-based databases report local writes, and makes the replica usable
without a network.
"""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from pyreplica.models.record import ChildCallback, ChildEventKind, RemoteRecord
from pyreplica.remote.base import diff_children, join_path, last_segment, split_path

_logger = logging.getLogger(__name__)


class InMemoryRemote:
    """Dictionary-backed implementation of :class:`~pyreplica.remote.base.RemoteSource`."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._subscriptions: dict[str, list[tuple[ChildEventKind, ChildCallback]]] = defaultdict(list)
        self._pending_failure: BaseException | None = None
        self.calls: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def fail_next(self, exc: BaseException) -> None:
        """Make the next point operation raise *exc*."""
        self._pending_failure = exc

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._root)

    def subscribed_paths(self) -> list[str]:
        return sorted(path for path, subs in self._subscriptions.items() if subs)

    # ------------------------------------------------------------------
    # Tree access
    # ------------------------------------------------------------------

    def _record_call(self, op: str) -> None:
        self.calls[op] = self.calls.get(op, 0) + 1
        exc = self._pending_failure
        if exc is not None:
            self._pending_failure = None
            raise exc

    def _read(self, path: str) -> Any:
        node: Any = self._root
        for segment in split_path(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        if not segments:
            self._root = copy.deepcopy(value) if isinstance(value, dict) else {}
            return

        if value is None or value == {}:
            self._delete(segments)
            return

        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[segments[-1]] = copy.deepcopy(value)

    def _delete(self, segments: list[str]) -> None:
        trail: list[tuple[dict[str, Any], str]] = []
        node: Any = self._root
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return
            trail.append((node, segment))
            node = node[segment]
        parent, key = trail.pop()
        del parent[key]
        # Prune parents left empty, like a JSON tree without null leaves.
        while trail:
            parent, key = trail.pop()
            if parent[key]:
                break
            del parent[key]

    def _mutate(self, op: str, apply: Callable[[], None]) -> None:
        self._record_call(op)
        before = {path: copy.deepcopy(self._read(path)) for path in self.subscribed_paths()}
        apply()
        for path, old in before.items():
            self._emit(path, diff_children(old, self._read(path)))

    def _emit(
        self,
        path: str,
        events: list[tuple[ChildEventKind, RemoteRecord, str | None]],
    ) -> None:
        for kind, record, prev_key in events:
            for sub_kind, callback in list(self._subscriptions.get(path, ())):
                if sub_kind != kind:
                    continue
                try:
                    callback(record, prev_key)
                except Exception:
                    _logger.warning("Child callback failed path=%s kind=%s", path, kind, exc_info=True)

    # ------------------------------------------------------------------
    # RemoteSource
    # ------------------------------------------------------------------

    async def subscribe(self, path: str, kind: ChildEventKind, callback: ChildCallback) -> None:
        key = join_path(path)
        self._subscriptions[key].append((kind, callback))
        _logger.debug("Subscribed path=%s kind=%s", key, kind)
        if kind == ChildEventKind.ADDED:
            existing = diff_children(None, self._read(key))
            for _kind, record, prev_key in existing:
                try:
                    callback(record, prev_key)
                except Exception:
                    _logger.warning("Child callback failed path=%s kind=%s", key, kind, exc_info=True)

    async def unsubscribe(self, path: str) -> None:
        key = join_path(path)
        self._subscriptions.pop(key, None)
        _logger.debug("Unsubscribed path=%s", key)

    async def once(self, path: str) -> RemoteRecord:
        self._record_call("once")
        key = join_path(path)
        return RemoteRecord(key=last_segment(key), value=copy.deepcopy(self._read(key)))

    async def set(self, path: str, value: Any) -> None:
        key = join_path(path)
        self._mutate("set", lambda: self._write(key, value))

    async def update(self, path: str, value: dict[str, Any]) -> None:
        key = join_path(path)

        def _apply() -> None:
            for child, child_value in value.items():
                self._write(join_path(key, str(child)), child_value)

        self._mutate("update", _apply)

    async def remove(self, path: str) -> None:
        key = join_path(path)
        self._mutate("remove", lambda: self._write(key, None))
