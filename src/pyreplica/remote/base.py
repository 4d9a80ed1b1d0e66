"""Remote source interface and path helpers."""

from __future__ import annotations

from typing import Any, Protocol

from pyreplica._constants import PATH_SEPARATOR
from pyreplica.models.record import ChildCallback, ChildEventKind, RemoteRecord


class RemoteSource(Protocol):
    """Structural interface for the remote collection.

    Having a protocol here makes it easy to pass test doubles while keeping
    the shipped implementations (:class:`~pyreplica.remote.memory.InMemoryRemote`,
    :class:`~pyreplica.remote.rest.RestRemote`) concrete.

    Child callbacks are invoked on the event loop, serially per path.
    Point operations raise on failure.
    """

    async def subscribe(self, path: str, kind: ChildEventKind, callback: ChildCallback) -> None: ...

    async def unsubscribe(self, path: str) -> None: ...

    async def once(self, path: str) -> RemoteRecord: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def update(self, path: str, value: dict[str, Any]) -> None: ...

    async def remove(self, path: str) -> None: ...


def split_path(path: str | None) -> list[str]:
    """``"/a//b/"`` -> ``["a", "b"]``."""
    if not path:
        return []
    return [part for part in path.split(PATH_SEPARATOR) if part]


def join_path(*parts: str | None) -> str:
    segments: list[str] = []
    for part in parts:
        segments.extend(split_path(part))
    return PATH_SEPARATOR.join(segments)


def last_segment(path: str | None) -> str | None:
    segments = split_path(path)
    return segments[-1] if segments else None


def as_children(value: Any) -> dict[str, Any]:
    """Children of a JSON value; scalars and ``None`` have none."""
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items() if v is not None}
    return {}


def diff_children(before: Any, after: Any) -> list[tuple[ChildEventKind, RemoteRecord, str | None]]:
    """Child events turning *before* into *after*.

    Removals come first, then additions and changes in key order. The third
    tuple element is the key of the preceding sibling (``None`` for the first
    child and for removals).
    """
    old = as_children(before)
    new = as_children(after)
    events: list[tuple[ChildEventKind, RemoteRecord, str | None]] = []

    for key in sorted(old.keys() - new.keys()):
        events.append((ChildEventKind.REMOVED, RemoteRecord(key=key, value=old[key]), None))

    prev_key: str | None = None
    for key in sorted(new):
        if key not in old:
            events.append((ChildEventKind.ADDED, RemoteRecord(key=key, value=new[key]), prev_key))
        elif old[key] != new[key]:
            events.append((ChildEventKind.CHANGED, RemoteRecord(key=key, value=new[key]), prev_key))
        prev_key = key
    return events
