"""Server-sent event framing and stream tree updates."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import Any

from pyreplica.exceptions import ReplicaTransportError
from pyreplica.remote.base import as_children, split_path


@dataclass(frozen=True)
class SseEvent:
    """One dispatched server-sent event."""

    event: str
    data: str

    def json(self) -> Any:
        if not self.data or self.data == "null":
            return None
        try:
            return json.loads(self.data)
        except json.JSONDecodeError as exc:
            raise ReplicaTransportError(f"Invalid JSON in {self.event!r} event: {self.data[:200]}") from exc


class SseParser:
    """Incremental line parser; a blank line dispatches the pending event."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []

    def feed(self, line: str) -> SseEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
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

    def _dispatch(self) -> SseEvent | None:
        if not self._event and not self._data:
            return None
        event = SseEvent(event=self._event or "message", data="\n".join(self._data))
        self._event = ""
        self._data = []
        return event


def _set_in(value: Any, segments: list[str], new: Any) -> Any:
    """Return a copy of *value* with *new* written at *segments* (``None`` deletes)."""
    if not segments:
        return copy.deepcopy(new)
    node = dict(value) if isinstance(value, dict) else {}
    head, rest = segments[0], segments[1:]
    child = _set_in(node.get(head), rest, new)
    if child is None or child == {}:
        node.pop(head, None)
    else:
        node[head] = child
    return node


def apply_put(children: dict[str, Any], path: str, data: Any) -> dict[str, Any]:
    """Children after a ``put`` of *data* at stream-relative *path*."""
    return as_children(_set_in(children, split_path(path), data))


def apply_patch(children: dict[str, Any], path: str, data: Any) -> dict[str, Any]:
    """Children after a ``patch`` merging *data* at stream-relative *path*."""
    if not isinstance(data, dict):
        return dict(children)
    result: Any = children
    base = split_path(path)
    for key, value in data.items():
        result = _set_in(result, base + split_path(str(key)), value)
    return as_children(result)
