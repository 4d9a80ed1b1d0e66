"""Remote snapshots and child event kinds.

Every remote source converts whatever it receives (in-process writes, HTTP
responses, stream frames) into :class:`RemoteRecord` values tagged with a
:class:`ChildEventKind`. Only the reconcile layer turns them into items.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import Field

from pyreplica.models._base import ReplicaBaseModel


class ChildEventKind(StrEnum):
    ADDED = "child_added"
    REMOVED = "child_removed"
    CHANGED = "child_changed"


class RemoteRecord(ReplicaBaseModel):
    """A snapshot of one remote location."""

    key: str | None = Field(default=None, description="Last path segment, None for the root")
    value: Any = Field(default=None, description="JSON value stored at the location")

    @property
    def exists(self) -> bool:
        return self.value is not None

    def children(self) -> list[RemoteRecord]:
        """Child snapshots in key order (empty for scalar values)."""
        if not isinstance(self.value, dict):
            return []
        return [RemoteRecord(key=str(k), value=v) for k, v in sorted(self.value.items())]


#: ``callback(record, prev_key)`` invoked for each child event.
ChildCallback = Callable[[RemoteRecord, str | None], None]
