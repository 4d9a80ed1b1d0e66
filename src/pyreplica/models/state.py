"""Per-namespace replica state."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyreplica._constants import KEY_FIELD

#: A projected remote record: ``_key`` plus the record's payload fields.
LocalItem = dict[str, Any]


class ReplicaState(BaseModel):
    """One namespace's slice of the shared store.

    Extra fields are allowed so callers can seed their own keys through an
    initial state or the UPDATED action.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    items: list[LocalItem] = Field(default_factory=list)
    listening: bool = False

    def keys(self) -> list[str | None]:
        return [item.get(KEY_FIELD) for item in self.items]

    def merged(self, patch: dict[str, Any] | None) -> ReplicaState:
        """Return a new state with *patch* shallow-merged over this one."""
        if not patch:
            return self
        return type(self).model_validate({**self.model_dump(), **patch})
