"""Namespaced actions and their per-namespace type tables.

Each namespace gets a private, immutable set of action type strings
(``"<PREFIX>_<KIND>"``) generated once from a common template.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import Field

from pyreplica.exceptions import ReplicaConfigError
from pyreplica.models._base import ReplicaBaseModel

_NON_WORD = re.compile(r"[^0-9A-Za-z]+")


class ActionKind(StrEnum):
    LISTEN = "listen"
    UNLISTEN = "unlisten"
    REMOVE = "remove"
    UPDATE = "update"
    SET = "set"
    GET = "get"
    VALUE = "value"
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UPDATED = "updated"


def type_prefix(namespace: str) -> str:
    """Uppercase action-type prefix derived from a namespace identifier.

    >>> type_prefix("chat/rooms")
    'CHAT_ROOMS'
    """
    prefix = _NON_WORD.sub("_", namespace.strip()).strip("_").upper()
    if not prefix:
        raise ReplicaConfigError(f"Namespace {namespace!r} yields an empty action prefix")
    return prefix


class ActionTypes(ReplicaBaseModel):
    """The action type strings owned by one namespace."""

    prefix: str
    listen: str
    unlisten: str
    remove: str
    update: str
    set: str
    get: str
    value: str
    added: str
    removed: str
    changed: str
    updated: str

    def of(self, kind: ActionKind) -> str:
        return str(getattr(self, kind.value))

    def kind_of(self, action_type: str) -> ActionKind | None:
        """Reverse lookup; ``None`` when *action_type* is not ours."""
        for kind in ActionKind:
            if self.of(kind) == action_type:
                return kind
        return None

    def __contains__(self, action_type: object) -> bool:
        return isinstance(action_type, str) and self.kind_of(action_type) is not None


def make_action_types(namespace: str) -> ActionTypes:
    prefix = type_prefix(namespace)
    fields: dict[str, Any] = {kind.value: f"{prefix}_{kind.value.upper()}" for kind in ActionKind}
    return ActionTypes(prefix=prefix, **fields)


class ActionMeta(ReplicaBaseModel):
    module: str = Field(..., description="Namespace the action belongs to")


class NamespaceAction(ReplicaBaseModel):
    """Unit of state change sent to the shared store."""

    type: str
    payload: dict[str, Any] | None = None
    meta: ActionMeta
