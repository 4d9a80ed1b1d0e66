"""Namespace-scoped reducer.

A reducer folds dispatched actions into one namespace's slice of the shared
store. It is pure: the same ``(state, action)`` always yields an equal result
and the input state is never mutated.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pyreplica.models.actions import ActionKind, ActionTypes, NamespaceAction
from pyreplica.models.state import ReplicaState

Reducer = Callable[[ReplicaState | None, NamespaceAction | Mapping[str, Any]], ReplicaState]


def _action_fields(action: NamespaceAction | Mapping[str, Any]) -> tuple[Any, Any, Any]:
    """Return ``(type, payload, module)`` from a model or a plain mapping."""
    if isinstance(action, NamespaceAction):
        return action.type, action.payload, action.meta.module
    meta = action.get("meta")
    module = meta.get("module") if isinstance(meta, Mapping) else None
    return action.get("type"), action.get("payload"), module


def build_initial_state(seed: Mapping[str, Any] | ReplicaState | None = None) -> ReplicaState:
    """Initial slice: caller seed fields, always with ``items=[]`` and ``listening=False``."""
    if isinstance(seed, ReplicaState):
        base = seed.model_dump()
    else:
        base = dict(seed or {})
    base.update(items=[], listening=False)
    return ReplicaState.model_validate(base)


def build_reducer(
    namespace: str,
    types: ActionTypes,
    initial: ReplicaState | None = None,
) -> Reducer:
    """Build the reducer owning *namespace*."""
    default_state = initial if initial is not None else build_initial_state()

    def reducer(state: ReplicaState | None, action: NamespaceAction | Mapping[str, Any]) -> ReplicaState:
        current = default_state if state is None else state
        action_type, payload, module = _action_fields(action)
        if module != namespace:
            return current

        kind = types.kind_of(action_type) if isinstance(action_type, str) else None
        if kind is None:
            return current
        if kind == ActionKind.LISTEN:
            return current.merged({"listening": True})
        if kind == ActionKind.UNLISTEN:
            return current.merged({"listening": False})
        if isinstance(payload, Mapping):
            return current.merged(dict(payload))
        return current

    reducer.__name__ = f"reduce_{types.prefix.lower()}"
    return reducer
