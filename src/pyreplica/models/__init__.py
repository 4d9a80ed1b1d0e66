"""Typed models for pyreplica.

Remote snapshots, namespaced actions and per-namespace replica state are
pydantic models so that every value crossing a layer boundary is validated
and immutable.
"""

from pyreplica.models.actions import (
    ActionKind,
    ActionMeta,
    ActionTypes,
    NamespaceAction,
    make_action_types,
)
from pyreplica.models.record import ChildCallback, ChildEventKind, RemoteRecord
from pyreplica.models.state import LocalItem, ReplicaState

__all__ = [
    "ActionKind",
    "ActionMeta",
    "ActionTypes",
    "ChildCallback",
    "ChildEventKind",
    "LocalItem",
    "NamespaceAction",
    "RemoteRecord",
    "ReplicaState",
    "make_action_types",
]
