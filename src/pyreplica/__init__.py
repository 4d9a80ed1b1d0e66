"""pyreplica - Ordered local replicas of remote collections, dispatched into a shared store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyreplica")
except PackageNotFoundError:
    __version__ = "0+local"
from pyreplica.config import ReplicaConfig
from pyreplica.exceptions import (
    ReplicaConfigError,
    ReplicaConsistencyError,
    ReplicaError,
    ReplicaRemoteError,
    ReplicaTransportError,
)
from pyreplica.models import (
    ActionKind,
    ActionMeta,
    ActionTypes,
    ChildEventKind,
    LocalItem,
    NamespaceAction,
    RemoteRecord,
    ReplicaState,
    make_action_types,
)
from pyreplica.module import ReplicaModule
from pyreplica.remote import InMemoryRemote, RemoteSource, RestRemote
from pyreplica.state.policy import default_less, default_to_item, order_by, sort_items
from pyreplica.state.reducer import build_reducer
from pyreplica.state.store import ReplicaStore, SharedStore

__all__ = [
    "__version__",
    "ActionKind",
    "ActionMeta",
    "ActionTypes",
    "ChildEventKind",
    "InMemoryRemote",
    "LocalItem",
    "NamespaceAction",
    "RemoteRecord",
    "RemoteSource",
    "ReplicaConfig",
    "ReplicaConfigError",
    "ReplicaConsistencyError",
    "ReplicaError",
    "ReplicaModule",
    "ReplicaRemoteError",
    "ReplicaState",
    "ReplicaStore",
    "ReplicaTransportError",
    "RestRemote",
    "SharedStore",
    "build_reducer",
    "default_less",
    "default_to_item",
    "make_action_types",
    "order_by",
    "sort_items",
]
