"""Shared, namespace-partitioned store.

This is the only component allowed to replace replica state. Modules never
write to it directly; they dispatch actions and each registered reducer
computes its own namespace's next slice.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, Protocol

from pyreplica.exceptions import ReplicaConfigError
from pyreplica.models.actions import NamespaceAction, type_prefix
from pyreplica.models.state import ReplicaState
from pyreplica.state.reducer import Reducer

_logger = logging.getLogger(__name__)

StoreListener = Callable[[NamespaceAction | Mapping[str, Any]], None]


class SharedStore(Protocol):
    """Structural store interface consumed by :class:`~pyreplica.module.ReplicaModule`.

    Any reducer-based container exposing these two methods can be injected.
    """

    def dispatch(self, action: NamespaceAction) -> Any: ...

    def get_state(self) -> Mapping[str, ReplicaState]: ...


class ReplicaStore:
    """In-memory reducer store holding one :class:`ReplicaState` per namespace.

    ``dispatch`` runs every registered reducer under a re-entrant lock, so
    the store has a single writer even if callers dispatch from several
    threads.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._reducers: dict[str, Reducer] = {}
        self._prefixes: dict[str, str] = {}
        self._slices: dict[str, ReplicaState] = {}
        self._listeners: list[StoreListener] = []

    def register(self, namespace: str, reducer: Reducer) -> None:
        """Attach *reducer* as the owner of *namespace* and seed its slice.

        Registering the same namespace again swaps the reducer and keeps the
        current slice. A namespace whose action prefix collides with another
        namespace's is rejected.
        """
        prefix = type_prefix(namespace)
        with self._lock:
            owner = self._prefixes.get(prefix)
            if owner is not None and owner != namespace:
                raise ReplicaConfigError(
                    f"Namespace {namespace!r} collides with {owner!r} (action prefix {prefix!r})"
                )
            self._prefixes[prefix] = namespace
            self._reducers[namespace] = reducer
            if namespace not in self._slices:
                self._slices[namespace] = reducer(None, {"type": None, "meta": None})
        _logger.debug("Registered namespace=%s prefix=%s", namespace, prefix)

    def unregister(self, namespace: str) -> None:
        with self._lock:
            self._reducers.pop(namespace, None)
            self._slices.pop(namespace, None)
            for prefix, owner in list(self._prefixes.items()):
                if owner == namespace:
                    self._prefixes.pop(prefix, None)

    @property
    def namespaces(self) -> list[str]:
        return sorted(self._reducers)

    def dispatch(self, action: NamespaceAction | Mapping[str, Any]) -> NamespaceAction | Mapping[str, Any]:
        """Fold *action* into every slice, then notify listeners."""
        with self._lock:
            for namespace, reducer in self._reducers.items():
                current = self._slices.get(namespace)
                updated = reducer(current, action)
                if updated is not current:
                    self._slices[namespace] = updated
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(action)
            except Exception:
                _logger.warning("Store listener failed", exc_info=True)
        return action

    def get_state(self) -> Mapping[str, ReplicaState]:
        """Read-only snapshot of all slices."""
        with self._lock:
            return MappingProxyType(dict(self._slices))

    def get_slice(self, namespace: str) -> ReplicaState | None:
        with self._lock:
            return self._slices.get(namespace)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Call *listener* after every dispatch; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
