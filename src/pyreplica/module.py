"""High-level replica module: listener registration, reconciliation and dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from pyreplica.config import ReplicaConfig
from pyreplica.exceptions import ReplicaConfigError, ReplicaConsistencyError
from pyreplica.models.actions import ActionMeta, ActionTypes, NamespaceAction, make_action_types
from pyreplica.models.record import ChildEventKind, RemoteRecord
from pyreplica.models.state import LocalItem, ReplicaState
from pyreplica.remote.base import RemoteSource, join_path, last_segment
from pyreplica.state.policy import Ordering, Projection, default_to_item, order_by, project_all, sort_items
from pyreplica.state.reconcile import apply_added, apply_changed, apply_removed
from pyreplica.state.reducer import Reducer, build_initial_state, build_reducer
from pyreplica.state.store import ReplicaStore, SharedStore

_logger = logging.getLogger(__name__)

Completion = Callable[[Any], Any]
ChangeHook = Callable[[NamespaceAction, ReplicaState], None]

_RESERVED_FIELDS = frozenset({"items", "listening"})


def _identity(ref: str) -> str:
    return ref


class ReplicaModule:
    """Ordered local replica of one remote collection, scoped to a namespace.

    Usage::

        store = ReplicaStore()
        module = ReplicaModule("messages", remote=InMemoryRemote(), store=store)
        await module.listen()
        await module.set_at("m1", {"text": "hi", "timestamp": 1})
        module.state.items  # [{"_key": "m1", "text": "hi", "timestamp": 1}]
    """

    def __init__(
        self,
        namespace: str,
        *,
        remote: RemoteSource | None = None,
        store: SharedStore | None = None,
        config: ReplicaConfig | None = None,
        to_item: Projection | None = None,
        less: Ordering | None = None,
        make_ref: Callable[[str], str] | None = None,
        initial_state: Mapping[str, Any] | ReplicaState | None = None,
        on_change: ChangeHook | None = None,
    ) -> None:
        if not isinstance(namespace, str) or not namespace.strip():
            raise ReplicaConfigError("No namespace passed")

        self._namespace = namespace
        self._remote = remote
        self._config = config or ReplicaConfig()
        self._types = make_action_types(namespace)
        self._to_item: Projection = to_item or default_to_item
        self._less: Ordering = less or order_by(self._config.order_field)
        self._make_ref = make_ref or _identity
        self._on_change = on_change
        self._initial_state = build_initial_state(initial_state)
        self._reducer = build_reducer(namespace, self._types, self._initial_state)
        self._store: SharedStore | None = None
        self._listening = False
        self._listen_callback: Completion | None = None

        self.set_store(store)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def types(self) -> ActionTypes:
        return self._types

    @property
    def reducer(self) -> Reducer:
        return self._reducer

    @property
    def initial_state(self) -> ReplicaState:
        return self._initial_state

    @property
    def listening(self) -> bool:
        """Whether child subscriptions are currently registered."""
        return self._listening

    @property
    def state(self) -> ReplicaState:
        """This namespace's current slice of the store."""
        return self._get_state()

    @property
    def actions(self) -> Mapping[str, Callable[..., Any]]:
        return MappingProxyType(
            {
                "listen": self.listen,
                "unlisten": self.unlisten,
                "load": self.load,
                "get_at": self.get_at,
                "set_at": self.set_at,
                "update_at": self.update_at,
                "remove_at": self.remove_at,
                "patch_state": self.patch_state,
            }
        )

    def set_store(self, store: SharedStore | None) -> None:
        """Attach *store*; ``None`` keeps the current one."""
        if store is None:
            return
        self._store = store
        if isinstance(store, ReplicaStore):
            store.register(self._namespace, self._reducer)

    def make_ref(self, path: str | None = None) -> str:
        """Remote path for *path* under this namespace."""
        return self._make_ref(join_path(self._namespace, path))

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    async def listen(self, callback: Completion | None = None) -> ReplicaState:
        """Subscribe to child events and mark the namespace as listening.

        *callback* receives the dispatched payload after every reconciled
        event. Returns the state right after the LISTEN action.
        """
        self._require_store()
        remote = self._require_remote()
        if self._listening:
            return self._get_state()

        ref = self.make_ref()
        self._listen_callback = callback
        # Set before subscribing: sources may replay existing children inline.
        self._listening = True
        try:
            await remote.subscribe(ref, ChildEventKind.ADDED, self._on_child_added)
            await remote.subscribe(ref, ChildEventKind.REMOVED, self._on_child_removed)
            await remote.subscribe(ref, ChildEventKind.CHANGED, self._on_child_changed)
        except Exception:
            self._listening = False
            self._listen_callback = None
            try:
                await remote.unsubscribe(ref)
            except Exception:
                _logger.debug("Unsubscribe after failed listen failed ref=%s", ref, exc_info=True)
            raise

        _logger.debug("Listening namespace=%s ref=%s", self._namespace, ref)
        self._handle_update(self._types.listen)
        return self._get_state()

    async def unlisten(self) -> ReplicaState:
        """Drop child subscriptions; later events are ignored."""
        remote = self._require_remote()
        self._listening = False
        self._listen_callback = None
        await remote.unsubscribe(self.make_ref())
        _logger.debug("Stopped listening namespace=%s", self._namespace)
        self._handle_update(self._types.unlisten)
        return self._get_state()

    # ------------------------------------------------------------------
    # Child event handlers
    # ------------------------------------------------------------------

    def _project(self, record: RemoteRecord, state: ReplicaState) -> LocalItem | None:
        try:
            return self._to_item(record, state)
        except Exception:
            _logger.warning(
                "Projection failed namespace=%s key=%s",
                self._namespace,
                record.key,
                exc_info=True,
            )
            return None

    def _on_child_added(self, record: RemoteRecord, _prev_key: str | None) -> None:
        if not self._listening:
            return
        state = self._get_state()
        item = self._project(record, state)
        if item is None:
            return
        items = apply_added(state.items, item, self._less)
        self._handle_update(self._types.added, {"items": items}, self._listen_callback)

    def _on_child_removed(self, record: RemoteRecord, _prev_key: str | None) -> None:
        if not self._listening:
            return
        state = self._get_state()
        try:
            items = apply_removed(state.items, record.key)
        except ReplicaConsistencyError as exc:
            _logger.warning("Skipping removal namespace=%s: %s", self._namespace, exc)
            return
        self._handle_update(self._types.removed, {"items": items}, self._listen_callback)

    def _on_child_changed(self, record: RemoteRecord, _prev_key: str | None) -> None:
        if not self._listening:
            return
        state = self._get_state()
        item = self._project(record, state)
        if item is None:
            return
        try:
            items = apply_changed(state.items, item, self._less)
        except ReplicaConsistencyError as exc:
            _logger.warning("Skipping change namespace=%s: %s", self._namespace, exc)
            return
        self._handle_update(self._types.changed, {"items": items}, self._listen_callback)

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    async def load(self, callback: Completion | None = None) -> ReplicaState:
        """Read the whole collection once and replace the replica's items."""
        remote = self._require_remote()
        try:
            record = await remote.once(self.make_ref())
        except Exception:
            self._handle_update(self._types.value)
            raise
        state = self._get_state()
        items = sort_items(project_all(record, state, self._to_item), self._less)
        self._handle_update(self._types.value, {"items": items}, callback)
        return self._get_state()

    async def get_at(self, path: str, callback: Completion | None = None) -> LocalItem:
        """Read one location and return it projected as an item."""
        remote = self._require_remote()
        try:
            record = await remote.once(self.make_ref(path))
        finally:
            self._handle_update(self._types.get)
        item = self._to_item(record, self._get_state())
        self._run_callback(callback, item)
        return item

    async def set_at(self, path: str, value: Any, callback: Completion | None = None) -> Any:
        """Overwrite one location. Returns *value*."""
        remote = self._require_remote()
        ref = self.make_ref(path)
        try:
            await remote.set(ref, value)
        finally:
            self._handle_update(self._types.set)
        self._complete_write(ref, value, callback)
        return value

    async def update_at(self, path: str, value: dict[str, Any], callback: Completion | None = None) -> dict[str, Any]:
        """Merge *value*'s keys into one location. Returns *value*."""
        remote = self._require_remote()
        ref = self.make_ref(path)
        try:
            await remote.update(ref, value)
        finally:
            self._handle_update(self._types.update)
        self._complete_write(ref, value, callback)
        return value

    async def remove_at(self, path: str, callback: Completion | None = None) -> None:
        """Delete one location."""
        remote = self._require_remote()
        ref = self.make_ref(path)
        try:
            await remote.remove(ref)
        finally:
            self._handle_update(self._types.remove)
        self._complete_write(ref, None, callback)

    def patch_state(self, payload: Mapping[str, Any], callback: Completion | None = None) -> Any:
        """Merge caller-owned fields into this namespace's slice."""
        reserved = _RESERVED_FIELDS.intersection(payload)
        if reserved:
            raise ValueError(f"Fields {sorted(reserved)} are managed by the replica")
        self._require_store()
        return self._handle_update(self._types.updated, dict(payload), callback)

    def _complete_write(self, ref: str, value: Any, callback: Completion | None) -> None:
        if callback is None:
            return
        record = RemoteRecord(key=last_segment(ref), value=value)
        item = self._project(record, self._get_state())
        if item is not None:
            self._run_callback(callback, item)

    # ------------------------------------------------------------------
    # Dispatch helpers
    # ------------------------------------------------------------------

    def _handle_update(
        self,
        action_type: str,
        payload: dict[str, Any] | None = None,
        callback: Completion | None = None,
    ) -> Any:
        """Dispatch a namespaced action (when a store is set), then run *callback*."""
        store = self._store
        if store is not None:
            action = NamespaceAction(
                type=action_type,
                payload=payload,
                meta=ActionMeta(module=self._namespace),
            )
            _logger.debug("Dispatch %s namespace=%s", action_type, self._namespace)
            store.dispatch(action)
            if self._on_change is not None:
                try:
                    self._on_change(action, self._get_state())
                except Exception:
                    _logger.warning("on_change hook failed for %s", action_type, exc_info=True)

        if callback is None:
            return payload
        return self._run_callback(callback, payload)

    def _run_callback(self, callback: Completion | None, value: Any) -> Any:
        if callback is None:
            return value
        try:
            return callback(value)
        except Exception:
            _logger.warning("Callback failed namespace=%s", self._namespace, exc_info=True)
            return value

    def _require_store(self) -> SharedStore:
        if self._store is None:
            raise ReplicaConfigError("Please set the store")
        return self._store

    def _require_remote(self) -> RemoteSource:
        if self._remote is None:
            raise ReplicaConfigError(f"No remote source configured for namespace {self._namespace!r}")
        return self._remote

    def _get_state(self) -> ReplicaState:
        store = self._store
        if store is None:
            return self._initial_state
        current = store.get_state().get(self._namespace)
        if current is None:
            return self._initial_state
        if isinstance(current, ReplicaState):
            return current
        return ReplicaState.model_validate(current)