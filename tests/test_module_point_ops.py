from __future__ import annotations

import logging
from typing import Any

import pytest

from pyreplica.exceptions import ReplicaConfigError, ReplicaRemoteError
from pyreplica.models.actions import NamespaceAction
from pyreplica.models.record import RemoteRecord
from pyreplica.models.state import ReplicaState
from pyreplica.module import ReplicaModule
from pyreplica.remote.memory import InMemoryRemote
from pyreplica.state.store import ReplicaStore


def _recording_store() -> tuple[ReplicaStore, list[str]]:
    store = ReplicaStore()
    types: list[str] = []

    def _listener(action: Any) -> None:
        types.append(action.type if isinstance(action, NamespaceAction) else action["type"])

    store.subscribe(_listener)
    return store, types


@pytest.mark.asyncio
async def test_set_at_writes_and_completes_with_projected_item() -> None:
    remote = InMemoryRemote()
    store, types = _recording_store()
    module = ReplicaModule("x", remote=remote, store=store)
    seen: list[Any] = []

    result = await module.set_at("y", {"v": 1}, seen.append)

    assert result == {"v": 1}
    assert seen == [{"_key": "y", "v": 1}]
    assert remote.snapshot() == {"x": {"y": {"v": 1}}}
    assert types == ["X_SET"]


@pytest.mark.asyncio
async def test_set_at_failure_dispatches_and_propagates_without_completion() -> None:
    remote = InMemoryRemote()
    store, types = _recording_store()
    module = ReplicaModule("x", remote=remote, store=store)
    seen: list[Any] = []
    remote.fail_next(ReplicaRemoteError("boom", path="x/y"))

    with pytest.raises(ReplicaRemoteError, match="boom"):
        await module.set_at("y", {"v": 1}, seen.append)

    assert seen == []
    assert types == ["X_SET"]
    assert remote.snapshot() == {}
    # The replica slice is untouched by the failed write.
    assert module.state == ReplicaState(items=[], listening=False)


@pytest.mark.asyncio
async def test_update_at_merges_fields() -> None:
    remote = InMemoryRemote({"messages": {"m1": {"text": "hi", "timestamp": 1}}})
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    seen: list[Any] = []

    result = await module.update_at("m1", {"text": "edited"}, seen.append)

    assert result == {"text": "edited"}
    assert remote.snapshot() == {"messages": {"m1": {"text": "edited", "timestamp": 1}}}
    assert seen == [{"_key": "m1", "text": "edited"}]
    assert types == ["MESSAGES_UPDATE"]


@pytest.mark.asyncio
async def test_remove_at_dispatches_remove_and_completes_with_empty_item() -> None:
    remote = InMemoryRemote({"messages": {"m1": {"timestamp": 1}, "m2": {"timestamp": 2}}})
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    seen: list[Any] = []

    assert await module.remove_at("m1", seen.append) is None

    assert remote.snapshot() == {"messages": {"m2": {"timestamp": 2}}}
    assert seen == [{"_key": "m1", "value": None}]
    assert types == ["MESSAGES_REMOVE"]


@pytest.mark.asyncio
async def test_writes_while_listening_reconcile_the_replica() -> None:
    remote = InMemoryRemote()
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    await module.listen()

    await module.set_at("m1", {"text": "hi", "timestamp": 1})
    await module.remove_at("m1")

    # Local writes are reported by the source before the point action is dispatched.
    assert types == [
        "MESSAGES_LISTEN",
        "MESSAGES_ADDED",
        "MESSAGES_SET",
        "MESSAGES_REMOVED",
        "MESSAGES_REMOVE",
    ]
    assert module.state.items == []


@pytest.mark.asyncio
async def test_get_at_returns_item_and_dispatches_get() -> None:
    remote = InMemoryRemote({"messages": {"m1": {"text": "hi", "timestamp": 1}}})
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    seen: list[Any] = []

    item = await module.get_at("m1", seen.append)

    assert item == {"_key": "m1", "text": "hi", "timestamp": 1}
    assert seen == [item]
    assert types == ["MESSAGES_GET"]


@pytest.mark.asyncio
async def test_get_at_missing_location_projects_null_value() -> None:
    module = ReplicaModule("messages", remote=InMemoryRemote(), store=ReplicaStore())

    assert await module.get_at("nope") == {"_key": "nope", "value": None}


@pytest.mark.asyncio
async def test_get_at_failure_still_dispatches_get() -> None:
    remote = InMemoryRemote()
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    remote.fail_next(ReplicaRemoteError("read failed"))

    with pytest.raises(ReplicaRemoteError):
        await module.get_at("m1")
    assert types == ["MESSAGES_GET"]


@pytest.mark.asyncio
async def test_point_operations_work_without_a_store() -> None:
    remote = InMemoryRemote()
    module = ReplicaModule("messages", remote=remote)
    seen: list[Any] = []

    await module.set_at("m1", {"timestamp": 1}, seen.append)

    assert seen == [{"_key": "m1", "timestamp": 1}]
    assert module.state == ReplicaState(items=[], listening=False)


@pytest.mark.asyncio
async def test_point_operation_without_remote_is_a_configuration_error() -> None:
    module = ReplicaModule("messages", store=ReplicaStore())

    with pytest.raises(ReplicaConfigError):
        await module.set_at("m1", {"timestamp": 1})


@pytest.mark.asyncio
async def test_load_replaces_items_with_sorted_snapshot() -> None:
    remote = InMemoryRemote(
        {
            "messages": {
                "m1": {"timestamp": 3},
                "m2": {"timestamp": 1},
                "m3": {"timestamp": 2},
            }
        }
    )
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    seen: list[Any] = []

    state = await module.load(seen.append)

    assert [i["_key"] for i in state.items] == ["m2", "m3", "m1"]
    assert state.listening is False
    assert types == ["MESSAGES_VALUE"]
    assert seen == [{"items": state.items}]


@pytest.mark.asyncio
async def test_load_failure_dispatches_value_and_propagates() -> None:
    remote = InMemoryRemote({"messages": {"m1": {"timestamp": 1}}})
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store)
    remote.fail_next(ReplicaRemoteError("offline"))

    with pytest.raises(ReplicaRemoteError):
        await module.load()
    assert types == ["MESSAGES_VALUE"]
    assert module.state.items == []


def test_patch_state_merges_caller_fields() -> None:
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=InMemoryRemote(), store=store)

    result = module.patch_state({"title": "Inbox"})

    assert result == {"title": "Inbox"}
    assert types == ["MESSAGES_UPDATED"]
    assert module.state.model_dump() == {"items": [], "listening": False, "title": "Inbox"}


def test_patch_state_rejects_managed_fields() -> None:
    module = ReplicaModule("messages", store=ReplicaStore())

    with pytest.raises(ValueError, match="items"):
        module.patch_state({"items": []})
    with pytest.raises(ValueError, match="listening"):
        module.patch_state({"listening": True})


def test_patch_state_requires_store() -> None:
    module = ReplicaModule("messages")

    with pytest.raises(ReplicaConfigError, match="Please set the store"):
        module.patch_state({"title": "Inbox"})


def test_handle_update_without_store_returns_payload() -> None:
    module = ReplicaModule("messages")

    assert module._handle_update(module.types.set, {"a": 1}) == {"a": 1}  # noqa: SLF001
    assert module._handle_update(module.types.set) is None  # noqa: SLF001


def test_handle_update_returns_callback_result() -> None:
    module = ReplicaModule("messages", store=ReplicaStore())

    result = module._handle_update(module.types.set, {"a": 1}, lambda p: p["a"] + 1)  # noqa: SLF001

    assert result == 2


def test_set_store_none_keeps_current_store() -> None:
    store = ReplicaStore()
    module = ReplicaModule("messages", store=store)

    module.set_store(None)
    module.patch_state({"title": "kept"})

    assert store.get_state()["messages"].model_dump()["title"] == "kept"


def test_initial_state_seed_is_kept_with_reserved_fields_reset() -> None:
    store = ReplicaStore()
    module = ReplicaModule(
        "messages",
        store=store,
        initial_state={"title": "Inbox", "items": [{"_key": "stale"}], "listening": True},
    )

    assert module.initial_state.model_dump() == {"items": [], "listening": False, "title": "Inbox"}
    assert store.get_state()["messages"] == module.initial_state


def test_action_table_and_types() -> None:
    module = ReplicaModule("chat/rooms")

    assert set(module.actions) == {
        "listen",
        "unlisten",
        "load",
        "get_at",
        "set_at",
        "update_at",
        "remove_at",
        "patch_state",
    }
    assert module.types.listen == "CHAT_ROOMS_LISTEN"
    assert module.types.remove == "CHAT_ROOMS_REMOVE"
    assert module.types.removed == "CHAT_ROOMS_REMOVED"
    assert module.types.remove != module.types.removed


@pytest.mark.asyncio
async def test_custom_ref_builder_routes_every_path() -> None:
    remote = InMemoryRemote()
    module = ReplicaModule(
        "messages",
        remote=remote,
        store=ReplicaStore(),
        make_ref=lambda path: f"tenants/acme/{path}",
    )

    assert module.make_ref() == "tenants/acme/messages"
    assert module.make_ref("m1") == "tenants/acme/messages/m1"

    await module.listen()
    await module.set_at("m1", {"timestamp": 1})

    assert remote.subscribed_paths() == ["tenants/acme/messages"]
    assert [i["_key"] for i in module.state.items] == ["m1"]


@pytest.mark.asyncio
async def test_custom_projection_used_by_point_reads() -> None:
    def _to_item(record: RemoteRecord, _state: ReplicaState) -> dict[str, Any]:
        return {"_key": record.key, "body": record.value}

    remote = InMemoryRemote({"messages": {"m1": "hello"}})
    module = ReplicaModule("messages", remote=remote, to_item=_to_item)

    assert await module.get_at("m1") == {"_key": "m1", "body": "hello"}


@pytest.mark.asyncio
async def test_failing_projection_after_successful_write_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    def _to_item(_record: RemoteRecord, _state: ReplicaState) -> dict[str, Any]:
        raise ValueError("cannot project")

    remote = InMemoryRemote()
    store, types = _recording_store()
    module = ReplicaModule("messages", remote=remote, store=store, to_item=_to_item)
    seen: list[Any] = []

    with caplog.at_level(logging.WARNING, logger="pyreplica.module"):
        result = await module.set_at("m1", {"timestamp": 1}, seen.append)

    assert result == {"timestamp": 1}
    assert remote.snapshot() == {"messages": {"m1": {"timestamp": 1}}}
    assert types == ["MESSAGES_SET"]
    assert seen == []
    assert "Projection failed" in caplog.text
