from __future__ import annotations

from typing import Any

import pytest

from pyreplica.exceptions import ReplicaRemoteError
from pyreplica.models.record import ChildEventKind, RemoteRecord
from pyreplica.remote.base import diff_children, join_path, last_segment, split_path
from pyreplica.remote.memory import InMemoryRemote


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, str | None, Any, str | None]] = []

    def for_kind(self, kind: ChildEventKind):
        def _callback(record: RemoteRecord, prev_key: str | None) -> None:
            self.events.append((kind.value, record.key, record.value, prev_key))

        return _callback


async def _subscribe_all(remote: InMemoryRemote, path: str, recorder: _Recorder) -> None:
    for kind in ChildEventKind:
        await remote.subscribe(path, kind, recorder.for_kind(kind))


def test_path_helpers() -> None:
    assert split_path("/a//b/") == ["a", "b"]
    assert split_path(None) == []
    assert join_path("a/", None, "/b", "") == "a/b"
    assert last_segment("a/b/c") == "c"
    assert last_segment("") is None


def test_diff_children_orders_removals_first() -> None:
    events = diff_children({"a": 1, "b": 2, "c": 3}, {"b": 2, "c": 4, "d": 5})

    assert [(k.value, r.key, p) for k, r, p in events] == [
        ("child_removed", "a", None),
        ("child_changed", "c", "b"),
        ("child_added", "d", "c"),
    ]


@pytest.mark.asyncio
async def test_added_subscription_replays_existing_children() -> None:
    remote = InMemoryRemote({"rooms": {"b": {"n": 2}, "a": {"n": 1}}})
    recorder = _Recorder()

    await remote.subscribe("rooms", ChildEventKind.ADDED, recorder.for_kind(ChildEventKind.ADDED))

    assert recorder.events == [
        ("child_added", "a", {"n": 1}, None),
        ("child_added", "b", {"n": 2}, "a"),
    ]


@pytest.mark.asyncio
async def test_writes_emit_child_events() -> None:
    remote = InMemoryRemote()
    recorder = _Recorder()
    await _subscribe_all(remote, "rooms", recorder)

    await remote.set("rooms/a", {"n": 1})
    await remote.set("rooms/a/n", 2)
    await remote.remove("rooms/a")

    assert recorder.events == [
        ("child_added", "a", {"n": 1}, None),
        ("child_changed", "a", {"n": 2}, None),
        ("child_removed", "a", {"n": 2}, None),
    ]
    assert remote.snapshot() == {}


@pytest.mark.asyncio
async def test_update_touches_only_named_children() -> None:
    remote = InMemoryRemote({"rooms": {"a": {"n": 1}, "b": {"n": 2}}})
    recorder = _Recorder()
    await remote.subscribe("rooms", ChildEventKind.CHANGED, recorder.for_kind(ChildEventKind.CHANGED))
    await remote.subscribe("rooms", ChildEventKind.REMOVED, recorder.for_kind(ChildEventKind.REMOVED))

    await remote.update("rooms", {"a": {"n": 10}, "b": None})

    assert remote.snapshot() == {"rooms": {"a": {"n": 10}}}
    assert recorder.events == [
        ("child_removed", "b", {"n": 2}, None),
        ("child_changed", "a", {"n": 10}, None),
    ]


@pytest.mark.asyncio
async def test_unsubscribe_stops_events() -> None:
    remote = InMemoryRemote()
    recorder = _Recorder()
    await _subscribe_all(remote, "rooms", recorder)

    await remote.unsubscribe("rooms")
    await remote.set("rooms/a", {"n": 1})

    assert recorder.events == []
    assert remote.subscribed_paths() == []


@pytest.mark.asyncio
async def test_fail_next_raises_once() -> None:
    remote = InMemoryRemote()
    remote.fail_next(ReplicaRemoteError("down"))

    with pytest.raises(ReplicaRemoteError):
        await remote.set("rooms/a", 1)
    await remote.set("rooms/a", 1)

    assert remote.snapshot() == {"rooms": {"a": 1}}
    assert remote.calls == {"set": 2}


@pytest.mark.asyncio
async def test_once_reads_copies() -> None:
    remote = InMemoryRemote({"rooms": {"a": {"n": 1}}})

    record = await remote.once("rooms/a")
    record.value["n"] = 99

    assert record.key == "a"
    assert remote.snapshot() == {"rooms": {"a": {"n": 1}}}
    missing = await remote.once("rooms/zzz")
    assert missing.exists is False


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_other_subscribers() -> None:
    remote = InMemoryRemote()
    recorder = _Recorder()

    def _broken(_record: RemoteRecord, _prev: str | None) -> None:
        raise RuntimeError("nope")

    await remote.subscribe("rooms", ChildEventKind.ADDED, _broken)
    await remote.subscribe("rooms", ChildEventKind.ADDED, recorder.for_kind(ChildEventKind.ADDED))
    await remote.set("rooms/a", 1)

    assert recorder.events == [("child_added", "a", 1, None)]


def test_remote_record_children_sorted() -> None:
    record = RemoteRecord(key="rooms", value={"b": 2, "a": 1})

    assert [(c.key, c.value) for c in record.children()] == [("a", 1), ("b", 2)]
    assert RemoteRecord(key="x", value=3).children() == []
