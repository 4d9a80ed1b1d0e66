"""Replica reconciliation.

Pure functions that fold one incremental child event into the sorted item
list. Inputs are never mutated; every call returns a new list.

Identity is always ``_key``, the field minted by the projection. Functions
raise :class:`~pyreplica.exceptions.ReplicaConsistencyError` when an event
references a key the replica does not hold; callers on the live event path
decide whether to log and skip.
"""

from __future__ import annotations

from pyreplica._constants import KEY_FIELD
from pyreplica.exceptions import ReplicaConsistencyError
from pyreplica.models.record import ChildEventKind
from pyreplica.models.state import LocalItem
from pyreplica.state.policy import Ordering, default_less, sort_items


def find_index(items: list[LocalItem], key: str | None) -> int:
    """Index of the item whose ``_key`` equals *key*, or ``-1``."""
    for idx, item in enumerate(items):
        if item.get(KEY_FIELD) == key:
            return idx
    return -1


def apply_added(
    items: list[LocalItem],
    item: LocalItem,
    less: Ordering = default_less,
) -> list[LocalItem]:
    """Insert *item*, or overwrite the entry with the same key (upsert)."""
    result = list(items)
    idx = find_index(result, item.get(KEY_FIELD))
    if idx < 0:
        result.append(item)
    else:
        result[idx] = item
    return sort_items(result, less)


def apply_removed(items: list[LocalItem], key: str | None) -> list[LocalItem]:
    """Drop the item with *key*, keeping the rest in their current order."""
    idx = find_index(items, key)
    if idx < 0:
        raise ReplicaConsistencyError(f"Removed event for unknown key {key!r}", key=key)
    return items[:idx] + items[idx + 1 :]


def apply_changed(
    items: list[LocalItem],
    item: LocalItem,
    less: Ordering = default_less,
) -> list[LocalItem]:
    """Replace the entry holding ``item["_key"]`` and restore ordering."""
    key = item.get(KEY_FIELD)
    idx = find_index(items, key)
    if idx < 0:
        raise ReplicaConsistencyError(f"Changed event for unknown key {key!r}", key=key)
    result = list(items)
    result[idx] = item
    return sort_items(result, less)


def reconcile(
    items: list[LocalItem],
    kind: ChildEventKind,
    item: LocalItem,
    less: Ordering = default_less,
) -> list[LocalItem]:
    """Apply one event of *kind*; *item* is the projected record."""
    if kind == ChildEventKind.ADDED:
        return apply_added(items, item, less)
    if kind == ChildEventKind.REMOVED:
        return apply_removed(items, item.get(KEY_FIELD))
    if kind == ChildEventKind.CHANGED:
        return apply_changed(items, item, less)
    raise ValueError(f"Unsupported child event kind: {kind!r}")
