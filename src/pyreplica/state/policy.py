"""Default projection and ordering policy.

This module contains *no* store or dispatch logic. It decides what a local
item looks like and in which order items are kept.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable
from typing import Any

from pyreplica._constants import DEFAULT_ORDER_FIELD, KEY_FIELD
from pyreplica.models.record import RemoteRecord
from pyreplica.models.state import LocalItem, ReplicaState

#: ``project(record, state) -> item``
Projection = Callable[[RemoteRecord, ReplicaState], LocalItem]
#: ``less(a, b) -> bool``, a strict weak ordering.
Ordering = Callable[[LocalItem, LocalItem], bool]


def default_to_item(record: RemoteRecord, _state: ReplicaState) -> LocalItem:
    """Attach the record key as ``_key`` and copy the record's fields.

    Scalar values are kept under ``"value"``.
    """
    if isinstance(record.value, dict):
        return {KEY_FIELD: record.key, **record.value}
    return {KEY_FIELD: record.key, "value": record.value}


def order_by(field: str) -> Ordering:
    """Ascending ordering on *field*; items missing it sort first.

    Values that cannot be compared with each other (``1`` vs ``"a"``) are
    ordered by type name first, so numbers sort before strings.
    """

    def _less(a: LocalItem, b: LocalItem) -> bool:
        left = a.get(field)
        right = b.get(field)
        if left is None:
            return right is not None
        if right is None:
            return False
        try:
            return bool(left < right)
        except TypeError:
            return _fallback_key(left) < _fallback_key(right)

    return _less


def _fallback_key(value: Any) -> tuple[str, str]:
    return type(value).__name__, str(value)


default_less: Ordering = order_by(DEFAULT_ORDER_FIELD)


def _key_of(item: LocalItem) -> str:
    key = item.get(KEY_FIELD)
    return "" if key is None else str(key)


def sort_items(items: Iterable[LocalItem], less: Ordering = default_less) -> list[LocalItem]:
    """Return a new list sorted by *less*, ties broken by ``_key``.

    The tie-break makes the order total, so the result depends only on the
    set of items and never on the order in which they arrived.
    """

    def _compare(a: LocalItem, b: LocalItem) -> int:
        if less(a, b):
            return -1
        if less(b, a):
            return 1
        ka, kb = _key_of(a), _key_of(b)
        return (ka > kb) - (ka < kb)

    return sorted(items, key=functools.cmp_to_key(_compare))


def is_sorted(items: list[LocalItem], less: Ordering = default_less) -> bool:
    return all(not less(items[i + 1], items[i]) for i in range(len(items) - 1))


def project_all(record: RemoteRecord, state: ReplicaState, to_item: Projection) -> list[LocalItem]:
    """Project every child of a collection snapshot."""
    return [to_item(child, state) for child in record.children()]
