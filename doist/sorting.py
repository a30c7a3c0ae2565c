"""Ordering of task siblings.

The default comparator tries to match the order the Todoist UI shows:
exact due times first, then priority, manual order and finally id, which
makes the order total and reproducible.
"""

from __future__ import annotations

from dataclasses import replace
from functools import cmp_to_key
from typing import Callable, Sequence

from doist.models import SortKey, Task
from doist.tree import Forest, Node, rebuild

Comparator = Callable[[Task, Task], int]


def _cmp(left, right) -> int:
    return (left > right) - (left < right)


def compare_default(a: Task, b: Task) -> int:
    # An exact due time outranks everything else, priority included.
    a_exact = a.due.exact_datetime() if a.due else None
    b_exact = b.due.exact_datetime() if b.due else None
    if a_exact is not None and b_exact is not None:
        result = _cmp(a_exact, b_exact)
        if result:
            return result
    elif a_exact is not None:
        return -1
    elif b_exact is not None:
        return 1

    # Most urgent first.
    result = _cmp(b.priority.value, a.priority.value)
    if result:
        return result
    result = _cmp(a.order, b.order)
    if result:
        return result
    return _cmp(a.id, b.id)


def compare_created_at(a: Task, b: Task) -> int:
    """Oldest first. Tasks without a creation time go last."""
    if a.created_at is not None and b.created_at is not None:
        result = _cmp(a.created_at, b.created_at)
        if result:
            return result
    elif a.created_at is not None:
        return -1
    elif b.created_at is not None:
        return 1
    return _cmp(a.id, b.id)


def compare_duration(a: Task, b: Task) -> int:
    """Shortest first. Tasks with a duration go before tasks without one."""
    if a.duration is not None and b.duration is not None:
        result = _cmp(a.duration.minutes(), b.duration.minutes())
        if result:
            return result
    elif a.duration is not None:
        return -1
    elif b.duration is not None:
        return 1
    return compare_default(a, b)


COMPARATORS: dict[SortKey, Comparator] = {
    SortKey.DEFAULT: compare_default,
    SortKey.CREATED_AT: compare_created_at,
    SortKey.DURATION: compare_duration,
}


def sort_nodes(nodes: Sequence[Node], key: SortKey = SortKey.DEFAULT) -> list[Node]:
    """Sort one list of nodes by their tasks. Children are left untouched."""
    compare = COMPARATORS[key]
    return sorted(nodes, key=cmp_to_key(lambda a, b: compare(a.record, b.record)))


def sort_forest(forest: Sequence[Node], key: SortKey = SortKey.DEFAULT) -> Forest:
    """Sort every sibling list of the forest independently, roots included."""
    def build(node: Node, children: list[Node]) -> Node:
        return replace(node, children=tuple(sort_nodes(children, key)))

    return sort_nodes(rebuild(forest, build), key)
