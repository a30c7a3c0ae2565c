"""Filtering of assembled task forests.

These functions operate on forests built by doist.tree. They are pure
functions (no I/O) for easy testing.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Collection, Optional, Sequence

from doist.models import FilterMode, Task
from doist.tree import Forest, Node, rebuild

logger = logging.getLogger(__name__)

Predicate = Callable[[Task], bool]


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def in_project(project_id: str) -> Predicate:
    return lambda task: task.project_id == project_id


def in_section(section_id: str) -> Predicate:
    return lambda task: task.section_id == section_id


def has_any_label(names: Collection[str]) -> Predicate:
    """Match tasks carrying at least one of the given label names."""
    wanted = set(names)
    return lambda task: any(label in wanted for label in task.labels)


def id_in(ids: Collection[str]) -> Predicate:
    wanted = set(ids)
    return lambda task: task.id in wanted


def all_of(*predicates: Optional[Predicate]) -> Predicate:
    """Combine predicates; None entries are skipped. No predicates match everything."""
    active = [p for p in predicates if p is not None]
    return lambda task: all(p(task) for p in active)


# ---------------------------------------------------------------------------
# Forest filtering
# ---------------------------------------------------------------------------

def filter_forest(
    forest: Sequence[Node],
    predicate: Predicate,
    mode: FilterMode = FilterMode.STRICT,
) -> Forest:
    """Return a pruned copy of ``forest``.

    STRICT keeps a node only if its own task matches; a non-matching node
    takes its whole subtree with it.

    EXPAND also keeps a non-matching node when any descendant matches, so
    the matching task is shown with its ancestors for context.

    Sibling order is preserved in both modes. Survival is decided bottom-up,
    so a node already knows which of its children made it.
    """
    expand = mode == FilterMode.EXPAND

    def build(node: Node, children: list[Node]) -> Node | None:
        if predicate(node.record) or (expand and children):
            return replace(node, children=tuple(children))
        return None

    result = rebuild(forest, build)
    logger.debug(f"Filter ({mode.value}) kept {len(result)} of {len(forest)} roots")
    return result
