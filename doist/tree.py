"""Assemble flat task records into an ordered forest.

Records reference their parent by id. The parent relation is only used for
lookup while building; each Node owns its children outright, so no cyclic
structure can be created even when the input has cyclic parent links.

All walks are iterative: a long parent chain must not hit the interpreter's
recursion limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

from doist.models import Task

logger = logging.getLogger(__name__)


class AssemblyError(Exception):
    """Raised when a set of records cannot be assembled into a forest."""


class DuplicateIDError(AssemblyError):
    """Raised when two records share an id."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Duplicate task id in input: {record_id}")


@dataclass(frozen=True)
class Node:
    """One task plus its ordered subtasks.

    ``parent_id`` is the resolved parent: None for roots, including records
    whose parent link was dropped because it was dangling or cyclic.
    """

    record: Task
    children: tuple[Node, ...] = ()
    depth: int = 0
    parent_id: Optional[str] = None

    @property
    def id(self) -> str:
        return self.record.id

    def walk(self) -> Iterator[Node]:
        """Yield this node and every descendant in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def count(self) -> int:
        """Number of nodes in this subtree, this one included."""
        return sum(1 for _ in self.walk())

    def subtask_count(self) -> int:
        return self.count() - 1


Forest = list[Node]


def walk_forest(forest: Sequence[Node]) -> Iterator[Node]:
    """Pre-order walk over every node of the forest."""
    for root in forest:
        yield from root.walk()


def iter_postorder(forest: Sequence[Node]) -> Iterator[Node]:
    """Yield every node after all of its descendants."""
    stack: list[tuple[Node, bool]] = [(root, False) for root in reversed(forest)]
    while stack:
        node, children_done = stack.pop()
        if children_done:
            yield node
            continue
        stack.append((node, True))
        stack.extend((child, False) for child in reversed(node.children))


def rebuild(
    forest: Sequence[Node],
    build: Callable[[Node, list[Node]], Optional[Node]],
) -> Forest:
    """Rebuild a forest bottom-up.

    ``build`` receives each original node together with the already rebuilt
    children that survived, and returns the replacement node or None to drop
    it. Dropping a node drops its whole subtree.
    """
    built: dict[int, Optional[Node]] = {}
    for node in iter_postorder(forest):
        children = [built[id(c)] for c in node.children if built[id(c)] is not None]
        built[id(node)] = build(node, children)
    return [built[id(root)] for root in forest if built[id(root)] is not None]


def _cyclic_ids(index: dict[str, Task]) -> set[str]:
    """Ids of records whose parent chain leads back to themselves."""
    cyclic: set[str] = set()
    done: set[str] = set()
    for start in index:
        # Follow the chain until it leaves the index, hits a finished id or
        # comes back onto itself. Only the looping part is cyclic.
        path: list[str] = []
        position: dict[str, int] = {}
        current: Optional[str] = start
        while current is not None and current in index and current not in done:
            if current in position:
                cyclic.update(path[position[current]:])
                break
            position[current] = len(path)
            path.append(current)
            current = index[current].parent_id
        done.update(path)
    return cyclic


def resolve_parents(records: Sequence[Task]) -> dict[str, Optional[str]]:
    """Map every record id to its usable parent id.

    Raises DuplicateIDError if two records share an id. Dangling parents and
    links that are part of a cycle resolve to None.
    """
    index: dict[str, Task] = {}
    for record in records:
        if record.id in index:
            raise DuplicateIDError(record.id)
        index[record.id] = record

    cyclic = _cyclic_ids(index)
    parents: dict[str, Optional[str]] = {}
    for record in records:
        parent_id = record.parent_id
        if parent_id is None:
            parents[record.id] = None
        elif parent_id not in index:
            logger.debug(f"Task {record.id} has unknown parent {parent_id}, treating it as a root")
            parents[record.id] = None
        elif record.id in cyclic:
            logger.warning(f"Task {record.id} is part of a parent cycle, treating it as a root")
            parents[record.id] = None
        else:
            parents[record.id] = parent_id
    return parents


def assemble(records: Sequence[Task]) -> Forest:
    """Build an ordered forest from flat task records.

    Roots and children keep the order in which they appear in ``records``.
    Every record ends up in exactly one node. Raises DuplicateIDError when
    ids are not unique.
    """
    parents = resolve_parents(records)

    child_records: dict[Optional[str], list[Task]] = {}
    for record in records:
        child_records.setdefault(parents[record.id], []).append(record)

    # Depth is assigned top-down, then nodes are frozen bottom-up so each
    # parent can own its finished children.
    depths: dict[str, int] = {}
    order: list[Task] = []
    stack = [(record, 0) for record in reversed(child_records.get(None, []))]
    while stack:
        record, depth = stack.pop()
        depths[record.id] = depth
        order.append(record)
        for child in reversed(child_records.get(record.id, [])):
            stack.append((child, depth + 1))

    nodes: dict[str, Node] = {}
    for record in reversed(order):
        nodes[record.id] = Node(
            record=record,
            children=tuple(nodes[c.id] for c in child_records.get(record.id, [])),
            depth=depths[record.id],
            parent_id=parents[record.id],
        )

    forest = [nodes[record.id] for record in child_records.get(None, [])]
    logger.debug(f"Assembled {len(records)} tasks into {len(forest)} roots")
    return forest
