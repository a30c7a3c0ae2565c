"""Grouping of a task forest by project."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from doist.models import Project, SortKey
from doist.sorting import sort_nodes
from doist.tree import Node, walk_forest


@dataclass
class ProjectGroup:
    """Tasks of one project, flattened into rows.

    ``visible`` counts the directly bucketed entries (those whose parent is
    not in this bucket); ``total`` adds all of their descendants.
    """

    project_id: str
    name: str
    nodes: list[Node] = field(default_factory=list)
    visible: int = 0
    total: int = 0


def group_by_project(
    forest: Sequence[Node],
    projects: Mapping[str, Project],
    key: SortKey = SortKey.DEFAULT,
) -> list[ProjectGroup]:
    """Bucket every node of ``forest`` by project.

    Groups are ordered by project name, falling back to the raw project id
    when the project is unknown. Members of a group are sorted with ``key``;
    each keeps its depth so it can still be indented.
    """
    buckets: dict[str, list[Node]] = {}
    for node in walk_forest(forest):
        buckets.setdefault(node.record.project_id, []).append(node)

    groups = []
    for project_id, members in buckets.items():
        project = projects.get(project_id)
        member_ids = {node.id for node in members}
        direct = [node for node in members if node.parent_id not in member_ids]
        groups.append(
            ProjectGroup(
                project_id=project_id,
                name=project.name if project else project_id,
                nodes=sort_nodes(members, key),
                visible=len(direct),
                total=sum(node.count() for node in direct),
            )
        )
    groups.sort(key=lambda g: (g.name, g.project_id))
    return groups
