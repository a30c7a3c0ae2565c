"""In-memory snapshot of everything a listing needs.

Tasks, projects, sections and labels are fetched concurrently, then the
tasks are assembled into a forest. Once built, a State is only ever
replaced, never mutated.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from doist.client import TodoistClient
from doist.models import FilterMode, Label, ListTasksInput, Project, Section, Task
from doist.queries import (
    Predicate,
    all_of,
    filter_forest,
    has_any_label,
    id_in,
    in_project,
    in_section,
)
from doist.tree import Forest, assemble

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class State:
    tasks: Forest
    projects: dict[str, Project] = field(default_factory=dict)
    sections: dict[str, Section] = field(default_factory=dict)
    # Tasks reference labels by name.
    labels: dict[str, Label] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        tasks: list[Task],
        projects: list[Project],
        sections: list[Section],
        labels: list[Label],
    ) -> "State":
        return cls(
            tasks=assemble(tasks),
            projects={p.id: p for p in projects},
            sections={s.id: s for s in sections},
            labels={label.name: label for label in labels},
        )

    def filter(self, predicate: Predicate, mode: FilterMode = FilterMode.STRICT) -> "State":
        return replace(self, tasks=filter_forest(self.tasks, predicate, mode))

    def project_for(self, task: Task) -> Optional[Project]:
        return self.projects.get(task.project_id)

    def section_for(self, task: Task) -> Optional[Section]:
        if task.section_id is None:
            return None
        return self.sections.get(task.section_id)

    def labels_for(self, task: Task) -> list[Label]:
        return [self.labels[name] for name in task.labels if name in self.labels]

    def find_project(self, name_or_id: str) -> Project:
        """Look a project up by id, then by exact name, then case-insensitively."""
        return _find(name_or_id, self.projects, "project")

    def find_section(self, name_or_id: str, project_id: str | None = None) -> Section:
        sections = self.sections
        if project_id is not None:
            sections = {k: s for k, s in sections.items() if s.project_id == project_id}
        return _find(name_or_id, sections, "section")

    def find_label(self, name_or_id: str) -> Label:
        """Look a label up by id or by name, with or without the leading '@'."""
        for label in self.labels.values():
            if label.id == name_or_id:
                return label
        name = name_or_id.lstrip("@")
        if name in self.labels:
            return self.labels[name]
        raise ValueError(f"No label named '{name_or_id}'")

    def selection(
        self,
        project: str | None = None,
        section: str | None = None,
        labels: Sequence[str] = (),
    ) -> Optional[Predicate]:
        """Predicate for a project/section/label selection, None if nothing was selected.

        Names are resolved against this state; unknown names raise ValueError.
        """
        predicates: list[Predicate] = []
        project_id = None
        if project:
            project_id = self.find_project(project).id
            predicates.append(in_project(project_id))
        if section:
            predicates.append(in_section(self.find_section(section, project_id).id))
        if labels:
            unknown = [name for name in labels if name not in self.labels]
            if unknown:
                raise ValueError(f"No label named '{unknown[0]}'")
            predicates.append(has_any_label(labels))
        return all_of(*predicates) if predicates else None


def _find(name_or_id: str, items: dict, kind: str):
    if name_or_id in items:
        return items[name_or_id]
    exact = [item for item in items.values() if item.name == name_or_id]
    if not exact:
        exact = [item for item in items.values() if item.name.lower() == name_or_id.lower()]
    if len(exact) == 1:
        return exact[0]
    if not exact:
        raise ValueError(f"No {kind} named '{name_or_id}'")
    raise ValueError(f"'{name_or_id}' matches {len(exact)} {kind}s; use the {kind} ID instead")


async def fetch_state(client: TodoistClient, filter_query: str | None = None) -> State:
    """Fetch the tasks matching ``filter_query`` plus all reference data.

    Tasks whose parent is outside the filter result become roots.
    """
    tasks, projects, sections, labels = await asyncio.gather(
        client.get_tasks(filter_query),
        client.get_projects(),
        client.get_sections(),
        client.get_labels(),
    )
    logger.info(f"Fetched {len(tasks)} tasks, {len(projects)} projects")
    return State.build(tasks, projects, sections, labels)


async def fetch_full_state(client: TodoistClient, filter_query: str) -> tuple[State, set[str]]:
    """Fetch every task plus the ids of the ones matching ``filter_query``.

    The returned state holds the whole forest; callers filter it in EXPAND
    mode so that ancestors of matching tasks stay visible.
    """
    matched, everything, projects, sections, labels = await asyncio.gather(
        client.get_tasks(filter_query),
        client.get_tasks("all"),
        client.get_projects(),
        client.get_sections(),
        client.get_labels(),
    )
    logger.info(f"Fetched {len(matched)} matching tasks out of {len(everything)}")
    return State.build(everything, projects, sections, labels), {t.id for t in matched}


async def load_listing(client: TodoistClient, params: ListTasksInput, default_filter: str) -> State:
    """Fetch and filter the tasks a ``list`` command should show.

    Without expand, only the filter result is fetched and the selection is
    applied strictly. With expand, the whole task list is fetched and
    ancestors of matching tasks are kept for context.
    """
    filter_query = params.filter or default_filter
    if params.expand:
        state, matched = await fetch_full_state(client, filter_query)
        predicate = all_of(id_in(matched), state.selection(params.project, params.section, params.labels))
        return state.filter(predicate, FilterMode.EXPAND)

    state = await fetch_state(client, filter_query)
    predicate = state.selection(params.project, params.section, params.labels)
    if predicate is None:
        return state
    return state.filter(predicate, FilterMode.STRICT)
