"""Terminal formatting helpers for doist.

Provides the single-line task rows used by listings, the full task view and
JSON output. Colours are applied with typer.style; typer.echo strips them
when stdout is not a terminal.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Sequence

import typer

from doist.grouping import ProjectGroup
from doist.models import Comment, DueDate, Duration, DurationUnit, Label, Priority, Project, Section, Task
from doist.state import State
from doist.tree import Node, walk_forest

# Tasks at least this old show their age.
AGE_THRESHOLD_DAYS = 7

# ---------------------------------------------------------------------------
# Priority display
# ---------------------------------------------------------------------------

PRIORITY_COLORS = {
    Priority.NORMAL: None,
    Priority.HIGH: typer.colors.BLUE,
    Priority.VERY_HIGH: typer.colors.YELLOW,
    Priority.URGENT: typer.colors.RED,
}


def priority_label(priority: Priority) -> str:
    """Priority as the UI shows it (p1 is the most urgent)."""
    label = priority.ui_label
    color = PRIORITY_COLORS.get(priority)
    return typer.style(label, fg=color) if color else label


# ---------------------------------------------------------------------------
# Field formatters
# ---------------------------------------------------------------------------

def format_due(due: DueDate, now: datetime) -> str:
    """Due string, green if still ahead, red if already passed."""
    prefix = "🔁 " if due.is_recurring else ""
    exact = due.exact_datetime()
    if exact is not None:
        upcoming = exact >= now
    else:
        day = due.date_value()
        upcoming = day is None or day >= now.date()
    color = typer.colors.BRIGHT_GREEN if upcoming else typer.colors.BRIGHT_RED
    return prefix + typer.style(due.string or due.date, fg=color)


def format_duration(duration: Duration) -> str:
    if duration.unit == DurationUnit.DAY:
        return f"📅{duration.amount}d"
    return f"⏱️{duration.amount}m"


def format_age(task: Task, now: datetime) -> str:
    if task.created_at is None:
        return ""
    created = task.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    days = (now - created).days
    if days < AGE_THRESHOLD_DAYS:
        return ""
    return f"📅({days} days ago)"


def format_label(label: Label) -> str:
    return typer.style(f"@{label.name}", fg=typer.colors.MAGENTA)


def format_project(project: Project, section: Section | None = None) -> str:
    if section is None:
        return f"[{project.name}]"
    return f"[{project.name}/{section.name}]"


# ---------------------------------------------------------------------------
# Task rows
# ---------------------------------------------------------------------------

def format_task_row(
    node: Node,
    state: State,
    now: datetime,
    *,
    show_id: bool = False,
    show_project: bool = True,
) -> str:
    """Format a task as one line of a listing, indented by its depth."""
    task = node.record
    parts = []
    padding = "  " * node.depth + "⌞ " if node.depth > 0 else ""
    if show_id:
        parts.append(typer.style(task.id, fg=typer.colors.BRIGHT_YELLOW))
    parts.append(priority_label(task.priority))
    parts.append(task.content)

    age = format_age(task, now)
    if age:
        parts.append(age)
    if task.due:
        parts.append(format_due(task.due, now))
    labels = state.labels_for(task)
    if labels:
        parts.append(" ".join(format_label(label) for label in labels))
    if task.deadline and task.deadline.date_value():
        parts.append(f"⏰{task.deadline.date_value().strftime('%m/%d')}")
    if task.duration:
        parts.append(format_duration(task.duration))
    if show_project:
        project = state.project_for(task)
        if project:
            parts.append(format_project(project, state.section_for(task)))
    if task.completed_at:
        parts.append(f"✅ {task.completed_at.astimezone().strftime('%m/%d %H:%M')}")
    return padding + " ".join(parts)


def format_forest(
    forest: Sequence[Node],
    state: State,
    now: datetime,
    *,
    show_id: bool = False,
) -> list[str]:
    """One row per node, parents directly above their subtasks.

    The forest is printed in its current order; sort it first.
    """
    return [
        format_task_row(node, state, now, show_id=show_id)
        for node in walk_forest(forest)
    ]


def format_groups(
    groups: Sequence[ProjectGroup],
    state: State,
    now: datetime,
    *,
    show_id: bool = False,
) -> list[str]:
    """Project headers with their task rows, without repeating the project."""
    lines = []
    for group in groups:
        lines.append("")
        lines.append(f"[{group.name}] ({group.visible}/{group.total} tasks)")
        for node in group.nodes:
            row = format_task_row(node, state, now, show_id=show_id, show_project=False)
            lines.append(f"  {row}")
    return lines


def format_task_full(task: Task, state: State, now: datetime) -> str:
    """Format every detail of a single task."""
    lines = [
        f"ID: {typer.style(task.id, fg=typer.colors.BRIGHT_YELLOW)}",
        f"Priority: {priority_label(task.priority)}",
        f"Content: {task.content}",
        f"Description: {task.description}",
    ]
    if task.due:
        lines.append(f"Due: {format_due(task.due, now)}")
    labels = state.labels_for(task)
    if labels:
        lines.append(f"Labels: {', '.join(format_label(label) for label in labels)}")
    project = state.project_for(task)
    if project:
        lines.append(f"Project: {project.name}")
    section = state.section_for(task)
    if section:
        lines.append(f"Section: {section.name}")
    if task.deadline and task.deadline.date_value():
        lines.append(f"Deadline: {task.deadline.date_value().isoformat()}")
    if task.duration:
        lines.append(f"Duration: {task.duration.amount} {task.duration.unit.value}")
    lines.append(f"Comments: {task.comment_count}")
    return "\n".join(lines)


def format_comment(comment: Comment) -> str:
    lines = [f"ID: {typer.style(comment.id, fg=typer.colors.BRIGHT_YELLOW)}"]
    if comment.posted_at:
        lines.append(f"Posted: {comment.posted_at.astimezone().strftime('%Y-%m-%d %H:%M')}")
    lines.append(f"Attachment: {'Yes' if comment.file_attachment else 'No'}")
    lines.append(f"Content: {comment.content}")
    return "\n".join(lines)


def format_comments(comments: Sequence[Comment]) -> str:
    """Comments oldest first, separated by blank lines. Deleted ones are skipped."""
    shown = [c for c in comments if not c.is_deleted]
    if not shown:
        return "No comments."
    shown.sort(key=lambda c: (c.posted_at is None, c.posted_at or datetime.min, c.id))
    return "\n\n".join(format_comment(c) for c in shown)


# ---------------------------------------------------------------------------
# Reference records
# ---------------------------------------------------------------------------

def format_projects(projects: Sequence[Project]) -> str:
    if not projects:
        return "No projects found."
    lines = []
    for p in sorted(projects, key=lambda p: (p.order, p.id)):
        marker = " (Inbox)" if p.is_inbox_project else ""
        lines.append(f"{typer.style(p.id, fg=typer.colors.BRIGHT_YELLOW)} {p.name}{marker}")
    return "\n".join(lines)


def format_project_full(project: Project) -> str:
    lines = [
        f"ID: {typer.style(project.id, fg=typer.colors.BRIGHT_YELLOW)}",
        f"Name: {project.name}",
    ]
    if project.color:
        lines.append(f"Color: {project.color}")
    lines.append(f"Favorite: {'Yes' if project.is_favorite else 'No'}")
    lines.append(f"Shared: {'Yes' if project.is_shared else 'No'}")
    return "\n".join(lines)


def format_sections(sections: Sequence[Section], projects: dict[str, Project]) -> str:
    if not sections:
        return "No sections found."
    lines = []
    for s in sorted(sections, key=Section.sort_key):
        project = projects.get(s.project_id)
        where = f" [{project.name}]" if project else ""
        lines.append(f"{typer.style(s.id, fg=typer.colors.BRIGHT_YELLOW)} {s.name}{where}")
    return "\n".join(lines)


def format_labels(labels: Sequence[Label]) -> str:
    if not labels:
        return "No labels found."
    return "\n".join(
        f"{typer.style(label.id, fg=typer.colors.BRIGHT_YELLOW)} {format_label(label)}"
        for label in sorted(labels, key=lambda label: (label.order, label.name))
    )


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

def node_to_dict(node: Node) -> dict:
    """Task fields plus depth, resolved parent and the ids of direct subtasks."""
    data = node.record.model_dump(mode="json")
    data["depth"] = node.depth
    data["parent_id"] = node.parent_id
    data["subtask_ids"] = [child.id for child in node.children]
    return data


def forest_to_dicts(forest: Sequence[Node]) -> list[dict]:
    """Every task of the forest in pre-order.

    The output is flat: nesting follows from ``parent_id`` and ``depth``,
    so arbitrarily deep hierarchies serialize without recursion.
    """
    return [node_to_dict(node) for node in walk_forest(forest)]


def group_to_dict(group: ProjectGroup) -> dict:
    """A project bucket with its already sorted rows."""
    return {
        "project_id": group.project_id,
        "name": group.name,
        "visible": group.visible,
        "total": group.total,
        "tasks": [node_to_dict(node) for node in group.nodes],
    }


def format_json(data: Any) -> str:
    """Format data as indented JSON string."""
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)
