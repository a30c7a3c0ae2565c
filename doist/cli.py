"""doist: Todoist on the command line.

Usage:
    doist list --expand --group-by project
    python -m doist view 1234567890
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

import httpx
import typer
from pydantic import ValidationError

from doist.client import TodoistAPIError, TodoistClient
from doist.config import Config
from doist.formatting import (
    forest_to_dicts,
    format_comment,
    format_comments,
    format_forest,
    format_groups,
    format_json,
    format_labels,
    format_project_full,
    format_projects,
    format_sections,
    format_task_full,
    format_task_row,
    group_to_dict,
)
from doist.grouping import group_by_project
from doist.models import (
    CompletedTasksInput,
    CreateCommentInput,
    CreateLabelInput,
    CreateProjectInput,
    CreateSectionInput,
    CreateTaskInput,
    GroupBy,
    ListTasksInput,
    ResponseFormat,
    SortKey,
    UpdateTaskInput,
)
from doist.sorting import sort_forest
from doist.state import State, load_listing
from doist.tree import AssemblyError, Node

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(help="Todoist on the command line.", no_args_is_help=True)


# ---------------------------------------------------------------------------
# Error handler
# ---------------------------------------------------------------------------

def _handle_error(e: Exception) -> str:
    """Convert exceptions to user-facing error messages."""
    if isinstance(e, TodoistAPIError):
        if e.status_code == 401:
            return (
                "Error: Authentication failed. Your Todoist API token may be "
                "expired or invalid. Check TODOIST_API_TOKEN."
            )
        if e.status_code == 403:
            return "Error: Permission denied for this resource."
        if e.status_code == 404:
            return (
                "Error: Resource not found. Check that the ID is correct. "
                "Use `doist list --show-id` or `doist projects` to find valid IDs."
            )
        if e.status_code == 429:
            return "Error: Rate limit exceeded. Wait a moment before retrying."
        return f"Error: Todoist API returned status {e.status_code}: {e.detail}"
    if isinstance(e, ValidationError):
        messages = "; ".join(err["msg"] for err in e.errors())
        return f"Error: Invalid input: {messages}"
    if isinstance(e, AssemblyError):
        return f"Error: Could not build the task tree: {e}"
    if isinstance(e, ValueError):
        return f"Error: Invalid input: {e}"
    if isinstance(e, httpx.HTTPError):
        return f"Error: Could not reach Todoist: {e}"
    return f"Error: {type(e).__name__}: {e}"


def _fail(e: Exception) -> typer.Exit:
    logger.debug("Command failed", exc_info=e)
    typer.echo(_handle_error(e), err=True)
    return typer.Exit(code=1)


def _run(ctx: typer.Context, action: Callable[[TodoistClient, Config], Awaitable[T]]) -> T:
    """Run ``action`` with a fresh client, turning known errors into exit code 1."""
    config: Config = ctx.obj

    async def runner() -> T:
        client = TodoistClient(config.require_token(), config.api_url)
        try:
            return await action(client, config)
        finally:
            await client.close()

    try:
        return asyncio.run(runner())
    except (TodoistAPIError, AssemblyError, ValueError, httpx.HTTPError) as e:
        raise _fail(e)


def _echo_lines(lines: List[str]) -> None:
    for line in lines:
        typer.echo(line)


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------

@app.callback()
def main_callback(
    ctx: typer.Context,
    token: Optional[str] = typer.Option(
        None, "--token", help="Todoist API token (defaults to TODOIST_API_TOKEN)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    try:
        config = Config.from_env(token=token)
    except ValueError as e:
        raise _fail(e)
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


# ---------------------------------------------------------------------------
# Task listing
# ---------------------------------------------------------------------------

@app.command("list")
def list_cmd(
    ctx: typer.Context,
    filter_query: Optional[str] = typer.Option(
        None, "--filter", "-f", help="Todoist filter query (defaults to DOIST_DEFAULT_FILTER)"
    ),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project name or ID"),
    section: Optional[str] = typer.Option(None, "--section", "-S", help="Section name or ID"),
    label: Optional[List[str]] = typer.Option(None, "--label", "-L", help="Label name (repeatable)"),
    expand: bool = typer.Option(
        False,
        "--expand",
        "-e",
        help="Also show the parents of matching tasks, even if the parent does not match",
    ),
    sort_by: SortKey = typer.Option(
        SortKey.DEFAULT, "--sort-by", help="created: oldest first; duration: shortest first"
    ),
    group_by: Optional[GroupBy] = typer.Option(None, "--group-by", help="Group tasks by project"),
    show_id: bool = typer.Option(False, "--show-id", help="Show task IDs"),
    as_json: bool = typer.Option(False, "--json", help="Print the task tree as JSON"),
):
    """List tasks as a tree."""
    try:
        params = ListTasksInput(
            filter=filter_query,
            project=project,
            section=section,
            labels=label or [],
            expand=expand,
            sort_by=sort_by,
            group_by=group_by,
            show_id=show_id,
            response_format=ResponseFormat.JSON if as_json else ResponseFormat.TEXT,
        )
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> State:
        return await load_listing(client, params, config.default_filter)

    state = _run(ctx, action)
    now = ctx.obj.now()

    if params.response_format == ResponseFormat.JSON:
        count = sum(node.count() for node in state.tasks)
        if params.group_by == GroupBy.PROJECT:
            groups = group_by_project(state.tasks, state.projects, params.sort_by)
            payload = {"count": count, "groups": [group_to_dict(g) for g in groups]}
        else:
            forest = sort_forest(state.tasks, params.sort_by)
            payload = {"count": count, "tasks": forest_to_dicts(forest)}
        typer.echo(format_json(payload))
        return
    if not state.tasks:
        typer.echo("No tasks found.")
        return
    if params.group_by == GroupBy.PROJECT:
        groups = group_by_project(state.tasks, state.projects, params.sort_by)
        _echo_lines(format_groups(groups, state, now, show_id=params.show_id))
    else:
        forest = sort_forest(state.tasks, params.sort_by)
        _echo_lines(format_forest(forest, state, now, show_id=params.show_id))


# ---------------------------------------------------------------------------
# Single task commands
# ---------------------------------------------------------------------------

@app.command("view")
def view_cmd(ctx: typer.Context, task_id: str = typer.Argument(..., help="Task ID")):
    """Show every detail of a task, followed by its comments."""

    async def action(client: TodoistClient, config: Config) -> str:
        task, projects, sections, labels, comments = await asyncio.gather(
            client.get_task(task_id),
            client.get_projects(),
            client.get_sections(),
            client.get_labels(),
            client.get_comments(task_id=task_id),
        )
        state = State.build([task], projects, sections, labels)
        details = format_task_full(task, state, config.now())
        if not comments:
            return details
        return f"{details}\n\n{format_comments(comments)}"

    typer.echo(_run(ctx, action))


@app.command("add")
def add_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the task"),
    due: Optional[str] = typer.Option(None, "--due", "-d", help="Human-readable due date, e.g. 'tomorrow'"),
    desc: Optional[str] = typer.Option(None, "--desc", "-D", help="Description"),
    priority: Optional[int] = typer.Option(None, "--priority", "-p", help="1 (urgent) to 4 (normal)"),
    deadline: Optional[str] = typer.Option(None, "--deadline", help="Deadline as YYYY-MM-DD"),
    duration: Optional[str] = typer.Option(None, "--duration", help="'<amount>:<unit>', e.g. 30:minute; needs --due"),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project name or ID"),
    section: Optional[str] = typer.Option(None, "--section", "-S", help="Section name or ID"),
    label: Optional[List[str]] = typer.Option(None, "--label", "-L", help="Label name (repeatable)"),
):
    """Create a task."""
    try:
        params = CreateTaskInput(
            content=name,
            due=due,
            description=desc,
            priority=priority,
            deadline=deadline,
            duration=duration,
            project=project,
            section=section,
            labels=label or None,
        )
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> str:
        projects, sections, labels = await asyncio.gather(
            client.get_projects(), client.get_sections(), client.get_labels()
        )
        state = State.build([], projects, sections, labels)
        project_id = state.find_project(params.project).id if params.project else None
        section_id = state.find_section(params.section, project_id).id if params.section else None
        task = await client.create_task(params.to_body(project_id, section_id))
        logger.info(f"Created task {task.id}")
        return format_task_row(Node(record=task), state, config.now(), show_id=True)

    typer.echo(_run(ctx, action))


@app.command("edit")
def edit_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="New name"),
    due: Optional[str] = typer.Option(None, "--due", "-d", help="New human-readable due date"),
    desc: Optional[str] = typer.Option(None, "--desc", "-D", help="New description"),
    priority: Optional[int] = typer.Option(None, "--priority", "-p", help="1 (urgent) to 4 (normal)"),
    deadline: Optional[str] = typer.Option(None, "--deadline", help="Deadline as YYYY-MM-DD"),
    duration: Optional[str] = typer.Option(None, "--duration", help="'<amount>:<unit>', e.g. 2:day"),
    label: Optional[List[str]] = typer.Option(None, "--label", "-L", help="Replace labels (repeatable)"),
):
    """Change fields of an existing task."""
    try:
        params = UpdateTaskInput(
            task_id=task_id,
            content=name,
            due=due,
            description=desc,
            priority=priority,
            deadline=deadline,
            duration=duration,
            labels=label or None,
        )
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> None:
        await client.update_task(params.task_id, params.to_body())

    _run(ctx, action)
    typer.echo(f"Updated task {params.task_id}")


@app.command("close")
def close_cmd(ctx: typer.Context, task_id: str = typer.Argument(..., help="Task ID")):
    """Close a task. Recurring tasks move to their next date."""

    async def action(client: TodoistClient, config: Config) -> None:
        await client.close_task(task_id)

    _run(ctx, action)
    typer.echo(f"Closed task {task_id}")


@app.command("done")
def done_cmd(ctx: typer.Context, task_id: str = typer.Argument(..., help="Task ID")):
    """Complete a task for good, stopping any recurrence."""

    async def action(client: TodoistClient, config: Config) -> None:
        await client.complete_task(task_id)

    _run(ctx, action)
    typer.echo(f"Completed task {task_id}")


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

projects_app = typer.Typer(help="List, view, create and delete projects.")
sections_app = typer.Typer(help="List, view, create and delete sections.")
labels_app = typer.Typer(help="List, view, create and delete labels.")
comments_app = typer.Typer(help="List and add comments on tasks and projects.")


def _confirm_delete(kind: str, name: str, yes: bool) -> None:
    if not yes:
        typer.confirm(f"Delete {kind} '{name}'?", abort=True)


async def _lookup(client: TodoistClient) -> State:
    """Projects and sections, for resolving names to ids."""
    projects, sections = await asyncio.gather(client.get_projects(), client.get_sections())
    return State.build([], projects, sections, [])


@projects_app.callback(invoke_without_command=True)
def projects_cmd(ctx: typer.Context):
    """List projects."""
    if ctx.invoked_subcommand is not None:
        return

    async def action(client: TodoistClient, config: Config) -> str:
        return format_projects(await client.get_projects())

    typer.echo(_run(ctx, action))


@projects_app.command("view")
def projects_view_cmd(ctx: typer.Context, project: str = typer.Argument(..., help="Project name or ID")):
    """Show a project and its comments."""

    async def action(client: TodoistClient, config: Config) -> str:
        project_id = (await _lookup(client)).find_project(project).id
        details, comments = await asyncio.gather(
            client.get_project(project_id), client.get_comments(project_id=project_id)
        )
        return f"{format_project_full(details)}\n\n{format_comments(comments)}"

    typer.echo(_run(ctx, action))


@projects_app.command("add")
def projects_add_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the project"),
    parent: Optional[str] = typer.Option(None, "--parent", help="Parent project name or ID"),
    color: Optional[str] = typer.Option(None, "--color", help="Color name, e.g. berry_red"),
    favorite: bool = typer.Option(False, "--favorite", help="Mark as favorite"),
):
    """Create a project."""
    try:
        params = CreateProjectInput(name=name, parent=parent, color=color, favorite=favorite)
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> str:
        parent_id = None
        if params.parent:
            parent_id = (await _lookup(client)).find_project(params.parent).id
        created = await client.create_project(params.to_body(parent_id))
        logger.info(f"Created project {created.id}")
        return format_projects([created])

    typer.echo(_run(ctx, action))


@projects_app.command("delete")
def projects_delete_cmd(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a project together with its tasks."""

    async def resolve(client: TodoistClient, config: Config):
        return (await _lookup(client)).find_project(project)

    target = _run(ctx, resolve)
    _confirm_delete("project", target.name, yes)

    async def action(client: TodoistClient, config: Config) -> None:
        await client.delete_project(target.id)

    _run(ctx, action)
    typer.echo(f"Deleted project {target.name}")


@sections_app.callback(invoke_without_command=True)
def sections_cmd(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project name or ID"),
):
    """List sections, optionally of one project."""
    if ctx.invoked_subcommand is not None:
        return

    async def action(client: TodoistClient, config: Config) -> str:
        state = await _lookup(client)
        sections = list(state.sections.values())
        if project:
            project_id = state.find_project(project).id
            sections = [s for s in sections if s.project_id == project_id]
        return format_sections(sections, state.projects)

    typer.echo(_run(ctx, action))


@sections_app.command("view")
def sections_view_cmd(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section name or ID"),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project the section is in"),
):
    """Show a section."""

    async def action(client: TodoistClient, config: Config) -> str:
        state = await _lookup(client)
        project_id = state.find_project(project).id if project else None
        details = await client.get_section(state.find_section(section, project_id).id)
        return format_sections([details], state.projects)

    typer.echo(_run(ctx, action))


@sections_app.command("add")
def sections_add_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the section"),
    project: str = typer.Option(..., "--project", "-P", help="Project name or ID"),
    order: Optional[int] = typer.Option(None, "--order", help="Position among the project's sections"),
):
    """Create a section in a project."""
    try:
        params = CreateSectionInput(name=name, project=project, order=order)
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> str:
        state = await _lookup(client)
        created = await client.create_section(params.to_body(state.find_project(params.project).id))
        logger.info(f"Created section {created.id}")
        return format_sections([created], state.projects)

    typer.echo(_run(ctx, action))


@sections_app.command("delete")
def sections_delete_cmd(
    ctx: typer.Context,
    section: str = typer.Argument(..., help="Section name or ID"),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project the section is in"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a section together with its tasks."""

    async def resolve(client: TodoistClient, config: Config):
        state = await _lookup(client)
        project_id = state.find_project(project).id if project else None
        return state.find_section(section, project_id)

    target = _run(ctx, resolve)
    _confirm_delete("section", target.name, yes)

    async def action(client: TodoistClient, config: Config) -> None:
        await client.delete_section(target.id)

    _run(ctx, action)
    typer.echo(f"Deleted section {target.name}")


@labels_app.callback(invoke_without_command=True)
def labels_cmd(ctx: typer.Context):
    """List labels."""
    if ctx.invoked_subcommand is not None:
        return

    async def action(client: TodoistClient, config: Config) -> str:
        return format_labels(await client.get_labels())

    typer.echo(_run(ctx, action))


@labels_app.command("view")
def labels_view_cmd(ctx: typer.Context, label: str = typer.Argument(..., help="Label name or ID")):
    """Show a label."""

    async def action(client: TodoistClient, config: Config) -> str:
        state = State.build([], [], [], await client.get_labels())
        return format_labels([await client.get_label(state.find_label(label).id)])

    typer.echo(_run(ctx, action))


@labels_app.command("add")
def labels_add_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the label, without '@'"),
    color: Optional[str] = typer.Option(None, "--color", help="Color name, e.g. berry_red"),
    order: Optional[int] = typer.Option(None, "--order", help="Position in the label list"),
    favorite: bool = typer.Option(False, "--favorite", help="Mark as favorite"),
):
    """Create a personal label."""
    try:
        params = CreateLabelInput(name=name, color=color, order=order, favorite=favorite)
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> str:
        created = await client.create_label(params.to_body())
        logger.info(f"Created label {created.id}")
        return format_labels([created])

    typer.echo(_run(ctx, action))


@labels_app.command("delete")
def labels_delete_cmd(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="Label name or ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a label. Tasks keep existing but lose the label."""

    async def resolve(client: TodoistClient, config: Config):
        return State.build([], [], [], await client.get_labels()).find_label(label)

    target = _run(ctx, resolve)
    _confirm_delete("label", target.name, yes)

    async def action(client: TodoistClient, config: Config) -> None:
        await client.delete_label(target.id)

    _run(ctx, action)
    typer.echo(f"Deleted label {target.name}")


@comments_app.callback(invoke_without_command=True)
def comments_cmd(
    ctx: typer.Context,
    task_id: Optional[str] = typer.Option(None, "--task", "-t", help="Task ID"),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project name or ID"),
):
    """List the comments of a task or a project."""
    if ctx.invoked_subcommand is not None:
        return
    if (task_id is None) == (project is None):
        raise _fail(ValueError("Pass either --task or --project"))

    async def action(client: TodoistClient, config: Config) -> str:
        if task_id is not None:
            return format_comments(await client.get_comments(task_id=task_id))
        project_id = (await _lookup(client)).find_project(project).id
        return format_comments(await client.get_comments(project_id=project_id))

    typer.echo(_run(ctx, action))


@comments_app.command("add")
def comments_add_cmd(
    ctx: typer.Context,
    content: str = typer.Argument(..., help="Comment text, markdown allowed"),
    task_id: Optional[str] = typer.Option(None, "--task", "-t", help="Task ID"),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project name or ID"),
):
    """Comment on a task or a project."""
    try:
        params = CreateCommentInput(content=content, task_id=task_id, project=project)
    except ValidationError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> str:
        project_id = None
        if params.project:
            project_id = (await _lookup(client)).find_project(params.project).id
        created = await client.create_comment(params.to_body(project_id))
        logger.info(f"Created comment {created.id}")
        return format_comment(created)

    typer.echo(_run(ctx, action))


app.add_typer(projects_app, name="projects")
app.add_typer(sections_app, name="sections")
app.add_typer(labels_app, name="labels")
app.add_typer(comments_app, name="comments")


# ---------------------------------------------------------------------------
# Completed tasks
# ---------------------------------------------------------------------------

@app.command("completed")
def completed_cmd(
    ctx: typer.Context,
    since: Optional[str] = typer.Option(None, "--since", help="Start date (YYYY-MM-DD or ISO 8601)"),
    until: Optional[str] = typer.Option(None, "--until", help="End date (YYYY-MM-DD or ISO 8601)"),
    today: bool = typer.Option(False, "--today", help="Completed today"),
    yesterday: bool = typer.Option(False, "--yesterday", help="Completed yesterday"),
    this_week: bool = typer.Option(False, "--this-week", help="Monday to today"),
    last_week: bool = typer.Option(False, "--last-week", help="Last Monday to Sunday"),
    this_month: bool = typer.Option(False, "--this-month", help="1st of the month to today"),
    project: Optional[str] = typer.Option(None, "--project", "-P", help="Project name or ID"),
    section: Optional[str] = typer.Option(None, "--section", "-S", help="Section name or ID"),
    filter_query: Optional[str] = typer.Option(None, "--filter", help="Filter query, e.g. '#inbox'"),
    limit: int = typer.Option(50, "--limit", help="Results per page (max 200)"),
    by_due_date: bool = typer.Option(False, "--by-due-date", help="Use the due date instead of the completion date"),
    group_by: Optional[GroupBy] = typer.Option(None, "--group-by", help="Group tasks by project"),
    show_id: bool = typer.Option(False, "--show-id", help="Show task IDs"),
):
    """List tasks completed in a date range (today by default)."""
    config: Config = ctx.obj
    try:
        params = CompletedTasksInput(
            since=since,
            until=until,
            today=today,
            yesterday=yesterday,
            this_week=this_week,
            last_week=last_week,
            this_month=this_month,
            project=project,
            section=section,
            filter=filter_query,
            limit=limit,
            by_due_date=by_due_date,
            group_by=group_by,
            show_id=show_id,
        )
        date_from, date_to = params.date_range(config.now().astimezone().date())
    except ValueError as e:
        raise _fail(e)

    async def action(client: TodoistClient, config: Config) -> tuple[State, Optional[str]]:
        projects, sections, labels = await asyncio.gather(
            client.get_projects(), client.get_sections(), client.get_labels()
        )
        lookup = State.build([], projects, sections, labels)
        project_id = lookup.find_project(params.project).id if params.project else None
        section_id = lookup.find_section(params.section, project_id).id if params.section else None
        tasks, next_cursor = await client.get_completed_tasks(
            date_from,
            date_to,
            by_due_date=params.by_due_date,
            project_id=project_id,
            section_id=section_id,
            filter_query=params.filter,
            limit=params.limit,
        )
        return State.build(tasks, projects, sections, labels), next_cursor

    state, next_cursor = _run(ctx, action)
    count = sum(node.count() for node in state.tasks)
    if not count:
        typer.echo("No completed tasks found in the specified date range.")
        return

    if params.group_by == GroupBy.PROJECT:
        groups = group_by_project(state.tasks, state.projects)
        _echo_lines(format_groups(groups, state, config.now(), show_id=params.show_id))
    else:
        forest = sort_forest(state.tasks)
        _echo_lines(format_forest(forest, state, config.now(), show_id=params.show_id))

    if next_cursor:
        typer.echo(
            f"\nShowing the first {count} tasks. Narrow the date range or raise --limit to see more."
        )
    typer.echo(f"\n✓ Total: {count} completed tasks")


def main() -> None:
    app()
