"""Pydantic models for the Todoist records and the doist commands.

Record models (Task, Project, Section, Label) mirror the Todoist API v1
payloads and are frozen once parsed. Command input models validate what the
user typed before anything hits the API.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ResponseFormat(str, Enum):
    """Output format for command responses."""
    TEXT = "text"
    JSON = "json"


class Priority(int, Enum):
    """Task priority as sent by the API. Higher is more urgent.

    The Todoist UI shows these reversed: API 4 is "p1".
    """
    NORMAL = 1
    HIGH = 2
    VERY_HIGH = 3
    URGENT = 4

    @classmethod
    def from_ui(cls, value: int) -> "Priority":
        """Convert a UI priority (1 = most urgent) to the API value."""
        if not 1 <= value <= 4:
            raise ValueError(f"Priority must be between 1 and 4, got: {value}")
        return cls(5 - value)

    @property
    def ui_label(self) -> str:
        return f"p{5 - self.value}"


class DurationUnit(str, Enum):
    MINUTE = "minute"
    DAY = "day"


class SortKey(str, Enum):
    """Sibling ordering used when printing task lists."""
    DEFAULT = "default"
    CREATED_AT = "created"
    DURATION = "duration"


class GroupBy(str, Enum):
    PROJECT = "project"


class FilterMode(str, Enum):
    """How non-matching ancestors are treated when filtering a forest."""
    STRICT = "strict"
    EXPAND = "expand"


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------

def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string from the API. Returns None if unparseable.

    Accepts a trailing 'Z', fractional seconds, bare dates and floating
    (offset-less) timestamps. Offset-less results are naive.
    """
    if not value:
        return None
    cleaned = value.strip()
    if cleaned.endswith("Z") or cleaned.endswith("z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(cleaned)
    except (ValueError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------

_RECORD_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    populate_by_name=True,
)


class DueDate(BaseModel):
    """Due object of a task. Mostly human-readable content."""
    model_config = _RECORD_CONFIG

    string: str = ""
    date: str
    timezone: Optional[str] = None
    lang: str = "en"
    is_recurring: bool = False

    def exact_datetime(self) -> datetime | None:
        """Return the due timestamp only if it carries a UTC offset."""
        parsed = parse_datetime(self.date)
        if parsed is None or parsed.tzinfo is None:
            return None
        return parsed

    def date_value(self) -> date | None:
        """Return the calendar day the task is due on, whatever the format."""
        parsed = parse_datetime(self.date)
        return parsed.date() if parsed else None


class Deadline(BaseModel):
    model_config = _RECORD_CONFIG

    date: str
    lang: Optional[str] = None

    def date_value(self) -> date | None:
        parsed = parse_datetime(self.date)
        return parsed.date() if parsed else None


class Duration(BaseModel):
    model_config = _RECORD_CONFIG

    amount: int = Field(..., ge=0)
    unit: DurationUnit

    def minutes(self) -> int:
        """Normalized length in minutes. Days count as 1440 minutes."""
        if self.unit == DurationUnit.DAY:
            return self.amount * 24 * 60
        return self.amount


class Task(BaseModel):
    """A task record as returned by the Todoist API."""
    model_config = _RECORD_CONFIG

    id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    project_id: str = ""
    section_id: Optional[str] = None
    content: str = ""
    description: str = ""
    is_completed: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_completed", "checked"),
    )
    labels: list[str] = Field(default_factory=list)
    parent_id: Optional[str] = None
    order: int = Field(
        default=0,
        validation_alias=AliasChoices("order", "child_order"),
    )
    priority: Priority = Priority.NORMAL
    due: Optional[DueDate] = None
    deadline: Optional[Deadline] = None
    duration: Optional[Duration] = None
    comment_count: int = Field(
        default=0,
        validation_alias=AliasChoices("comment_count", "note_count"),
    )
    creator_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("creator_id", "added_by_uid"),
    )
    assignee_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("assignee_id", "responsible_uid"),
    )
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "added_at"),
    )
    completed_at: Optional[datetime] = None

    @field_validator("id", "parent_id", "project_id", "section_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        # Older payloads send numeric ids.
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("created_at", "completed_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        # Timestamps without an offset are UTC; keeps them comparable.
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Project(BaseModel):
    model_config = _RECORD_CONFIG

    id: str
    parent_id: Optional[str] = None
    name: str
    color: str = ""
    order: int = Field(default=0, validation_alias=AliasChoices("order", "child_order"))
    is_inbox_project: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_inbox_project", "inbox_project"),
    )
    is_favorite: bool = False
    is_shared: bool = False
    is_archived: bool = False


class Section(BaseModel):
    model_config = _RECORD_CONFIG

    id: str
    project_id: str
    order: int = Field(default=0, validation_alias=AliasChoices("order", "section_order"))
    name: str

    def sort_key(self) -> tuple[int, str]:
        return (self.order, self.id)


class Label(BaseModel):
    model_config = _RECORD_CONFIG

    id: str
    name: str
    color: str = ""
    order: int = 0
    is_favorite: bool = False


class Comment(BaseModel):
    """A comment on a task or a project."""
    model_config = _RECORD_CONFIG

    id: str
    task_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("task_id", "item_id"))
    project_id: Optional[str] = None
    posted_uid: Optional[str] = None
    posted_at: Optional[datetime] = None
    content: str = ""
    file_attachment: Optional[dict] = Field(
        default=None,
        validation_alias=AliasChoices("file_attachment", "attachment"),
    )
    is_deleted: bool = False

    @field_validator("id", "task_id", "project_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("posted_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ---------------------------------------------------------------------------
# Shared input model config
# ---------------------------------------------------------------------------

_STRICT_CONFIG = ConfigDict(
    str_strip_whitespace=True,
    validate_assignment=True,
    extra="forbid",
)

_DURATION_PATTERN = re.compile(r"^(\d+):(minute|day)$")


def _parse_duration(value: str) -> tuple[int, DurationUnit]:
    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(
            f"Duration must look like '<amount>:<unit>' with unit 'minute' or 'day' "
            f"(e.g., '30:minute', '2:day'), got: {value}"
        )
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError(f"Duration amount must be positive, got: {amount}")
    return amount, DurationUnit(match.group(2))


# ---------------------------------------------------------------------------
# Task command models
# ---------------------------------------------------------------------------

class ListTasksInput(BaseModel):
    """Input for listing tasks."""
    model_config = _STRICT_CONFIG

    filter: Optional[str] = Field(
        default=None,
        description="Todoist filter query (e.g., '(today | overdue)', '#inbox')",
    )
    project: Optional[str] = Field(default=None, description="Project name or ID")
    section: Optional[str] = Field(default=None, description="Section name or ID")
    labels: list[str] = Field(default_factory=list, description="Label names; any match keeps a task")
    expand: bool = Field(
        default=False,
        description="Keep parents of matching tasks even if the parent does not match",
    )
    sort_by: SortKey = Field(default=SortKey.DEFAULT, description="Sort key for siblings")
    group_by: Optional[GroupBy] = Field(default=None, description="Group the output")
    show_id: bool = False
    response_format: ResponseFormat = ResponseFormat.TEXT


class _TaskFieldsInput(BaseModel):
    model_config = _STRICT_CONFIG

    description: Optional[str] = Field(default=None, max_length=16383)
    due: Optional[str] = Field(
        default=None,
        description="Human-readable due date (e.g., 'tomorrow', 'every 2 days from Monday')",
        min_length=1,
    )
    priority: Optional[int] = Field(
        default=None,
        description="Priority as shown in the UI: 1=urgent ... 4=normal",
        ge=1,
        le=4,
    )
    deadline: Optional[str] = Field(
        default=None,
        description="Deadline date in YYYY-MM-DD format",
        pattern=r"^\d{4}-\d{2}-\d{2}$",
    )
    duration: Optional[str] = Field(
        default=None,
        description="Duration as '<amount>:<unit>' (e.g., '30:minute', '2:day')",
    )
    labels: Optional[list[str]] = Field(default=None, description="Label names")

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v: str | None) -> str | None:
        if v is not None:
            date.fromisoformat(v)
        return v

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v: str | None) -> str | None:
        if v is not None:
            _parse_duration(v)
        return v

    def _common_body(self) -> dict:
        body: dict = {}
        if self.description is not None:
            body["description"] = self.description
        if self.due is not None:
            body["due_string"] = self.due
        if self.priority is not None:
            body["priority"] = Priority.from_ui(self.priority).value
        if self.deadline is not None:
            body["deadline_date"] = self.deadline
        if self.duration is not None:
            amount, unit = _parse_duration(self.duration)
            body["duration"] = amount
            body["duration_unit"] = unit.value
        if self.labels is not None:
            body["labels"] = self.labels
        return body


class CreateTaskInput(_TaskFieldsInput):
    """Input for creating a new task."""

    content: str = Field(
        ...,
        description="Task name (e.g., 'Buy groceries', 'Review PR #42')",
        min_length=1,
        max_length=500,
    )
    project: Optional[str] = Field(default=None, description="Project name or ID")
    section: Optional[str] = Field(default=None, description="Section name or ID")

    @model_validator(mode="after")
    def duration_needs_due(self) -> "CreateTaskInput":
        if self.duration is not None and self.due is None:
            raise ValueError("A duration requires a due date (--due)")
        return self

    def to_body(self, project_id: str | None = None, section_id: str | None = None) -> dict:
        """Build the JSON body for POST /tasks."""
        body = {"content": self.content}
        if project_id:
            body["project_id"] = project_id
        if section_id:
            body["section_id"] = section_id
        body.update(self._common_body())
        return body


class UpdateTaskInput(_TaskFieldsInput):
    """Input for updating an existing task. Only set fields are sent."""

    task_id: str = Field(..., description="Task ID to update", min_length=1)
    content: Optional[str] = Field(default=None, description="New task name", min_length=1, max_length=500)

    @model_validator(mode="after")
    def require_a_change(self) -> "UpdateTaskInput":
        if not self.to_body():
            raise ValueError("Nothing to update: pass at least one field to change")
        return self

    def to_body(self) -> dict:
        body: dict = {}
        if self.content is not None:
            body["content"] = self.content
        body.update(self._common_body())
        return body


# ---------------------------------------------------------------------------
# Project, section, label and comment command models
# ---------------------------------------------------------------------------

class CreateProjectInput(BaseModel):
    """Input for creating a project."""
    model_config = _STRICT_CONFIG

    name: str = Field(..., description="Project name", min_length=1, max_length=120)
    parent: Optional[str] = Field(default=None, description="Parent project name or ID")
    color: Optional[str] = Field(default=None, description="Color name (e.g., 'berry_red')")
    favorite: bool = False

    def to_body(self, parent_id: str | None = None) -> dict:
        """Build the JSON body for POST /projects."""
        body: dict = {"name": self.name}
        if parent_id:
            body["parent_id"] = parent_id
        if self.color is not None:
            body["color"] = self.color
        if self.favorite:
            body["is_favorite"] = True
        return body


class CreateSectionInput(BaseModel):
    """Input for creating a section inside a project."""
    model_config = _STRICT_CONFIG

    name: str = Field(..., description="Section name", min_length=1, max_length=120)
    project: str = Field(..., description="Project name or ID", min_length=1)
    order: Optional[int] = Field(default=None, ge=0)

    def to_body(self, project_id: str) -> dict:
        body: dict = {"name": self.name, "project_id": project_id}
        if self.order is not None:
            body["order"] = self.order
        return body


class CreateLabelInput(BaseModel):
    """Input for creating a personal label."""
    model_config = _STRICT_CONFIG

    name: str = Field(..., description="Label name", min_length=1, max_length=60)
    color: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)
    favorite: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if " " in v or v.startswith("@"):
            raise ValueError(f"Label names cannot contain spaces or start with '@', got: {v}")
        return v

    def to_body(self) -> dict:
        body: dict = {"name": self.name}
        if self.color is not None:
            body["color"] = self.color
        if self.order is not None:
            body["order"] = self.order
        if self.favorite:
            body["is_favorite"] = True
        return body


class CreateCommentInput(BaseModel):
    """Input for commenting on a task or a project (exactly one)."""
    model_config = _STRICT_CONFIG

    content: str = Field(..., description="Comment text, markdown allowed", min_length=1)
    task_id: Optional[str] = Field(default=None, min_length=1)
    project: Optional[str] = Field(default=None, description="Project name or ID", min_length=1)

    @model_validator(mode="after")
    def one_thread(self) -> "CreateCommentInput":
        if (self.task_id is None) == (self.project is None):
            raise ValueError("A comment needs either a task ID or --project, not both")
        return self

    def to_body(self, project_id: str | None = None) -> dict:
        """Build the JSON body for POST /comments."""
        body: dict = {"content": self.content}
        if self.task_id is not None:
            body["task_id"] = self.task_id
        else:
            body["project_id"] = project_id
        return body


# ---------------------------------------------------------------------------
# Completed tasks
# ---------------------------------------------------------------------------

_RANGE_FLAGS = ("today", "yesterday", "this_week", "last_week", "this_month")

# API limits on the width of a completed-tasks query.
MAX_WEEKS_BY_COMPLETION = 12
MAX_WEEKS_BY_DUE_DATE = 6


def _day_bounds(start: date, end: date) -> tuple[str, str]:
    return f"{start.isoformat()}T00:00:00Z", f"{end.isoformat()}T23:59:59Z"


def _parse_range_bound(value: str) -> date:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid date format: '{value}'. Use YYYY-MM-DD or ISO 8601")
    return parsed.date()


class CompletedTasksInput(BaseModel):
    """Input for listing completed tasks in a date range."""
    model_config = _STRICT_CONFIG

    since: Optional[str] = Field(default=None, description="Start date (YYYY-MM-DD or ISO 8601)")
    until: Optional[str] = Field(default=None, description="End date (YYYY-MM-DD or ISO 8601)")
    today: bool = False
    yesterday: bool = False
    this_week: bool = False
    last_week: bool = False
    this_month: bool = False
    project: Optional[str] = None
    section: Optional[str] = None
    filter: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=200, description="Results per page")
    by_due_date: bool = Field(
        default=False,
        description="Query by due date (up to 6 weeks) instead of completion date (up to 3 months)",
    )
    group_by: Optional[GroupBy] = None
    show_id: bool = False

    @model_validator(mode="after")
    def check_range_options(self) -> "CompletedTasksInput":
        flags = [name for name in _RANGE_FLAGS if getattr(self, name)]
        explicit = self.since is not None or self.until is not None
        if len(flags) > 1 or (flags and explicit):
            chosen = flags + (["since/until"] if explicit else [])
            raise ValueError(f"Only one date range option may be used, got: {', '.join(chosen)}")
        if (self.since is None) != (self.until is None):
            raise ValueError("--since and --until must be given together")
        return self

    def date_range(self, today: date) -> tuple[str, str]:
        """Resolve the requested range into (since, until) API strings.

        Defaults to today when nothing was requested. Raises ValueError if
        the range is inverted or wider than the API allows.
        """
        if self.yesterday:
            day = today - timedelta(days=1)
            since, until = _day_bounds(day, day)
        elif self.this_week:
            monday = today - timedelta(days=today.weekday())
            since, until = _day_bounds(monday, today)
        elif self.last_week:
            last_sunday = today - timedelta(days=today.weekday() + 1)
            since, until = _day_bounds(last_sunday - timedelta(days=6), last_sunday)
        elif self.this_month:
            since, until = _day_bounds(today.replace(day=1), today)
        elif self.since is not None and self.until is not None:
            since, until = self.since, self.until
        else:
            since, until = _day_bounds(today, today)

        start, end = _parse_range_bound(since), _parse_range_bound(until)
        if end < start:
            raise ValueError("'until' date must be after 'since' date")
        max_weeks = MAX_WEEKS_BY_DUE_DATE if self.by_due_date else MAX_WEEKS_BY_COMPLETION
        if (end - start).days // 7 > max_weeks:
            limit = "6 weeks" if self.by_due_date else "3 months"
            raise ValueError(f"Date range exceeds {limit} maximum (API limitation)")
        return since, until
