"""Pydantic models for task queries and task mutation.

This module defines the Task entity parsed from the Obsidian Tasks
micro-syntax, the parameter models accepted by the task_query and
task_management tools, and the result envelopes they return.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

TaskStatus = Literal["incomplete", "completed", "in-progress", "cancelled", "deferred", "scheduled"]
Priority = Literal["highest", "high", "medium", "low", "lowest"]
DateRange = Literal[
    "today",
    "yesterday",
    "tomorrow",
    "this-week",
    "next-week",
    "last-week",
    "this-month",
    "next-month",
    "last-month",
    "overdue",
    "upcoming",
    "all-time",
]
OutputFormat = Literal["list", "table", "summary"]

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class Task(BaseModel):
    """One checklist line in a note.

    Built fresh from note text on every query; never persisted.

    Attributes:
        text: Description with all metadata tokens stripped
        raw_text: Trailing text exactly as written after the checkbox
        status: Status derived from the checkbox character
        file_path: Note the task lives in
        line_number: 1-based line the task occupied at read time
        indent_level: Width of leading whitespace
        list_marker: '-', '*', '+' or 'N.'
        priority: Priority from the first matching glyph category
        due_date: 📅 date (YYYY-MM-DD)
        scheduled_date: ⏳ date
        start_date: 🛫 date
        completion_date: ✅ date
        created_date: ➕ date
        recurrence: 🔁 rule text
        tags: Tags without '#', in order of appearance
        project: The project tag ('project' or 'project/<name>')
        urgency: Priority weight plus due-date proximity bonus
        parent_task: Text of the enclosing task, if any
        subtasks: Tasks nested directly beneath this one
    """

    text: str
    raw_text: str = ""
    status: TaskStatus = "incomplete"
    file_path: str = ""
    line_number: int = Field(default=1, ge=1)
    indent_level: int = Field(default=0, ge=0)
    list_marker: str = "-"
    priority: Priority | None = None
    due_date: str | None = None
    scheduled_date: str | None = None
    start_date: str | None = None
    completion_date: str | None = None
    created_date: str | None = None
    recurrence: str | None = None
    tags: list[str] = Field(default_factory=list)
    project: str | None = None
    urgency: int | None = None
    parent_task: str | None = None
    subtasks: list["Task"] = Field(default_factory=list)


class TaskQueryParams(BaseModel):
    """Filters, format and limit for a task query."""

    status: TaskStatus | Literal["all"] = "all"
    date_range: DateRange = "all-time"
    folder: str | None = Field(default=None, description="Folder prefix to search")
    tags: list[str] | None = Field(default=None, description="Match tasks with ANY of these")
    priority: Priority | Literal["all"] = "all"
    format: OutputFormat = "list"
    limit: int = Field(default=100, ge=1, le=500)


class TaskSummary(BaseModel):
    """Aggregate counts over the filtered task set (before the limit).

    Attributes:
        total: Tasks matching every filter
        incomplete/completed/in_progress/cancelled/deferred/scheduled: Per-status counts
        overdue: Tasks not completed whose due date is before today
        high_priority: Tasks with highest or high priority
        files_searched: Notes actually read
        truncated: True when the scan hit its file cap or time budget
    """

    total: int = 0
    incomplete: int = 0
    completed: int = 0
    in_progress: int = 0
    cancelled: int = 0
    deferred: int = 0
    scheduled: int = 0
    overdue: int = 0
    high_priority: int = 0
    files_searched: int = 0
    truncated: bool = False


class TaskQueryResult(BaseModel):
    """Tasks returned by a query, after filtering, sorting and limiting."""

    tasks: list[Task] = Field(default_factory=list)
    summary: TaskSummary = Field(default_factory=TaskSummary)
    query: TaskQueryParams = Field(default_factory=TaskQueryParams)


class TaskCreateParams(BaseModel):
    """Parameters for inserting a new task line into a note."""

    file_path: str
    text: str = Field(..., min_length=1)
    status: TaskStatus = "incomplete"
    priority: Priority | None = None
    due_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    scheduled_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    start_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    recurrence: str | None = None
    project: str | None = None
    tags: list[str] = Field(default_factory=list)
    insert_at: Literal["top", "bottom", "after_heading"] = "bottom"
    section: str | None = Field(default=None, description="Heading to place the task under")
    indent_level: int = Field(default=0, ge=0, le=6)
    list_style: Literal["-", "*", "1."] = "-"

    @field_validator("tags", mode="before")
    @classmethod
    def strip_hashes(cls, v: list[str] | None) -> list[str]:
        """Accept tags with or without a leading '#'."""
        return [t.lstrip("#") for t in (v or []) if t.strip("# ")]


UpdateOperation = Literal[
    "toggle_status",
    "set_status",
    "update_text",
    "set_priority",
    "set_due_date",
    "set_scheduled_date",
    "set_start_date",
    "add_tags",
    "remove_tags",
    "set_project",
    "set_recurrence",
    "complete_task",
]


class TaskUpdateParams(BaseModel):
    """Parameters for modifying one existing task line.

    The task is located by `line_number` when given, otherwise by
    `task_text` (substring match, or equality with `exact_match`).
    Clearing a field is done by passing an empty string where the
    operation takes one (e.g. set_due_date with value "").
    """

    file_path: str
    operation: UpdateOperation
    line_number: int | None = Field(default=None, ge=1)
    task_text: str | None = None
    exact_match: bool = False
    status: TaskStatus | None = None
    text: str | None = None
    priority: Priority | Literal["none"] | None = None
    date: str | None = None
    tags: list[str] = Field(default_factory=list)
    project: str | None = None
    recurrence: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def strip_hashes(cls, v: list[str] | None) -> list[str]:
        """Accept tags with or without a leading '#'."""
        return [t.lstrip("#") for t in (v or []) if t.strip("# ")]


class TaskChange(BaseModel):
    """Outcome of a task mutation: the line before and after."""

    file_path: str
    line_number: int
    operation: str
    previous_line: str = ""
    new_line: str
    task: Task
