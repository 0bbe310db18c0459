"""Task filtering, sorting and output formatting.

Filters run in a fixed order (status, date range, priority, tags), then
tasks are sorted and the limit is applied last. Formatters are pure
projections of the already filtered, sorted and limited tasks plus the
precomputed summary; they never change which tasks are returned.
"""

from collections.abc import Callable
from datetime import date, timedelta
from functools import cmp_to_key

from vault_agent.tasks.grammar import PRIORITY_ORDER, parse_iso_date
from vault_agent.tasks.models import (
    DateRange,
    Task,
    TaskQueryParams,
    TaskQueryResult,
    TaskSummary,
)

STATUS_ICONS = {
    "completed": "✅",
    "in-progress": "🔄",
    "cancelled": "❌",
    "deferred": "📤",
    "scheduled": "⏰",
}
DEFAULT_STATUS_ICON = "⏳"

# Completed tasks are never overdue
DONE_STATUS = "completed"


# =============================================================================
# Helper Functions
# =============================================================================


def task_date(task: Task) -> date | None:
    """Pick the date a task is filed under for range filtering.

    Completed tasks use their completion date, scheduled tasks their
    scheduled date; otherwise due, start and created dates are tried in
    that order.
    """
    if task.status == "completed" and task.completion_date:
        return parse_iso_date(task.completion_date)
    if task.status == "scheduled" and task.scheduled_date:
        return parse_iso_date(task.scheduled_date)
    for value in (task.due_date, task.start_date, task.created_date):
        if value:
            return parse_iso_date(value)
    return None


def week_start(day: date) -> date:
    """Sunday on or before the given day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _shift_month(day: date, months: int) -> tuple[int, int]:
    index = day.year * 12 + (day.month - 1) + months
    return index // 12, index % 12 + 1


def date_range_predicate(date_range: DateRange, today: date) -> Callable[[date], bool]:
    """Build a predicate testing whether a date falls in a named range."""
    start = week_start(today)
    if date_range == "today":
        return lambda d: d == today
    if date_range == "yesterday":
        return lambda d: d == today - timedelta(days=1)
    if date_range == "tomorrow":
        return lambda d: d == today + timedelta(days=1)
    if date_range == "this-week":
        return lambda d: start <= d <= start + timedelta(days=6)
    if date_range == "next-week":
        return lambda d: start + timedelta(days=7) <= d <= start + timedelta(days=13)
    if date_range == "last-week":
        return lambda d: start - timedelta(days=7) <= d <= start - timedelta(days=1)
    if date_range in ("this-month", "next-month", "last-month"):
        offset = {"this-month": 0, "next-month": 1, "last-month": -1}[date_range]
        year, month = _shift_month(today, offset)
        return lambda d: (d.year, d.month) == (year, month)
    if date_range == "overdue":
        return lambda d: d < today
    if date_range == "upcoming":
        return lambda d: today < d <= today + timedelta(days=7)
    return lambda d: True


def todays_file_patterns(today: date) -> list[str]:
    """Date spellings that mark a daily note for today."""
    return [
        today.isoformat(),
        today.strftime("%Y%m%d"),
        f"{today.day}-{today.month}-{today.year}",
        f"{today.month}/{today.day}/{today.year}",
    ]


def is_overdue(task: Task, today: date) -> bool:
    """Task not yet completed whose due date is before today."""
    if task.status == DONE_STATUS:
        return False
    due = parse_iso_date(task.due_date)
    return due is not None and due < today


def _normalize_tag(tag: str) -> str:
    return tag.lstrip("#").lower()


# =============================================================================
# Filtering and Sorting
# =============================================================================


def filter_by_status(tasks: list[Task], status: str) -> list[Task]:
    if status == "all":
        return tasks
    return [t for t in tasks if t.status == status]


def filter_by_date_range(tasks: list[Task], date_range: DateRange, today: date) -> list[Task]:
    """Keep tasks whose filing date falls in the range.

    Tasks with no usable date are dropped for every range except
    all-time. For today/yesterday/tomorrow, tasks living in today's daily
    note are kept regardless of their dates.
    """
    if date_range == "all-time":
        return tasks

    predicate = date_range_predicate(date_range, today)
    daily_patterns = (
        todays_file_patterns(today) if date_range in ("today", "yesterday", "tomorrow") else []
    )

    kept = []
    for task in tasks:
        if daily_patterns and any(p in task.file_path for p in daily_patterns):
            kept.append(task)
            continue
        if date_range == "overdue" and task.status == DONE_STATUS:
            continue
        filed_under = task_date(task)
        if filed_under is not None and predicate(filed_under):
            kept.append(task)
    return kept


def filter_by_priority(tasks: list[Task], priority: str) -> list[Task]:
    if priority == "all":
        return tasks
    return [t for t in tasks if t.priority == priority]


def filter_by_tags(tasks: list[Task], tags: list[str] | None) -> list[Task]:
    """Keep tasks carrying ANY of the requested tags (case-insensitive, '#' optional)."""
    if not tags:
        return tasks
    wanted = {_normalize_tag(t) for t in tags}
    return [t for t in tasks if wanted.intersection(_normalize_tag(tag) for tag in t.tags)]


def _compare_tasks(a: Task, b: Task) -> int:
    if a.urgency is not None and b.urgency is not None and a.urgency != b.urgency:
        return b.urgency - a.urgency

    if a.due_date and b.due_date and a.due_date != b.due_date:
        return -1 if a.due_date < b.due_date else 1

    priority_a = PRIORITY_ORDER.get(a.priority, 0) if a.priority else 0
    priority_b = PRIORITY_ORDER.get(b.priority, 0) if b.priority else 0
    if priority_a != priority_b:
        return priority_b - priority_a

    if a.file_path != b.file_path:
        return -1 if a.file_path < b.file_path else 1
    return a.line_number - b.line_number


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Sort by urgency desc, due date asc, priority desc, then path and line.

    Urgency and due date only take part when both tasks have them.
    """
    return sorted(tasks, key=cmp_to_key(_compare_tasks))


def summarize_tasks(tasks: list[Task], today: date, files_searched: int, truncated: bool) -> TaskSummary:
    """Count tasks by status and special category."""
    return TaskSummary(
        total=len(tasks),
        incomplete=sum(1 for t in tasks if t.status == "incomplete"),
        completed=sum(1 for t in tasks if t.status == "completed"),
        in_progress=sum(1 for t in tasks if t.status == "in-progress"),
        cancelled=sum(1 for t in tasks if t.status == "cancelled"),
        deferred=sum(1 for t in tasks if t.status == "deferred"),
        scheduled=sum(1 for t in tasks if t.status == "scheduled"),
        overdue=sum(1 for t in tasks if is_overdue(t, today)),
        high_priority=sum(1 for t in tasks if t.priority in ("highest", "high")),
        files_searched=files_searched,
        truncated=truncated,
    )


def apply_task_query(
    tasks: list[Task],
    params: TaskQueryParams,
    today: date,
    files_searched: int = 0,
    truncated: bool = False,
) -> TaskQueryResult:
    """Run the full filter, sort and limit pipeline over parsed tasks.

    Args:
        tasks: Every task found in the scanned notes
        params: Query filters, format and limit
        today: Reference date for date ranges
        files_searched: Notes actually read, reported in the summary
        truncated: Whether the underlying scan was cut short

    Returns:
        TaskQueryResult with limited tasks and a summary of all matches
    """
    matched = filter_by_status(tasks, params.status)
    matched = filter_by_date_range(matched, params.date_range, today)
    matched = filter_by_priority(matched, params.priority)
    matched = filter_by_tags(matched, params.tags)
    ordered = sort_tasks(matched)

    return TaskQueryResult(
        tasks=ordered[: params.limit],
        summary=summarize_tasks(ordered, today, files_searched, truncated),
        query=params,
    )


# =============================================================================
# Formatting Functions
# =============================================================================


def status_icon(task: Task) -> str:
    return STATUS_ICONS.get(task.status, DEFAULT_STATUS_ICON)


def _file_name(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def format_task_table(tasks: list[Task]) -> str:
    """Render tasks as a markdown table."""
    if not tasks:
        return "No tasks found."

    lines = [
        "| Status | Task | File | Priority | Due Date | Tags |",
        "|--------|------|------|----------|----------|------|",
    ]
    for task in tasks:
        text = task.text[:50] + ("..." if len(task.text) > 50 else "")
        tags = ", ".join(task.tags[:3]) if task.tags else "-"
        lines.append(
            f"| {status_icon(task)} | {text} | {_file_name(task.file_path)} | "
            f"{task.priority or '-'} | {task.due_date or '-'} | {tags} |"
        )
    return "\n".join(lines)


def format_task_list(tasks: list[Task]) -> str:
    """Render tasks as one line each with location."""
    if not tasks:
        return "No tasks found."

    lines = []
    for task in tasks:
        parts = [status_icon(task), task.text]
        if task.priority:
            parts.append(f"[{task.priority}]")
        if task.due_date:
            parts.append(f"📅 {task.due_date}")
        if task.tags:
            parts.append(" ".join(f"#{tag}" for tag in task.tags))
        parts.append(f"({task.file_path}:{task.line_number})")
        lines.append(" ".join(parts))
    return "\n".join(lines)


def format_task_summary(tasks: list[Task], summary: TaskSummary) -> str:
    """Render the counts plus a handful of sample tasks."""
    lines = [
        "## Task Summary",
        "",
        f"**Total Tasks**: {summary.total}",
        f"- ⏳ Incomplete: {summary.incomplete}",
        f"- ✅ Completed: {summary.completed}",
        f"- 🔄 In Progress: {summary.in_progress}",
        f"- ❌ Cancelled: {summary.cancelled}",
        f"- 📤 Deferred: {summary.deferred}",
        f"- ⏰ Scheduled: {summary.scheduled}",
        "",
        "**Special Categories**:",
        f"- 🚨 Overdue: {summary.overdue}",
        f"- 🔴 High Priority: {summary.high_priority}",
        "",
        f"**Files Searched**: {summary.files_searched}",
    ]
    if tasks:
        lines.extend(["", "**Sample Tasks**:"])
        for task in tasks[:5]:
            due = f" (due {task.due_date})" if task.due_date else ""
            lines.append(f"- {status_icon(task)} {task.text}{due}")
    return "\n".join(lines)


def format_task_results(result: TaskQueryResult) -> str:
    """Format a task query result in the requested presentation."""
    if result.query.format == "summary":
        output = format_task_summary(result.tasks, result.summary)
    elif result.query.format == "table":
        output = format_task_table(result.tasks)
    else:
        output = format_task_list(result.tasks)

    if result.query.format != "summary":
        shown = len(result.tasks)
        footer = (
            f"Showing {shown} of {result.summary.total} task(s) "
            f"from {result.summary.files_searched} file(s) searched"
        )
        output = f"{output}\n\n{footer}"
    if result.summary.truncated:
        output += "\n(Scan limit reached: results may be incomplete)"
    return output
