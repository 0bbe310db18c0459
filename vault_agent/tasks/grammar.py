"""Task model resolver for the Obsidian Tasks micro-syntax.

A task line looks like:

    - [ ] Call client 🔴 📅 2024-06-20 🔁 every week #work #project/acme

The checkbox character maps to a status through STATUS_TABLE. The
trailing text carries metadata glyphs declared below as explicit ordered
tables: priority categories are checked top to bottom and the first
category with any glyph present wins, and for each date kind only the
first occurrence is honoured. Whatever is left once metadata and tags
are removed becomes the task description.

`format_task_line` writes a task back using the same tables, so a
formatted line re-parses to the same status, priority and dates.
"""

import re
from datetime import date

from vault_agent.markdown.models import Token
from vault_agent.markdown.tokenizer import TASK_PATTERN, tokenize
from vault_agent.tasks.models import Priority, Task, TaskStatus

# =============================================================================
# Grammar Tables
# =============================================================================

STATUS_TABLE: dict[str, TaskStatus] = {
    " ": "incomplete",
    "x": "completed",
    "X": "completed",
    "/": "in-progress",
    "\\": "in-progress",
    "-": "cancelled",
    ">": "deferred",
    "<": "scheduled",
}

STATUS_CHARS: dict[TaskStatus, str] = {
    "incomplete": " ",
    "completed": "x",
    "in-progress": "/",
    "cancelled": "-",
    "deferred": ">",
    "scheduled": "<",
}

# Checked in order; first category with a glyph in the text wins.
PRIORITY_GLYPHS: list[tuple[Priority, tuple[str, ...]]] = [
    ("highest", ("🔺", "⏫")),
    ("high", ("🔴", "‼️", "❗", "🅘", "🚨", "⬆️")),
    ("medium", ("🟡", "🟠", "➡️", "◀️", "▶️")),
    ("low", ("🔵", "🟢", "⬇️", "🔽")),
    ("lowest", ("🔻", "⏬")),
]

# Glyph written for each priority by format_task_line
PRIORITY_WRITER: dict[Priority, str] = {
    "highest": "🔺",
    "high": "🔴",
    "medium": "🟡",
    "low": "🟢",
    "lowest": "🔻",
}

PRIORITY_WEIGHTS: dict[Priority, int] = {
    "highest": 10,
    "high": 8,
    "medium": 5,
    "low": 3,
    "lowest": 1,
}

PRIORITY_ORDER: dict[Priority, int] = {
    "highest": 5,
    "high": 4,
    "medium": 3,
    "low": 2,
    "lowest": 1,
}

# Task field -> glyph, in the order format_task_line writes them
DATE_GLYPHS: list[tuple[str, str]] = [
    ("due_date", "📅"),
    ("scheduled_date", "⏳"),
    ("start_date", "🛫"),
    ("created_date", "➕"),
    ("completion_date", "✅"),
]

RECURRENCE_GLYPH = "🔁"

_VS16 = "\ufe0f"


def _glyph_regex(glyph: str) -> str:
    # Emoji presentation selector is optional when reading
    return re.escape(glyph.removesuffix(_VS16)) + f"{_VS16}?"


_PRIORITY_PATTERNS: list[tuple[Priority, re.Pattern[str]]] = [
    (name, re.compile("|".join(_glyph_regex(g) for g in glyphs))) for name, glyphs in PRIORITY_GLYPHS
]
_ANY_PRIORITY_PATTERN = re.compile(
    "|".join(_glyph_regex(g) for _, glyphs in PRIORITY_GLYPHS for g in glyphs)
)
_DATE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (field_name, re.compile(_glyph_regex(glyph) + r"\s*(\d{4}-\d{2}-\d{2})"))
    for field_name, glyph in DATE_GLYPHS
]
_DATE_GLYPH_CLASS = "".join(glyph for _, glyph in DATE_GLYPHS)
# Recurrence text ends at a date glyph, a priority glyph or a tag
RECURRENCE_PATTERN = re.compile(
    _glyph_regex(RECURRENCE_GLYPH)
    + rf"\s*((?:(?!{_ANY_PRIORITY_PATTERN.pattern})[^{_DATE_GLYPH_CLASS}#])*)"
)
TAG_IN_TASK_PATTERN = re.compile(r"(?<![\w/#&])#([\w/-]+)")
PROJECT_PATTERN = re.compile(r"^project(?:/[\w-]+)?$", re.IGNORECASE)
_SPACES = re.compile(r"\s{2,}")


# =============================================================================
# Resolution
# =============================================================================


def classify_status(char: str) -> TaskStatus:
    """Map a checkbox character to a status; unknown characters are incomplete."""
    return STATUS_TABLE.get(char, "incomplete")


def match_priority(text: str) -> Priority | None:
    """Return the first priority category with a glyph present in text."""
    for name, pattern in _PRIORITY_PATTERNS:
        if pattern.search(text):
            return name
    return None


def calculate_urgency(priority: Priority | None, due_date: str | None, today: date) -> int | None:
    """Urgency score, only when both priority and a valid due date exist.

    Examples:
        >>> calculate_urgency("high", "2024-06-01", date(2024, 6, 10))
        13
    """
    if priority is None or due_date is None:
        return None
    due = parse_iso_date(due_date)
    if due is None:
        return None
    urgency = PRIORITY_WEIGHTS[priority]
    days_until_due = (due - today).days
    if days_until_due < 0:
        urgency += 5
    elif days_until_due <= 1:
        urgency += 3
    elif days_until_due <= 7:
        urgency += 1
    return urgency


def parse_iso_date(value: str | None) -> date | None:
    """Parse a strict YYYY-MM-DD string, returning None when invalid."""
    if not value or not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _strip_metadata(text: str, tags: list[str]) -> str:
    for _, pattern in _DATE_PATTERNS:
        text = pattern.sub(" ", text)
    text = RECURRENCE_PATTERN.sub(" ", text)
    text = _ANY_PRIORITY_PATTERN.sub(" ", text)
    for tag in dict.fromkeys(tags):
        text = re.sub(rf"(?<![\w/#&])#{re.escape(tag)}(?![\w/-])", " ", text)
    return _SPACES.sub(" ", text).strip()


def resolve_task(
    token: Token,
    file_path: str,
    today: date,
    tag_tokens: list[Token] | None = None,
) -> Task:
    """Build a Task from a task token.

    Args:
        token: Token of kind 'task'
        file_path: Note the token came from
        today: Reference date for urgency
        tag_tokens: Inline tag tokens found on the same line; when None
            tags are read straight from the trailing text

    Returns:
        Task without hierarchy links
    """
    trailing = token.value

    if tag_tokens is None:
        tags = TAG_IN_TASK_PATTERN.findall(trailing)
    else:
        tags = [t.value for t in tag_tokens]

    dates: dict[str, str | None] = {}
    for field_name, pattern in _DATE_PATTERNS:
        m = pattern.search(trailing)
        # Impossible calendar dates such as 2024-13-45 are dropped
        dates[field_name] = m.group(1) if m and parse_iso_date(m.group(1)) else None

    recurrence = None
    if m := RECURRENCE_PATTERN.search(trailing):
        recurrence = m.group(1).strip() or None

    priority = match_priority(trailing)
    project = next((t for t in tags if PROJECT_PATTERN.match(t)), None)

    return Task(
        text=_strip_metadata(trailing, tags),
        raw_text=trailing,
        status=classify_status(token.status_char or " "),
        file_path=file_path,
        line_number=token.line,
        indent_level=token.indent,
        list_marker=token.marker or "-",
        priority=priority,
        recurrence=recurrence,
        tags=tags,
        project=project,
        urgency=calculate_urgency(priority, dates["due_date"], today),
        **dates,
    )


def build_task_hierarchy(tasks: list[Task]) -> list[Task]:
    """Link tasks into parent/child trees by indentation.

    A task becomes a child of the nearest preceding task with strictly
    smaller indent that is still open on the stack.

    Args:
        tasks: Tasks in document order

    Returns:
        Root tasks (those without a parent)
    """
    stack: list[Task] = []
    roots: list[Task] = []
    for task in tasks:
        while stack and stack[-1].indent_level >= task.indent_level:
            stack.pop()
        if stack:
            parent = stack[-1]
            parent.subtasks.append(task)
            task.parent_task = parent.text
        else:
            roots.append(task)
        stack.append(task)
    return roots


def parse_tasks(
    text: str,
    file_path: str,
    today: date,
    tokens: list[Token] | None = None,
) -> list[Task]:
    """Parse every task in a note, in document order, with hierarchy attached.

    Args:
        text: Raw note text
        file_path: Note path recorded on each task
        today: Reference date for urgency
        tokens: Pre-computed tokens for the note (tokenized when None)

    Returns:
        Flat list of tasks; children are also reachable via `subtasks`
    """
    if tokens is None:
        tokens = tokenize(text)
    tags_by_line: dict[int, list[Token]] = {}
    for token in tokens:
        if token.kind == "tag":
            tags_by_line.setdefault(token.line, []).append(token)

    tasks = [
        resolve_task(token, file_path, today, tags_by_line.get(token.line, []))
        for token in tokens
        if token.kind == "task"
    ]
    build_task_hierarchy(tasks)
    return tasks


def parse_task(line: str, file_path: str = "", line_number: int = 1, today: date | None = None) -> Task | None:
    """Parse a single line as a task.

    Examples:
        >>> parse_task("- [ ] Buy milk").text
        'Buy milk'
        >>> parse_task("Just a sentence") is None
        True
    """
    if not TASK_PATTERN.match(line):
        return None
    tokens = tokenize(line)
    task_token = tokens[0]
    task_token.line = line_number
    tags = [t for t in tokens if t.kind == "tag"]
    return resolve_task(task_token, file_path, today or date.today(), tags)


# =============================================================================
# Writing
# =============================================================================


def format_task_text(task: Task) -> str:
    """Render the part of a task line after the checkbox."""
    parts: list[str] = []
    if task.priority:
        parts.append(PRIORITY_WRITER[task.priority])
    parts.append(task.text)
    for field_name, glyph in DATE_GLYPHS[:3]:
        if value := getattr(task, field_name):
            parts.append(f"{glyph} {value}")
    if task.recurrence:
        parts.append(f"{RECURRENCE_GLYPH} {task.recurrence}")
    for field_name, glyph in DATE_GLYPHS[3:]:
        if value := getattr(task, field_name):
            parts.append(f"{glyph} {value}")
    tags = list(task.tags)
    if task.project and task.project not in tags:
        tags.insert(0, task.project)
    parts.extend(f"#{tag}" for tag in tags)
    return " ".join(p for p in parts if p)


def format_task_line(task: Task, leading: str | None = None) -> str:
    """Render a task as a full markdown line.

    Args:
        task: Task to render
        leading: Exact leading whitespace to use; defaults to
            `indent_level` spaces

    Returns:
        Line such as '- [x] Call client 📅 2024-06-20 #urgent'
    """
    indent = leading if leading is not None else " " * task.indent_level
    return f"{indent}{task.list_marker} [{STATUS_CHARS[task.status]}] {format_task_text(task)}"
