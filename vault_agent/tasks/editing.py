"""Line-level editing of task lines inside a note.

Pure functions: they take note text and return new note text. The tool
layer is responsible for the single read and single write around them.
"""

from datetime import date

from vault_agent.dependencies import VaultNotFoundError, VaultValidationError
from vault_agent.markdown.notes import frontmatter_end_line
from vault_agent.markdown.tokenizer import HEADING_PATTERN
from vault_agent.tasks.grammar import PROJECT_PATTERN, format_task_line, parse_iso_date, parse_tasks
from vault_agent.tasks.models import Task, TaskCreateParams, TaskUpdateParams

# =============================================================================
# Helper Functions
# =============================================================================


def validate_date(value: str, field_name: str) -> str:
    """Ensure a date is a real calendar date in YYYY-MM-DD form.

    Raises:
        VaultValidationError: If the value is malformed
    """
    if parse_iso_date(value) is None:
        raise VaultValidationError(f"Invalid {field_name} '{value}': expected YYYY-MM-DD")
    return value


def project_tag(project: str) -> str:
    """Turn a project name into its tag ('acme' -> 'project/acme').

    Examples:
        >>> project_tag("acme")
        'project/acme'
        >>> project_tag("#project/acme")
        'project/acme'
    """
    project = project.strip().lstrip("#")
    if PROJECT_PATTERN.match(project):
        return project
    return f"project/{project.replace(' ', '-')}"


def find_section(lines: list[str], section: str) -> tuple[int, int] | None:
    """Locate a heading by text (case-insensitive).

    Returns:
        (heading index, section end index) where the section ends before
        the next heading of the same or higher level, or None
    """
    wanted = section.strip().lstrip("#").strip().lower()
    for i, line in enumerate(lines):
        m = HEADING_PATTERN.match(line)
        if not m or m.group(2).strip().lower() != wanted:
            continue
        level = len(m.group(1))
        end = len(lines)
        for j in range(i + 1, len(lines)):
            nxt = HEADING_PATTERN.match(lines[j])
            if nxt and len(nxt.group(1)) <= level:
                end = j
                break
        return i, end
    return None


def _trim_blank_tail(lines: list[str], start: int, end: int) -> int:
    while end > start and not lines[end - 1].strip():
        end -= 1
    return end


# =============================================================================
# Creation
# =============================================================================


def build_new_task(params: TaskCreateParams) -> Task:
    """Build the Task described by creation parameters."""
    for field_name in ("due_date", "scheduled_date", "start_date"):
        if value := getattr(params, field_name):
            validate_date(value, field_name)

    tags = list(params.tags)
    project = None
    if params.project:
        project = project_tag(params.project)
        tags = [project] + [t for t in tags if t != project]

    return Task(
        text=params.text.strip(),
        status=params.status,
        file_path=params.file_path,
        indent_level=params.indent_level * 2,
        list_marker=params.list_style,
        priority=params.priority,
        due_date=params.due_date,
        scheduled_date=params.scheduled_date,
        start_date=params.start_date,
        recurrence=params.recurrence,
        tags=tags,
        project=project,
    )


def insert_task(content: str, task_line: str, params: TaskCreateParams) -> tuple[str, int]:
    """Insert a rendered task line into note content.

    Args:
        content: Current note content ('' for a new note)
        task_line: Fully rendered task line
        params: Creation parameters (insert_at, section)

    Returns:
        (new content, 1-based line number of the inserted task)

    Raises:
        VaultValidationError: If after_heading is requested without a section
        VaultNotFoundError: If the section heading does not exist
    """
    if params.insert_at == "after_heading" and not params.section:
        raise VaultValidationError("'section' required when insert_at is after_heading")

    if not content:
        return f"{task_line}\n", 1

    lines = content.split("\n")

    if params.section:
        found = find_section(lines, params.section)
        if found is None:
            raise VaultNotFoundError(f"Heading not found: {params.section}")
        heading_index, section_end = found
        if params.insert_at == "after_heading":
            index = heading_index + 1
        else:
            index = _trim_blank_tail(lines, heading_index + 1, section_end)
    elif params.insert_at == "top":
        index = frontmatter_end_line(lines)
    else:
        # Keep the trailing newline as the last line
        index = len(lines) - 1 if lines[-1] == "" else len(lines)

    lines.insert(index, task_line)
    return "\n".join(lines), index + 1


# =============================================================================
# Update
# =============================================================================


def locate_task(
    content: str,
    file_path: str,
    today: date,
    line_number: int | None = None,
    task_text: str | None = None,
    exact_match: bool = False,
) -> Task:
    """Find the task to update by line number or by its text.

    Raises:
        VaultValidationError: If neither locator is given
        VaultNotFoundError: If no task matches
    """
    tasks = parse_tasks(content, file_path, today)

    if line_number is not None:
        for task in tasks:
            if task.line_number == line_number:
                return task
        raise VaultNotFoundError(f"No task on line {line_number} of {file_path}")

    if not task_text:
        raise VaultValidationError("'line_number' or 'task_text' required to locate a task")

    needle = task_text.strip()
    for task in tasks:
        if exact_match:
            if needle in (task.text, task.raw_text):
                return task
        elif needle.lower() in task.raw_text.lower():
            return task
    raise VaultNotFoundError(f"No task matching '{task_text}' in {file_path}")


def apply_task_update(task: Task, params: TaskUpdateParams, today: date) -> Task:
    """Return a copy of the task with one update operation applied.

    Raises:
        VaultValidationError: If the operation's value is missing or malformed
    """
    updated = task.model_copy(deep=True)
    op = params.operation

    if op == "toggle_status":
        if updated.status == "completed":
            updated.status = "incomplete"
            updated.completion_date = None
        else:
            updated.status = "completed"

    elif op == "set_status":
        if not params.status:
            raise VaultValidationError("'status' required for set_status")
        updated.status = params.status
        if params.status != "completed":
            updated.completion_date = None

    elif op == "update_text":
        if not params.text or not params.text.strip():
            raise VaultValidationError("'text' required for update_text")
        updated.text = params.text.strip()

    elif op == "set_priority":
        if not params.priority:
            raise VaultValidationError("'priority' required for set_priority")
        updated.priority = None if params.priority == "none" else params.priority

    elif op in ("set_due_date", "set_scheduled_date", "set_start_date"):
        field_name = op.removeprefix("set_")
        if params.date is None:
            raise VaultValidationError(f"'date' required for {op}")
        value = params.date.strip()
        setattr(updated, field_name, validate_date(value, field_name) if value else None)

    elif op == "add_tags":
        if not params.tags:
            raise VaultValidationError("'tags' required for add_tags")
        updated.tags.extend(t for t in params.tags if t not in updated.tags)

    elif op == "remove_tags":
        if not params.tags:
            raise VaultValidationError("'tags' required for remove_tags")
        removed = {t.lower() for t in params.tags}
        updated.tags = [t for t in updated.tags if t.lower() not in removed]
        if updated.project and updated.project.lower() in removed:
            updated.project = None

    elif op == "set_project":
        if params.project is None:
            raise VaultValidationError("'project' required for set_project")
        updated.tags = [t for t in updated.tags if not PROJECT_PATTERN.match(t)]
        updated.project = project_tag(params.project) if params.project.strip() else None
        if updated.project:
            updated.tags.insert(0, updated.project)

    elif op == "set_recurrence":
        if params.recurrence is None:
            raise VaultValidationError("'recurrence' required for set_recurrence")
        updated.recurrence = params.recurrence.strip() or None

    elif op == "complete_task":
        updated.status = "completed"
        updated.completion_date = today.isoformat()

    else:
        raise VaultValidationError(f"Unknown update operation: {op}")

    return updated


def replace_task_line(content: str, task: Task) -> tuple[str, str, str]:
    """Rewrite the line a task occupies, keeping its original indentation.

    Returns:
        (new content, previous line, new line)
    """
    lines = content.split("\n")
    index = task.line_number - 1
    previous = lines[index]
    leading = previous[: len(previous) - len(previous.lstrip())]
    new_line = format_task_line(task, leading=leading)
    if previous.endswith("\r"):
        new_line += "\r"
    lines[index] = new_line
    return "\n".join(lines), previous, new_line
