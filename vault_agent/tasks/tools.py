"""Task tools for the chat agent.

This module implements two tools:

- task_query: read-only search for tasks across the vault, with status,
  date range, priority, tag and folder filters.
- task_management: creates a new task line or updates an existing one.
  Each call performs exactly one write.

Both follow the consolidated pattern used across the agent: the tool
function validates input, delegates to an operation handler that raises
typed VaultErrors, and turns the outcome into text for the LLM.

Example usage by the agent:
    task_query(status="incomplete", date_range="overdue", format="table")
    task_management(operation="create", file_path="Inbox.md", text="Call client",
                    priority="high", due_date="2025-03-01")
    task_management(operation="update", file_path="Inbox.md", line_number=4,
                    update_operation="complete_task")
"""

from datetime import date

from pydantic import ValidationError
from pydantic_ai import RunContext

from vault_agent.dependencies import ChatDependencies, VaultError, logger
from vault_agent.markdown.notes import normalize_path
from vault_agent.scan import scan_vault
from vault_agent.tasks.editing import (
    apply_task_update,
    build_new_task,
    insert_task,
    locate_task,
    replace_task_line,
)
from vault_agent.tasks.grammar import format_task_line, parse_tasks
from vault_agent.tasks.models import (
    Task,
    TaskChange,
    TaskCreateParams,
    TaskQueryParams,
    TaskQueryResult,
    TaskUpdateParams,
)
from vault_agent.tasks.query import apply_task_query, format_task_results

# =============================================================================
# Formatting Functions
# =============================================================================


def format_task_change(change: TaskChange) -> str:
    """Format the outcome of a create or update for the LLM."""
    if change.operation == "create":
        header = f"✅ Created task in {change.file_path} (line {change.line_number})"
    else:
        header = (
            f"✅ Updated task in {change.file_path} "
            f"(line {change.line_number}, {change.operation})"
        )
    lines = [header, ""]
    if change.previous_line:
        lines.append(f"Before: {change.previous_line.strip()}")
        lines.append(f"After:  {change.new_line.strip()}")
    else:
        lines.append(change.new_line.strip())
    return "\n".join(lines)


# =============================================================================
# Operation Handlers
# =============================================================================


async def query_tasks(
    deps: ChatDependencies, params: TaskQueryParams, today: date | None = None
) -> TaskQueryResult:
    """Scan notes for tasks and apply the query pipeline.

    Args:
        deps: Vault access, trace id and scan limits
        params: Filters, format and limit
        today: Reference date (defaults to the current date)

    Returns:
        TaskQueryResult with the matching tasks and summary
    """
    today = today or date.today()
    scan = await scan_vault(
        deps.vault,
        folder=(params.folder or "").strip("/"),
        max_files=deps.limits.task_max_files,
        timeout_seconds=deps.limits.timeout_seconds,
        trace_id=deps.trace_id,
        cache=deps.cache,
    )

    all_tasks: list[Task] = []
    for path in scan.paths:
        try:
            all_tasks.extend(parse_tasks(scan.notes[path], path, today, tokens=scan.tokens(path)))
        except Exception as e:
            logger.debug(
                "task_parse_file_error",
                extra={"path": path, "error": str(e), "trace_id": deps.trace_id},
            )
            continue

    return apply_task_query(
        all_tasks,
        params,
        today,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def create_task(
    deps: ChatDependencies, params: TaskCreateParams, today: date | None = None
) -> TaskChange:
    """Insert a new task into a note, creating the note if needed."""
    path = normalize_path(params.file_path)
    params = params.model_copy(update={"file_path": path})
    task = build_new_task(params)
    line = format_task_line(task)

    content = await deps.vault.read_file(path) if await deps.vault.file_exists(path) else ""
    new_content, line_number = insert_task(content, line, params)
    await deps.vault.write_file(path, new_content)
    if deps.cache is not None:
        deps.cache.invalidate(path)

    created = parse_tasks(new_content, path, today or date.today())
    task = next((t for t in created if t.line_number == line_number), task)
    return TaskChange(
        file_path=path, line_number=line_number, operation="create", new_line=line, task=task
    )


async def update_task(
    deps: ChatDependencies, params: TaskUpdateParams, today: date | None = None
) -> TaskChange:
    """Apply one update operation to an existing task line."""
    today = today or date.today()
    path = normalize_path(params.file_path)
    content = await deps.vault.read_file(path)

    task = locate_task(
        content,
        path,
        today,
        line_number=params.line_number,
        task_text=params.task_text,
        exact_match=params.exact_match,
    )
    updated = apply_task_update(task, params, today)
    new_content, previous, new_line = replace_task_line(content, updated)
    await deps.vault.write_file(path, new_content)
    if deps.cache is not None:
        deps.cache.invalidate(path)

    return TaskChange(
        file_path=path,
        line_number=task.line_number,
        operation=params.operation,
        previous_line=previous,
        new_line=new_line,
        task=updated,
    )


# =============================================================================
# Main Tool Functions
# =============================================================================


async def task_query(
    ctx: RunContext[ChatDependencies],
    status: str = "all",
    date_range: str = "all-time",
    folder: str | None = None,
    tags: list[str] | None = None,
    priority: str = "all",
    format: str = "list",
    limit: int = 100,
) -> str:
    """Find tasks across the vault.

    Args:
        ctx: Context with vault access and trace_id for logging
        status: 'incomplete', 'completed', 'in-progress', 'cancelled',
            'deferred', 'scheduled' or 'all'
        date_range: 'today', 'yesterday', 'tomorrow', 'this-week', 'next-week',
            'last-week', 'this-month', 'next-month', 'last-month', 'overdue',
            'upcoming' or 'all-time'
        folder: Only search notes under this folder
        tags: Keep tasks carrying any of these tags
        priority: 'highest', 'high', 'medium', 'low', 'lowest' or 'all'
        format: 'list', 'table' or 'summary'
        limit: Maximum tasks to return (1-500)

    Returns:
        Formatted tasks or an error message
    """
    logger.info(
        "task_query_called",
        extra={
            "status": status,
            "date_range": date_range,
            "folder": folder,
            "priority": priority,
            "trace_id": ctx.deps.trace_id,
        },
    )

    try:
        params = TaskQueryParams(
            status=status,
            date_range=date_range,
            folder=folder,
            tags=tags,
            priority=priority,
            format=format,
            limit=limit,
        )
    except ValidationError as e:
        return f"Error: invalid task query: {e.errors()[0]['msg']}"

    try:
        result = await query_tasks(ctx.deps, params)

        logger.info(
            "task_query_completed",
            extra={
                "total_tasks": result.summary.total,
                "files_searched": result.summary.files_searched,
                "trace_id": ctx.deps.trace_id,
            },
        )
        return format_task_results(result)

    except VaultError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(
            "task_query_failed",
            extra={"error": str(e), "trace_id": ctx.deps.trace_id},
            exc_info=True,
        )
        return f"Error performing task query: {str(e)}"


async def task_management(
    ctx: RunContext[ChatDependencies],
    operation: str,
    file_path: str | None = None,
    text: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    due_date: str | None = None,
    scheduled_date: str | None = None,
    start_date: str | None = None,
    recurrence: str | None = None,
    project: str | None = None,
    tags: list[str] | None = None,
    insert_at: str = "bottom",
    section: str | None = None,
    indent_level: int = 0,
    list_style: str = "-",
    line_number: int | None = None,
    task_text: str | None = None,
    exact_match: bool = False,
    update_operation: str | None = None,
    new_date: str | None = None,
) -> str:
    """Create or update a task line in a note.

    Args:
        ctx: Context with vault access and trace_id for logging
        operation: 'create' or 'update'
        file_path: Note to modify (.md added automatically)
        text: Task description (create) or new description (update_text)
        status: Initial status (create) or target status (set_status)
        priority: 'highest'..'lowest' ('none' clears it on update)
        due_date: YYYY-MM-DD due date (create)
        scheduled_date: YYYY-MM-DD scheduled date (create)
        start_date: YYYY-MM-DD start date (create)
        recurrence: Recurrence rule such as 'every week'
        project: Project name, written as #project/<name>
        tags: Tags without '#'
        insert_at: 'top', 'bottom' or 'after_heading' (create)
        section: Heading to insert under (create)
        indent_level: Nesting level 0-6 (create)
        list_style: '-', '*' or '1.' (create)
        line_number: 1-based line of the task to update
        task_text: Text identifying the task to update
        exact_match: Require task_text to equal the task text
        update_operation: 'toggle_status', 'set_status', 'update_text',
            'set_priority', 'set_due_date', 'set_scheduled_date',
            'set_start_date', 'add_tags', 'remove_tags', 'set_project',
            'set_recurrence' or 'complete_task'
        new_date: New date for the set_*_date operations ('' clears)

    Returns:
        Description of the change or an error message
    """
    logger.info(
        "task_management_called",
        extra={
            "operation": operation,
            "file_path": file_path,
            "update_operation": update_operation,
            "trace_id": ctx.deps.trace_id,
        },
    )

    if not file_path:
        return f"Error: 'file_path' required for {operation} operation"

    try:
        if operation == "create":
            if not text:
                return "Error: 'text' required for create operation"
            try:
                create_params = TaskCreateParams(
                    file_path=file_path,
                    text=text,
                    status=status or "incomplete",
                    priority=priority,
                    due_date=due_date,
                    scheduled_date=scheduled_date,
                    start_date=start_date,
                    recurrence=recurrence,
                    project=project,
                    tags=tags or [],
                    insert_at=insert_at,
                    section=section,
                    indent_level=indent_level,
                    list_style=list_style,
                )
            except ValidationError as e:
                return f"Error: invalid task: {e.errors()[0]['msg']}"
            change = await create_task(ctx.deps, create_params)

        elif operation == "update":
            if not update_operation:
                return "Error: 'update_operation' required for update operation"
            try:
                update_params = TaskUpdateParams(
                    file_path=file_path,
                    operation=update_operation,
                    line_number=line_number,
                    task_text=task_text,
                    exact_match=exact_match,
                    status=status,
                    text=text,
                    priority=priority,
                    date=new_date,
                    tags=tags or [],
                    project=project,
                    recurrence=recurrence,
                )
            except ValidationError as e:
                return f"Error: invalid task update: {e.errors()[0]['msg']}"
            change = await update_task(ctx.deps, update_params)

        else:
            return f"Unknown operation: {operation}. Valid operations: create, update"

        logger.info(
            "task_management_completed",
            extra={
                "operation": operation,
                "file_path": change.file_path,
                "line_number": change.line_number,
                "trace_id": ctx.deps.trace_id,
            },
        )
        return format_task_change(change)

    except VaultError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(
            "task_management_failed",
            extra={"operation": operation, "error": str(e), "trace_id": ctx.deps.trace_id},
            exc_info=True,
        )
        return f"Error performing {operation}: {str(e)}"
