"""Block reference tool for the chat agent.

This module implements the block_reference tool: reading and editing a
note by heading section, and creating or resolving `^block-id` anchors.
Every editing operation is one read followed by exactly one write.

Example usage by the agent:
    block_reference(operation="list_headings", file_path="Projects/API")
    block_reference(operation="append_to_heading", file_path="Daily/2024-06-01",
                    heading="Notes", content="- Met with design team")
    block_reference(operation="create_block_reference", file_path="Ideas",
                    target_text="caching layer", block_id="cache-idea")
"""

from pydantic import ValidationError
from pydantic_ai import RunContext

from vault_agent.blocks.models import BlockReferenceParams, BlockReferenceResult
from vault_agent.blocks.sections import (
    add_block_reference,
    find_block,
    heading_content,
    insert_under_heading,
    list_headings,
)
from vault_agent.dependencies import ChatDependencies, VaultError, VaultValidationError, logger
from vault_agent.markdown.notes import normalize_path

VALID_OPERATIONS = (
    "list_headings, get_heading_content, get_block_content, insert_under_heading, "
    "append_to_heading, prepend_to_heading, create_block_reference"
)

_HEADING_OPERATIONS = (
    "get_heading_content",
    "insert_under_heading",
    "append_to_heading",
    "prepend_to_heading",
)
_INSERT_POSITIONS = {"append_to_heading": "before_next_heading", "prepend_to_heading": "after_heading"}

# =============================================================================
# Operation Handlers
# =============================================================================


def _validate(params: BlockReferenceParams) -> None:
    op = params.operation
    if op in _HEADING_OPERATIONS and not params.heading:
        raise VaultValidationError(f"'heading' required for {op}")
    if op in ("insert_under_heading", "append_to_heading", "prepend_to_heading") and not params.content:
        raise VaultValidationError(f"'content' required for {op}")
    if op in ("get_block_content", "create_block_reference") and not params.block_id:
        raise VaultValidationError(f"'block_id' required for {op}")


async def run_block_reference(
    deps: ChatDependencies, params: BlockReferenceParams
) -> BlockReferenceResult:
    """Dispatch one block reference operation.

    Raises:
        VaultValidationError: If a parameter required by the operation is missing
        VaultNotFoundError: If the note, heading or block does not exist
        VaultConflictError: If a block id is already taken
    """
    _validate(params)
    op = params.operation
    path = normalize_path(params.file_path)
    text = await deps.vault.read_file(path)
    result = BlockReferenceResult(operation=op, file_path=path)

    if op == "list_headings":
        result.headings = list_headings(text)

    elif op == "get_heading_content":
        heading, result.content = heading_content(text, params.heading, params.include_subheadings)
        result.heading = heading.text
        result.line_number = heading.line

    elif op == "get_block_content":
        result.line_number, result.content = find_block(text, params.block_id)
        result.block_id = params.block_id

    elif op == "create_block_reference":
        new_text, result.line_number = add_block_reference(
            text,
            params.block_id,
            line_number=params.line_number,
            target_text=params.target_text,
            content=params.content,
        )
        await deps.vault.write_file(path, new_text)
        result.block_id = params.block_id
        result.content = new_text.split("\n")[result.line_number - 1]
        result.modified = True

    else:
        position = _INSERT_POSITIONS.get(op, params.position)
        new_text, result.line_number, result.created_heading = insert_under_heading(
            text,
            params.heading,
            params.content,
            position=position,
            create_heading=params.create_heading,
            heading_level=params.heading_level,
        )
        await deps.vault.write_file(path, new_text)
        result.heading = params.heading
        result.content = params.content
        result.modified = True

    if result.modified and deps.cache is not None:
        deps.cache.invalidate(path)
    return result


# =============================================================================
# Formatting Functions
# =============================================================================


def format_block_result(result: BlockReferenceResult) -> str:
    """Format a block reference result for the LLM."""
    op = result.operation
    path = result.file_path

    if op == "list_headings":
        if not result.headings:
            return f"No headings found in {path}."
        lines = [f"**Headings in {path}** ({len(result.headings)})", ""]
        for h in result.headings:
            anchor = f" ^{h.block_id}" if h.block_id else ""
            lines.append(f"{'  ' * (h.level - 1)}- {'#' * h.level} {h.text} (line {h.line}){anchor}")
        return "\n".join(lines)

    if op == "get_heading_content":
        body = result.content or "(empty section)"
        return f"**{result.heading}** in {path} (line {result.line_number}):\n\n{body}"

    if op == "get_block_content":
        return f"**^{result.block_id}** in {path} (line {result.line_number}):\n\n{result.content}"

    if op == "create_block_reference":
        return (
            f"Created block reference ^{result.block_id} in {path} at line {result.line_number}\n"
            f"Link with: [[{path.removesuffix('.md')}#^{result.block_id}]]"
        )

    message = f"Inserted content under '{result.heading}' in {path} at line {result.line_number}"
    if result.created_heading:
        message += " (heading created)"
    return message


# =============================================================================
# Main Tool Function
# =============================================================================


async def block_reference(
    ctx: RunContext[ChatDependencies],
    operation: str,
    file_path: str,
    heading: str | None = None,
    content: str | None = None,
    block_id: str | None = None,
    position: str = "end",
    create_heading: bool = False,
    heading_level: int = 2,
    include_subheadings: bool = True,
    line_number: int | None = None,
    target_text: str | None = None,
) -> str:
    """Read or edit a note by heading, and manage block references.

    Args:
        ctx: Context with vault access and trace_id for logging
        operation: 'list_headings', 'get_heading_content', 'get_block_content',
            'insert_under_heading', 'append_to_heading', 'prepend_to_heading'
            or 'create_block_reference'
        file_path: Note to read or edit
        heading: Heading text (case-insensitive)
        content: Content to insert, or the text of a new block
        block_id: Block id without '^' (letters, digits and '-')
        position: 'start', 'end', 'after_heading' or 'before_next_heading'
        create_heading: Create the heading when missing
        heading_level: Level of a created heading (1-6)
        include_subheadings: Include nested sections in get_heading_content
        line_number: Line to attach a block id to
        target_text: Text identifying the line to attach a block id to

    Returns:
        Formatted result or an error message
    """
    logger.info(
        "block_reference_called",
        extra={
            "operation": operation,
            "file_path": file_path,
            "heading": heading,
            "block_id": block_id,
            "trace_id": ctx.deps.trace_id,
        },
    )

    try:
        params = BlockReferenceParams(
            operation=operation,
            file_path=file_path,
            heading=heading,
            content=content,
            block_id=block_id,
            position=position,
            create_heading=create_heading,
            heading_level=heading_level,
            include_subheadings=include_subheadings,
            line_number=line_number,
            target_text=target_text,
        )
    except ValidationError as e:
        if any(err["loc"] == ("operation",) for err in e.errors()):
            return f"Unknown operation: {operation}. Valid operations: {VALID_OPERATIONS}"
        return f"Error: invalid parameters: {e.errors()[0]['msg']}"

    try:
        result = await run_block_reference(ctx.deps, params)

        logger.info(
            "block_reference_completed",
            extra={
                "operation": operation,
                "file_path": result.file_path,
                "modified": result.modified,
                "trace_id": ctx.deps.trace_id,
            },
        )
        return format_block_result(result)

    except VaultError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(
            "block_reference_failed",
            extra={"operation": operation, "error": str(e), "trace_id": ctx.deps.trace_id},
            exc_info=True,
        )
        return f"Error performing {operation}: {str(e)}"
