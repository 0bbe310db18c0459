"""Template system tool for the chat agent.

This module implements the template_system tool: listing template notes,
rendering them with `{{variable}}` substitution and creating new notes
from them.

Example usage by the agent:
    template_system(operation="list_templates")
    template_system(operation="create_from_template", template_path="Meeting",
                    target_path="Meetings/2024-06-01 Sync",
                    variables={"attendees": "Ana, Raj"})
"""

from pydantic import ValidationError
from pydantic_ai import RunContext

from vault_agent.dependencies import (
    ChatDependencies,
    VaultConflictError,
    VaultError,
    VaultNotFoundError,
    VaultValidationError,
    logger,
)
from vault_agent.markdown.notes import normalize_path, note_name
from vault_agent.scan import scan_vault
from vault_agent.templates.models import TemplateInfo, TemplateParams, TemplateResult
from vault_agent.templates.rendering import extract_variables, render_template, validate_template

VALID_OPERATIONS = (
    "list_templates, get_template, create_from_template, preview_template, "
    "validate_template, apply_template_variables"
)

PREVIEW_LENGTH = 200

# =============================================================================
# Helper Functions
# =============================================================================


async def _resolve_template(deps: ChatDependencies, params: TemplateParams) -> str:
    """Find the template note, trying the template folder for bare names.

    Raises:
        VaultValidationError: If no template_path was given
        VaultNotFoundError: If the template does not exist
    """
    if not params.template_path:
        raise VaultValidationError(f"'template_path' required for {params.operation}")

    path = normalize_path(params.template_path)
    if await deps.vault.file_exists(path):
        return path
    if "/" not in path:
        in_folder = f"{params.template_folder.strip('/')}/{path}"
        if await deps.vault.file_exists(in_folder):
            return in_folder
    raise VaultNotFoundError(f"Template not found: {params.template_path}")


def _preview(content: str) -> str:
    if len(content) <= PREVIEW_LENGTH:
        return content
    return f"{content[:PREVIEW_LENGTH]}..."


# =============================================================================
# Operation Handlers
# =============================================================================


async def _list_templates(deps: ChatDependencies, params: TemplateParams) -> TemplateResult:
    scan = await scan_vault(
        deps.vault,
        folder=params.template_folder.strip("/"),
        max_files=deps.limits.max_files,
        timeout_seconds=deps.limits.timeout_seconds,
        trace_id=deps.trace_id,
    )
    templates = [
        TemplateInfo(
            path=path,
            name=note_name(path),
            size=len(content),
            variables=extract_variables(content),
            preview=_preview(content),
        )
        for path, content in scan.notes.items()
    ]
    return TemplateResult(
        operation="list_templates",
        templates=templates,
        files_searched=scan.files_searched,
        truncated=scan.truncated,
    )


async def _create_from_template(deps: ChatDependencies, params: TemplateParams) -> TemplateResult:
    if not params.target_path:
        raise VaultValidationError("'target_path' required for create_from_template")
    template_path = await _resolve_template(deps, params)
    target = normalize_path(params.target_path)

    if not params.overwrite and await deps.vault.file_exists(target):
        raise VaultConflictError(f"Note already exists: {target}. Set overwrite to replace it.")

    template = await deps.vault.read_file(template_path)
    content, unresolved = render_template(template, params.variables, target, params.auto_variables)
    await deps.vault.write_file(target, content)
    if deps.cache is not None:
        deps.cache.invalidate(target)

    return TemplateResult(
        operation="create_from_template",
        template_path=template_path,
        target_path=target,
        content=content,
        variables=extract_variables(template),
        unresolved=unresolved,
        created=True,
    )


async def run_template_operation(deps: ChatDependencies, params: TemplateParams) -> TemplateResult:
    """Dispatch one template operation.

    Raises:
        VaultValidationError: If a parameter required by the operation is missing
        VaultNotFoundError: If the template does not exist
        VaultConflictError: If the target note exists and overwrite is off
    """
    op = params.operation
    if op == "list_templates":
        return await _list_templates(deps, params)
    if op == "create_from_template":
        return await _create_from_template(deps, params)

    if op == "apply_template_variables" and params.content is not None:
        template_path, template = None, params.content
    else:
        template_path = await _resolve_template(deps, params)
        template = await deps.vault.read_file(template_path)

    result = TemplateResult(
        operation=op,
        template_path=template_path,
        variables=extract_variables(template),
    )

    if op == "get_template":
        result.content = template
    elif op == "validate_template":
        result.validation_errors = validate_template(template)
    else:
        default_target = "preview.md" if op == "preview_template" else "output.md"
        target = normalize_path(params.target_path) if params.target_path else default_target
        result.target_path = params.target_path and target
        result.content, result.unresolved = render_template(
            template, params.variables, target, params.auto_variables
        )
    return result


# =============================================================================
# Formatting Functions
# =============================================================================


def format_template_result(result: TemplateResult) -> str:
    """Format a template result for the LLM."""
    op = result.operation
    lines: list[str] = []

    if op == "list_templates":
        if not result.templates:
            return "No templates found."
        lines.append(f"**Templates** ({len(result.templates)})")
        lines.append("")
        for i, info in enumerate(result.templates, 1):
            variables = ", ".join(info.variables) if info.variables else "none"
            lines.append(f"{i}. **{info.name}** ({info.path}): variables: {variables}")
        if result.truncated:
            lines.append("")
            lines.append("(Scan limit reached: results may be incomplete)")
        return "\n".join(lines)

    if op == "validate_template":
        if not result.validation_errors:
            return f"Template {result.template_path} is valid ({len(result.variables)} variable(s))."
        lines.append(f"Template {result.template_path} has {len(result.validation_errors)} problem(s):")
        lines.extend(f"- {error}" for error in result.validation_errors)
        return "\n".join(lines)

    if op == "create_from_template":
        lines.append(f"Created {result.target_path} from template {result.template_path}")
    elif op == "get_template":
        variables = ", ".join(result.variables) if result.variables else "none"
        lines.append(f"**Template {result.template_path}** (variables: {variables})")
        lines.append("")
        lines.append(result.content or "")
    else:
        source = result.template_path or "provided content"
        lines.append(f"**Rendered {source}**")
        lines.append("")
        lines.append(result.content or "")

    if result.unresolved:
        lines.append("")
        lines.append(f"Unresolved variables: {', '.join(result.unresolved)}")
    return "\n".join(lines)


# =============================================================================
# Main Tool Function
# =============================================================================


async def template_system(
    ctx: RunContext[ChatDependencies],
    operation: str,
    template_path: str | None = None,
    target_path: str | None = None,
    template_folder: str = "Templates",
    variables: dict[str, str] | None = None,
    content: str | None = None,
    auto_variables: bool = True,
    overwrite: bool = False,
) -> str:
    """List, render and instantiate note templates.

    Args:
        ctx: Context with vault access and trace_id for logging
        operation: 'list_templates', 'get_template', 'create_from_template',
            'preview_template', 'validate_template' or 'apply_template_variables'
        template_path: Template note, or a template name inside template_folder
        target_path: Note to create (create_from_template)
        template_folder: Folder holding templates (default 'Templates')
        variables: Values for {{variable}} placeholders
        content: Raw template text (apply_template_variables)
        auto_variables: Fill date, time, title and similar variables
        overwrite: Replace an existing target note

    Returns:
        Formatted result or an error message
    """
    logger.info(
        "template_system_called",
        extra={
            "operation": operation,
            "template_path": template_path,
            "target_path": target_path,
            "trace_id": ctx.deps.trace_id,
        },
    )

    try:
        params = TemplateParams(
            operation=operation,
            template_path=template_path,
            target_path=target_path,
            template_folder=template_folder,
            variables=variables or {},
            content=content,
            auto_variables=auto_variables,
            overwrite=overwrite,
        )
    except ValidationError as e:
        if any(err["loc"] == ("operation",) for err in e.errors()):
            return f"Unknown operation: {operation}. Valid operations: {VALID_OPERATIONS}"
        return f"Error: invalid parameters: {e.errors()[0]['msg']}"

    try:
        result = await run_template_operation(ctx.deps, params)

        logger.info(
            "template_system_completed",
            extra={
                "operation": operation,
                "template_path": result.template_path,
                "note_created": result.created,
                "trace_id": ctx.deps.trace_id,
            },
        )
        return format_template_result(result)

    except VaultError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.error(
            "template_system_failed",
            extra={"operation": operation, "error": str(e), "trace_id": ctx.deps.trace_id},
            exc_info=True,
        )
        return f"Error performing {operation}: {str(e)}"
