"""FastAPI router exposing each vault tool as a JSON endpoint under /v1/vault.

Each endpoint accepts the tool's parameter model, runs the same handler
the chat agent uses and returns the structured result alongside the
formatted text. Typed vault errors map onto HTTP status codes with an
OpenAI-style error body.
"""

import uuid
from collections.abc import Awaitable

from fastapi import APIRouter, Depends, HTTPException, Request, status

from vault_agent.api.models import ToolResponse
from vault_agent.blocks.models import BlockReferenceParams, BlockReferenceResult
from vault_agent.blocks.tools import format_block_result, run_block_reference
from vault_agent.chat.models import ErrorDetail, ErrorResponse
from vault_agent.dependencies import (
    ChatDependencies,
    VaultConflictError,
    VaultError,
    VaultNotFoundError,
    VaultSecurityError,
    VaultStorage,
    VaultValidationError,
    build_dependencies,
    get_vault_client,
    logger,
)
from vault_agent.graph.models import GraphAnalysisParams, GraphAnalysisResult
from vault_agent.graph.tools import format_graph_result, run_graph_analysis
from vault_agent.linking.models import SmartLinkingParams, SmartLinkingResult
from vault_agent.linking.tools import format_linking_result, run_smart_linking
from vault_agent.tasks.models import (
    TaskChange,
    TaskCreateParams,
    TaskQueryParams,
    TaskQueryResult,
    TaskUpdateParams,
)
from vault_agent.tasks.query import format_task_results
from vault_agent.tasks.tools import create_task, format_task_change, query_tasks, update_task
from vault_agent.templates.models import TemplateParams, TemplateResult
from vault_agent.templates.tools import format_template_result, run_template_operation

router = APIRouter(prefix="/v1/vault", tags=["vault"])

_ERROR_STATUS: list[tuple[type[VaultError], int, str]] = [
    (VaultValidationError, status.HTTP_400_BAD_REQUEST, "invalid_request_error"),
    (VaultSecurityError, status.HTTP_403_FORBIDDEN, "permission_error"),
    (VaultNotFoundError, status.HTTP_404_NOT_FOUND, "not_found_error"),
    (VaultConflictError, status.HTTP_409_CONFLICT, "conflict_error"),
]


async def get_request_dependencies(
    req: Request, vault: VaultStorage = Depends(get_vault_client)
) -> ChatDependencies:
    """Build tool dependencies for one request, honouring X-Trace-Id."""
    return build_dependencies(vault, req.headers.get("X-Trace-Id", str(uuid.uuid4())))


def error_status(error: Exception) -> tuple[int, str]:
    """HTTP status code and error type for an exception."""
    for error_type, code, kind in _ERROR_STATUS:
        if isinstance(error, error_type):
            return code, kind
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "server_error"


async def _run(endpoint: str, deps: ChatDependencies, call: Awaitable):
    """Await a tool handler, translating failures into HTTP errors."""
    logger.info("vault_api_called", extra={"endpoint": endpoint, "trace_id": deps.trace_id})
    try:
        return await call
    except Exception as e:
        code, kind = error_status(e)
        if isinstance(e, VaultError):
            message = str(e)
        else:
            message = f"Error performing {endpoint}: {e!s}"
            logger.error(
                "vault_api_failed",
                extra={"endpoint": endpoint, "error": str(e), "trace_id": deps.trace_id},
                exc_info=True,
            )
        raise HTTPException(
            status_code=code,
            detail=ErrorResponse(
                error=ErrorDetail(message=message, type=kind, code=type(e).__name__)
            ).model_dump(),
        ) from e


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/tasks/query")
async def tasks_query(
    params: TaskQueryParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[TaskQueryResult]:
    """Find tasks across the vault."""
    result = await _run("tasks/query", deps, query_tasks(deps, params))
    return ToolResponse(result=result, formatted_output=format_task_results(result))


@router.post("/tasks/create")
async def tasks_create(
    params: TaskCreateParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[TaskChange]:
    """Insert a task into a note."""
    result = await _run("tasks/create", deps, create_task(deps, params))
    return ToolResponse(result=result, formatted_output=format_task_change(result))


@router.post("/tasks/update")
async def tasks_update(
    params: TaskUpdateParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[TaskChange]:
    """Apply one update operation to a task."""
    result = await _run("tasks/update", deps, update_task(deps, params))
    return ToolResponse(result=result, formatted_output=format_task_change(result))


@router.post("/graph")
async def graph(
    params: GraphAnalysisParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[GraphAnalysisResult]:
    """Run one graph analysis operation."""
    result = await _run("graph", deps, run_graph_analysis(deps, params))
    return ToolResponse(result=result, formatted_output=format_graph_result(result))


@router.post("/linking")
async def linking(
    params: SmartLinkingParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[SmartLinkingResult]:
    """Run one smart linking operation."""
    result = await _run("linking", deps, run_smart_linking(deps, params))
    return ToolResponse(result=result, formatted_output=format_linking_result(result))


@router.post("/blocks")
async def blocks(
    params: BlockReferenceParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[BlockReferenceResult]:
    """Run one heading or block reference operation."""
    result = await _run("blocks", deps, run_block_reference(deps, params))
    return ToolResponse(result=result, formatted_output=format_block_result(result))


@router.post("/templates")
async def templates(
    params: TemplateParams, deps: ChatDependencies = Depends(get_request_dependencies)
) -> ToolResponse[TemplateResult]:
    """Run one template operation."""
    result = await _run("templates", deps, run_template_operation(deps, params))
    return ToolResponse(result=result, formatted_output=format_template_result(result))
