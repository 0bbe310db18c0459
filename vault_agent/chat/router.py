"""OpenAI-compatible chat endpoint backed by the vault analysis agent."""

import time
import uuid
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from pydantic_ai import AgentRunResultEvent, PartDeltaEvent
from pydantic_ai.messages import FunctionToolCallEvent

from vault_agent.chat.agent import chat_agent
from vault_agent.chat.models import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    DeltaContent,
    ErrorDetail,
    ErrorResponse,
    StreamChoice,
)
from vault_agent.dependencies import (
    ChatDependencies,
    VaultStorage,
    build_dependencies,
    get_vault_client,
    logger,
)

router = APIRouter(prefix="/v1", tags=["chat"])

TRACE_HEADER = "X-Trace-Id"
SSE_DONE = "data: [DONE]\n\n"

# Earlier turns kept as context for follow-up questions
MAX_HISTORY_TURNS = 6

MISSING_QUESTION = ErrorResponse(
    error=ErrorDetail(
        message="No user message provided.",
        type="invalid_request_error",
        code="missing_user_message",
    )
)


def _sse(payload: BaseModel) -> str:
    return f"data: {payload.model_dump_json()}\n\n"


def build_prompt(messages: list[ChatMessage]) -> str | None:
    """Collapse the request messages into one prompt for the agent.

    The last user message is the question. Up to MAX_HISTORY_TURNS earlier
    user/assistant turns are prepended as a transcript so follow-ups such as
    "which of those are overdue?" keep their referent. System messages are
    dropped; the agent has its own instructions.

    Returns:
        The prompt, or None when the request has no user message.
    """
    turns = [m for m in messages if m.role != "system"]
    last_user = next((i for i in range(len(turns) - 1, -1, -1) if turns[i].role == "user"), None)
    if last_user is None:
        return None

    question = turns[last_user].get_text_content()
    history = [t for t in turns[:last_user] if t.get_text_content()][-MAX_HISTORY_TURNS:]
    if not history:
        return question

    transcript = "\n".join(f"{t.role}: {t.get_text_content()}" for t in history)
    return f"Conversation so far:\n{transcript}\n\nCurrent question:\n{question}"


async def run_chat(
    prompt: str, request: ChatCompletionRequest, deps: ChatDependencies
) -> ChatCompletionResponse:
    """Run the agent to completion and wrap its answer."""
    try:
        result = await chat_agent.run(user_prompt=prompt, deps=deps)
    except Exception as e:
        logger.error(
            "chat_failed",
            extra={"trace_id": deps.trace_id, "error": str(e)},
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=ErrorResponse(
                error=ErrorDetail(message=f"Agent error: {e!s}", code="agent_error")
            ).model_dump(),
        )

    logger.info("chat_completed", extra={"trace_id": deps.trace_id, "chars": len(result.output)})
    return ChatCompletionResponse(
        id=f"chatcmpl-{deps.trace_id}",
        created=int(time.time()),
        model=request.model,
        choices=[Choice(message=ChatMessage(role="assistant", content=result.output))],
    )


async def stream_chat(
    prompt: str, request: ChatCompletionRequest, deps: ChatDependencies
) -> AsyncGenerator[str, None]:
    """Stream the agent's answer as server-sent chat.completion.chunk events.

    Emits a role chunk first, then one chunk per text delta, then a chunk
    carrying finish_reason once the run result arrives. Tool calls made along
    the way are logged but not streamed. Failures after the first chunk are
    reported in-band as an error event.
    """
    chunk_id = f"chatcmpl-{deps.trace_id}"
    created = int(time.time())

    def chunk(delta: DeltaContent, finish_reason: str | None = None) -> str:
        return _sse(
            ChatCompletionChunk(
                id=chunk_id,
                created=created,
                model=request.model,
                choices=[StreamChoice(delta=delta, finish_reason=finish_reason)],
            )
        )

    yield chunk(DeltaContent(role="assistant"))
    tool_calls = 0

    try:
        async for event in chat_agent.run_stream_events(user_prompt=prompt, deps=deps):
            if isinstance(event, FunctionToolCallEvent):
                tool_calls += 1
                logger.info(
                    "chat_tool_call",
                    extra={"trace_id": deps.trace_id, "tool": event.part.tool_name},
                )
            elif isinstance(event, PartDeltaEvent):
                text = getattr(event.delta, "content_delta", None)
                if text:
                    yield chunk(DeltaContent(content=text))
            elif isinstance(event, AgentRunResultEvent):
                yield chunk(DeltaContent(), finish_reason="stop")
    except Exception as e:
        logger.error(
            "chat_stream_failed",
            extra={"trace_id": deps.trace_id, "error": str(e)},
            exc_info=True,
        )
        yield _sse(
            ErrorResponse(error=ErrorDetail(message=f"Streaming error: {e!s}", code="streaming_error"))
        )
    else:
        logger.info("chat_stream_completed", extra={"trace_id": deps.trace_id, "tool_calls": tool_calls})

    yield SSE_DONE


async def _stream_error(error: ErrorResponse) -> AsyncGenerator[str, None]:
    yield _sse(error)
    yield SSE_DONE


@router.post("/chat/completions", response_model=None)
async def chat_completions(
    request: ChatCompletionRequest,
    req: Request,
    response: Response,
    vault: VaultStorage = Depends(get_vault_client),
) -> ChatCompletionResponse | StreamingResponse:
    """Answer a question about the vault, OpenAI chat-completions style.

    The caller's X-Trace-Id is reused (or one is minted) and echoed back on
    the response so log lines from the agent's tool calls can be matched to
    the request.
    """
    trace_id = req.headers.get(TRACE_HEADER) or str(uuid.uuid4())
    deps = build_dependencies(vault, trace_id)
    prompt = build_prompt(request.messages)

    logger.info(
        "chat_request_received",
        extra={
            "trace_id": trace_id,
            "stream": request.stream,
            "model": request.model,
            "messages": len(request.messages),
        },
    )

    if request.stream:
        body = stream_chat(prompt, request, deps) if prompt is not None else _stream_error(MISSING_QUESTION)
        return StreamingResponse(
            body,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive", TRACE_HEADER: trace_id},
        )

    if prompt is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_QUESTION.model_dump())

    response.headers[TRACE_HEADER] = trace_id
    return await run_chat(prompt, request, deps)
