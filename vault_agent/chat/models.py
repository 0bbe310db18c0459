"""Request and response models for the OpenAI-compatible chat endpoint."""

from typing import Literal

from pydantic import BaseModel, Field

FinishReason = Literal["stop", "length", "tool_calls", "content_filter"]


class ContentPart(BaseModel):
    """One part of a multi-part message; only ``text`` parts reach the agent."""

    type: str
    text: str | None = None


class ChatMessage(BaseModel):
    """A conversation turn whose content is a string or a list of parts."""

    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart] = ""

    def get_text_content(self) -> str:
        """Return the text of the message, joining text parts with newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if part.type == "text" and part.text)


class ChatCompletionRequest(BaseModel):
    """Body of POST /v1/chat/completions.

    ``max_tokens`` and ``temperature`` are validated for client compatibility;
    the agent runs with its own model settings.
    """

    model: str = "vault-analysis-agent"
    messages: list[ChatMessage] = Field(min_length=1)
    max_tokens: int = Field(default=2048, gt=0, le=16384)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    stream: bool = False
    user: str | None = None


class Choice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: FinishReason = "stop"


class UsageInfo(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """A complete, non-streamed answer."""

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: UsageInfo = Field(default_factory=UsageInfo)


class DeltaContent(BaseModel):
    role: Literal["assistant"] | None = None
    content: str | None = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: DeltaContent
    finish_reason: FinishReason | None = None


class ChatCompletionChunk(BaseModel):
    """One server-sent event of a streamed answer."""

    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[StreamChoice]


class ErrorDetail(BaseModel):
    message: str
    type: str = "server_error"
    code: str | None = None


class ErrorResponse(BaseModel):
    """Error envelope shared by the chat and vault routers."""

    error: ErrorDetail
