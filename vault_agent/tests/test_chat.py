"""Tests for the chat models, prompt building and /v1/chat/completions."""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from vault_agent.chat.models import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatMessage,
    ContentPart,
    DeltaContent,
    ErrorDetail,
    StreamChoice,
)
from vault_agent.chat.router import MAX_HISTORY_TURNS, build_prompt


def _user(text: str) -> dict:
    return {"role": "user", "content": text}


def _events(body: str) -> list:
    """Decode the data lines of a server-sent event stream."""
    lines = [line.removeprefix("data: ") for line in body.splitlines() if line.startswith("data: ")]
    return [line if line == "[DONE]" else json.loads(line) for line in lines]


@pytest.fixture
def mock_agent():
    """Patch the agent with one that answers from the vault."""
    with patch("vault_agent.chat.router.chat_agent") as agent:
        agent.run = AsyncMock(return_value=Mock(output="You have 2 overdue tasks."))
        yield agent


# =============================================================================
# Model Tests
# =============================================================================


class TestChatMessage:
    """Tests for ChatMessage text extraction."""

    def test_string_content(self) -> None:
        """Test plain string content is returned unchanged."""
        assert ChatMessage(role="user", content="List orphans").get_text_content() == "List orphans"

    def test_text_parts_joined(self) -> None:
        """Test text parts are joined and other part types dropped."""
        msg = ChatMessage(
            role="user",
            content=[
                ContentPart(type="text", text="Summarise"),
                ContentPart(type="image_url"),
                ContentPart(type="text", text="Projects/Roadmap.md"),
            ],
        )

        assert msg.get_text_content() == "Summarise\nProjects/Roadmap.md"

    def test_parts_from_json(self) -> None:
        """Test raw dict parts are parsed into ContentPart."""
        msg = ChatMessage.model_validate(
            {"role": "user", "content": [{"type": "text", "text": "hubs?"}]}
        )

        assert isinstance(msg.content[0], ContentPart)
        assert msg.get_text_content() == "hubs?"

    def test_missing_content(self) -> None:
        """Test content defaults to empty text."""
        assert ChatMessage(role="assistant").get_text_content() == ""


class TestChatCompletionRequest:
    """Tests for ChatCompletionRequest validation."""

    def test_defaults(self) -> None:
        """Test defaults used when the client sends only messages."""
        req = ChatCompletionRequest(messages=[ChatMessage(role="user", content="Hi")])

        assert (req.model, req.max_tokens, req.temperature, req.stream) == (
            "vault-analysis-agent",
            2048,
            0.7,
            False,
        )

    @pytest.mark.parametrize(
        "overrides",
        [{"max_tokens": 0}, {"max_tokens": 20000}, {"temperature": -0.1}, {"temperature": 3.0}, {"messages": []}],
    )
    def test_out_of_range_rejected(self, overrides: dict) -> None:
        """Test invalid sampling values and empty conversations are rejected."""
        body = {"messages": [_user("Hi")], **overrides}

        with pytest.raises(ValueError):
            ChatCompletionRequest.model_validate(body)

    def test_chunk_serialization(self) -> None:
        """Test streaming chunks serialize with the chunk object type."""
        chunk = ChatCompletionChunk(
            id="chatcmpl-t", created=0, model="m", choices=[StreamChoice(delta=DeltaContent(content="Hi"))]
        )
        data = json.loads(chunk.model_dump_json())

        assert data["object"] == "chat.completion.chunk"
        assert data["choices"][0] == {
            "index": 0,
            "delta": {"role": None, "content": "Hi"},
            "finish_reason": None,
        }

    def test_error_detail_defaults(self) -> None:
        """Test error details default to a server error with no code."""
        assert ErrorDetail(message="boom").model_dump() == {
            "message": "boom",
            "type": "server_error",
            "code": None,
        }


# =============================================================================
# Prompt Building Tests
# =============================================================================


class TestBuildPrompt:
    """Tests for build_prompt()."""

    def test_single_question(self) -> None:
        """Test a lone user message is passed through as is."""
        assert build_prompt([ChatMessage(role="user", content="What's due today?")]) == "What's due today?"

    def test_no_user_message(self) -> None:
        """Test conversations without a user turn have no prompt."""
        assert build_prompt([ChatMessage(role="system", content="Be brief")]) is None

    def test_history_prepended(self) -> None:
        """Test earlier turns become a transcript and system messages are dropped."""
        prompt = build_prompt(
            [
                ChatMessage(role="system", content="Be brief"),
                ChatMessage(role="user", content="Which tasks are tagged #client?"),
                ChatMessage(role="assistant", content="3 tasks: invoice, call, review"),
                ChatMessage(role="user", content="Which of those are overdue?"),
            ]
        )

        assert prompt == (
            "Conversation so far:\n"
            "user: Which tasks are tagged #client?\n"
            "assistant: 3 tasks: invoice, call, review\n\n"
            "Current question:\n"
            "Which of those are overdue?"
        )
        assert "Be brief" not in prompt

    def test_history_limited(self) -> None:
        """Test only the most recent turns are kept."""
        turns = [ChatMessage(role="user", content=f"q{i}") for i in range(MAX_HISTORY_TURNS + 3)]
        prompt = build_prompt(turns)

        assert "user: q0\n" not in prompt
        assert f"user: q{MAX_HISTORY_TURNS + 1}" in prompt
        assert prompt.endswith(f"q{MAX_HISTORY_TURNS + 2}")

    def test_trailing_assistant_turn_ignored(self) -> None:
        """Test the question is the last user turn even if an assistant turn follows."""
        prompt = build_prompt(
            [ChatMessage(role="user", content="List hubs"), ChatMessage(role="assistant", content="...")]
        )

        assert prompt == "List hubs"


# =============================================================================
# Endpoint Tests
# =============================================================================


class TestAppEndpoints:
    """Tests for the health and root endpoints."""

    def test_health(self, client: TestClient) -> None:
        """Test health reports the configured vault backend."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["vault_backend"] in ("filesystem", "rest")

    def test_root(self, client: TestClient) -> None:
        """Test root names the service."""
        assert "Vault Analysis" in client.get("/").json()["name"]


class TestChatCompletions:
    """Tests for non-streaming chat completions."""

    def test_answer_returned(self, client: TestClient, mock_agent) -> None:
        """Test the agent output becomes the assistant message."""
        r = client.post("/v1/chat/completions", json={"model": "my-model", "messages": [_user("What's overdue?")]})

        assert r.status_code == 200
        data = r.json()
        assert data["object"] == "chat.completion"
        assert data["model"] == "my-model"
        assert data["id"].startswith("chatcmpl-")
        assert data["choices"][0]["message"] == {"role": "assistant", "content": "You have 2 overdue tasks."}
        assert data["choices"][0]["finish_reason"] == "stop"
        assert mock_agent.run.await_args.kwargs["user_prompt"] == "What's overdue?"

    def test_trace_id_propagated(self, client: TestClient, mock_agent) -> None:
        """Test the caller's trace id reaches the agent and comes back on the response."""
        r = client.post(
            "/v1/chat/completions",
            json={"messages": [_user("Hi")]},
            headers={"X-Trace-Id": "trace-42"},
        )

        assert r.headers["X-Trace-Id"] == "trace-42"
        assert r.json()["id"] == "chatcmpl-trace-42"
        assert mock_agent.run.await_args.kwargs["deps"].trace_id == "trace-42"

    def test_trace_id_generated(self, client: TestClient, mock_agent) -> None:
        """Test a trace id is minted when the caller sends none."""
        r = client.post("/v1/chat/completions", json={"messages": [_user("Hi")]})

        assert r.json()["id"] == f"chatcmpl-{r.headers['X-Trace-Id']}"

    def test_follow_up_carries_history(self, client: TestClient, mock_agent) -> None:
        """Test earlier turns are sent to the agent with the question."""
        client.post(
            "/v1/chat/completions",
            json={
                "messages": [
                    _user("Show #client tasks"),
                    {"role": "assistant", "content": "invoice, call"},
                    _user("Complete the first one"),
                ]
            },
        )
        prompt = mock_agent.run.await_args.kwargs["user_prompt"]

        assert prompt.startswith("Conversation so far:\nuser: Show #client tasks")
        assert prompt.endswith("Complete the first one")

    def test_requires_messages(self, client: TestClient) -> None:
        """Test a body without messages fails validation."""
        assert client.post("/v1/chat/completions", json={"model": "test"}).status_code == 422

    def test_requires_user_message(self, client: TestClient, mock_agent) -> None:
        """Test a conversation with no user turn is a 400."""
        r = client.post("/v1/chat/completions", json={"messages": [{"role": "system", "content": "Hi"}]})

        assert r.status_code == 400
        assert r.json()["detail"]["error"]["code"] == "missing_user_message"
        mock_agent.run.assert_not_awaited()

    def test_agent_error(self, client: TestClient, mock_agent) -> None:
        """Test agent failures map to a 500 with the agent_error code."""
        mock_agent.run.side_effect = RuntimeError("model unavailable")
        r = client.post("/v1/chat/completions", json={"messages": [_user("Hi")]})

        assert r.status_code == 500
        error = r.json()["detail"]["error"]
        assert error["code"] == "agent_error"
        assert error["message"] == "Agent error: model unavailable"


class TestChatStreaming:
    """Tests for streamed chat completions."""

    def _post(self, client: TestClient, messages: list[dict]):
        return client.post(
            "/v1/chat/completions",
            json={"model": "test", "messages": messages, "stream": True},
            headers={"X-Trace-Id": "stream-1"},
        )

    def test_stream_sequence(self, client: TestClient, mock_stream_events) -> None:
        """Test role, content and finish chunks arrive in order, then [DONE]."""
        with patch("vault_agent.chat.router.chat_agent") as agent:
            agent.run_stream_events = Mock(
                return_value=mock_stream_events("Two tasks overdue", tools=["task_query"])
            )
            r = self._post(client, [_user("What's overdue?")])

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/event-stream")
        assert r.headers["X-Trace-Id"] == "stream-1"

        events = _events(r.text)
        assert events[0]["choices"][0]["delta"]["role"] == "assistant"
        text = "".join(e["choices"][0]["delta"]["content"] or "" for e in events[1:-2])
        assert text == "Two tasks overdue "
        assert events[-2]["choices"][0]["finish_reason"] == "stop"
        assert events[-1] == "[DONE]"
        assert all(e["id"] == "chatcmpl-stream-1" for e in events[:-1])

    def test_tool_calls_not_streamed(self, client: TestClient, mock_stream_events) -> None:
        """Test tool call events produce no chunks."""
        with patch("vault_agent.chat.router.chat_agent") as agent:
            agent.run_stream_events = Mock(
                return_value=mock_stream_events("Done", tools=["graph_analysis", "smart_linking"])
            )
            events = _events(self._post(client, [_user("Link suggestions?")]).text)

        assert len(events) == 4
        assert "graph_analysis" not in json.dumps(events)

    def test_stream_error_in_band(self, client: TestClient) -> None:
        """Test failures mid-stream are sent as an error event before [DONE]."""

        async def failing(**kwargs):
            raise RuntimeError("vault unreachable")
            yield

        with patch("vault_agent.chat.router.chat_agent") as agent:
            agent.run_stream_events = Mock(return_value=failing())
            events = _events(self._post(client, [_user("Hi")]).text)

        assert events[0]["choices"][0]["delta"]["role"] == "assistant"
        assert events[1]["error"] == {
            "message": "Streaming error: vault unreachable",
            "type": "server_error",
            "code": "streaming_error",
        }
        assert events[-1] == "[DONE]"

    def test_no_user_message(self, client: TestClient) -> None:
        """Test a missing question is reported in the stream."""
        events = _events(self._post(client, [{"role": "system", "content": "Hi"}]).text)

        assert events[0]["error"]["type"] == "invalid_request_error"
        assert events[0]["error"]["code"] == "missing_user_message"
        assert events[1] == "[DONE]"
