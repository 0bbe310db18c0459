"""Shared pytest fixtures."""

import os
from pathlib import Path
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

# Settings are read at import time, so the environment must be ready first
load_dotenv()
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-key")
os.environ.setdefault("VAULT_PATH", "/tmp/test-vault")

from fastapi.testclient import TestClient  # noqa: E402
from pydantic_ai import AgentRunResultEvent, PartDeltaEvent  # noqa: E402
from pydantic_ai.messages import FunctionToolCallEvent  # noqa: E402

from vault_agent.dependencies import (  # noqa: E402
    ChatDependencies,
    ScanLimits,
    VaultClient,
    get_vault_client,
)
from vault_agent.main import app  # noqa: E402


@pytest.fixture
def mock_vault_path(tmp_path: Path) -> Path:
    """Vault directory holding a single note, test.md."""
    vault = tmp_path / "vault"
    vault.mkdir()
    (vault / "test.md").write_text("# Test")
    return vault


@pytest.fixture
def mock_vault_client(mock_vault_path: Path) -> VaultClient:
    return VaultClient(vault_path=mock_vault_path)


@pytest.fixture
def client() -> TestClient:
    """Test client using the configured vault backend."""
    return TestClient(app)


@pytest.fixture
def api_client(mock_vault_client: VaultClient):
    """Test client whose endpoints read and write the temporary vault."""

    async def _vault():
        return mock_vault_client

    app.dependency_overrides[get_vault_client] = _vault
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_ctx():
    """Factory for a tool RunContext over a vault directory.

    Usage:
        ctx = make_ctx(tmp_path, limits=ScanLimits(max_files=2))
        result = await graph_analysis(ctx, operation="get_vault_stats")
    """

    def _make(vault_path: Path, limits: ScanLimits | None = None) -> Mock:
        ctx = Mock()
        ctx.deps = ChatDependencies(
            vault=VaultClient(vault_path=vault_path),
            trace_id="test-trace-123",
            limits=limits or ScanLimits(),
        )
        return ctx

    return _make


@pytest.fixture
def mock_stream_events():
    """Factory for the event stream of an agent run.

    Each name in `tools` yields a tool call event, then `content` is streamed
    word by word as text deltas, then the run result event closes the stream.
    """

    async def _stream(content: str = "Test response", tools: list[str] | tuple = ()):
        for name in tools:
            call = Mock(spec=FunctionToolCallEvent)
            call.part = Mock(tool_name=name)
            yield call

        for word in content.split():
            event = Mock(spec=PartDeltaEvent)
            event.delta = Mock(content_delta=word + " ")
            yield event

        done = Mock(spec=AgentRunResultEvent)
        done.result = Mock(output=content)
        yield done

    return _stream
