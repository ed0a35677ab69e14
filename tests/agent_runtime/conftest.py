"""Shared fixtures for agent runtime tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

import pytest
import structlog

from codalyn.agent_runtime.models.error_types import AdapterError
from codalyn.agent_runtime.models.messages import (
    Message,
    ModelResponse,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
)
from codalyn.agent_runtime.models.tool_integration import ToolDefinition
from codalyn.agent_runtime.providers.base import ModelAdapter, validate_messages
from codalyn.agent_runtime.sandbox import MockSandbox
from codalyn.agent_runtime.services.conversation_memory import ConversationMemory
from codalyn.agent_runtime.tools.executor import ToolExecutor
from codalyn.agent_runtime.tools.registry import ToolRegistry


class ScriptedAdapter(ModelAdapter):
    """Model adapter replaying canned responses, recording every request."""

    provider = "scripted"

    def __init__(
        self,
        responses: Sequence[ModelResponse],
        model: str = "scripted-model",
        repeat_last: bool = False,
    ) -> None:
        # No HTTP client: nothing here talks to a network.
        self._model = model
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.requests: list[list[Message]] = []
        self.logger = structlog.get_logger().bind(provider=self.provider)

    def _next(self, messages: Sequence[Message]) -> ModelResponse:
        validate_messages(messages)
        self.requests.append(list(messages))
        if self.repeat_last and len(self.responses) == 1:
            return self.responses[0]
        if not self.responses:
            raise AssertionError("ScriptedAdapter ran out of responses")
        return self.responses.pop(0)

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        return self._next(messages)

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[StreamChunk]:
        response = self._next(messages)
        for start in range(0, len(response.content), 8):
            yield TextChunk(content=response.content[start : start + 8])
        for call in response.tool_calls:
            yield ToolCallChunk(tool_call=call)

    async def close(self) -> None:
        return None


class FailingAdapter(ScriptedAdapter):
    """Adapter whose backend always rejects the request."""

    def __init__(self, status_code: int = 401) -> None:
        super().__init__([])
        self.status_code = status_code

    def _next(self, messages: Sequence[Message]) -> ModelResponse:
        self.requests.append(list(messages))
        raise AdapterError(
            f"scripted returned HTTP {self.status_code}: unauthorized",
            provider=self.provider,
            status_code=self.status_code,
        )


@pytest.fixture
def make_adapter() -> Callable[..., ScriptedAdapter]:
    """Factory for scripted adapters."""

    def _make(*responses: ModelResponse, repeat_last: bool = False) -> ScriptedAdapter:
        return ScriptedAdapter(responses, repeat_last=repeat_last)

    return _make


@pytest.fixture
def failing_adapter() -> FailingAdapter:
    """Adapter rejecting every request with HTTP 401."""
    return FailingAdapter()


@pytest.fixture
def make_executor() -> Callable[[dict[str, Any]], ToolExecutor]:
    """Factory for executors with a minimal definition per implementation."""

    def _make(implementations: dict[str, Any]) -> ToolExecutor:
        registry = ToolRegistry(
            ToolDefinition(name=name, description=f"{name} tool") for name in implementations
        )
        return ToolExecutor(registry, implementations)

    return _make


@pytest.fixture
async def mock_sandbox() -> AsyncIterator[MockSandbox]:
    """Initialized in-memory sandbox, destroyed after the test."""
    sandbox = MockSandbox()
    await sandbox.init()
    yield sandbox
    await sandbox.destroy()


@pytest.fixture
def memory() -> ConversationMemory:
    """Conversation memory with a short system prompt."""
    return ConversationMemory("You are a test assistant.")
