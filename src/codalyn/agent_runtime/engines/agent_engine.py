"""Agent orchestration loop.

One run moves through Idle -> Generating -> (ToolDispatch -> Generating)* -> Done.
Each generation sees the full memory and the registered tools. Tool calls of a
round are dispatched one after another in the order the model produced them,
and the round is committed to memory as one assistant message followed by one
tool message. The run ends when the model stops calling tools or after
max_iterations generations.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import structlog

from ..config import get_settings
from ..models.agent_state import (
    AgentEvent,
    AgentRunResult,
    ResponseEvent,
    ThoughtEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from ..models.messages import Message, TextChunk, ToolCall, ToolResult
from ..providers import ModelAdapter, create_model_adapter
from ..sandbox import Sandbox
from ..services.conversation_memory import ConversationMemory
from ..tools.executor import ToolExecutor
from ..tools.registration import build_sandbox_toolset
from .prompts import DEFAULT_SYSTEM_PROMPT

logger = structlog.get_logger()

Emit = Callable[[AgentEvent], Awaitable[None]]

_DONE = object()


class Agent:
    """Drives a model adapter through a bounded tool-calling loop."""

    def __init__(
        self,
        model_adapter: ModelAdapter,
        tool_executor: ToolExecutor,
        memory: ConversationMemory,
        max_iterations: int = 10,
    ) -> None:
        """
        Initialize agent.

        Args:
            model_adapter: Model backend
            tool_executor: Tools offered to the model and their implementations
            memory: Conversation memory owned by this agent
            max_iterations: Maximum generations per run
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.model_adapter = model_adapter
        self.tool_executor = tool_executor
        self.memory = memory
        self.max_iterations = max_iterations
        self._running = False
        self._inflight: set[asyncio.Task[ToolResult]] = set()
        self.logger = logger.bind(model=model_adapter.model_name)

    @property
    def history(self) -> tuple[Message, ...]:
        return self.memory.get_messages()

    def reset(self) -> None:
        """Clear the conversation, keeping the system prompt."""
        self.memory.reset()

    async def run(self, user_message: str) -> AgentRunResult:
        """
        Run the loop to completion.

        Args:
            user_message: User input for this turn

        Returns:
            Final text, memory snapshot and every tool call and result

        Raises:
            AdapterError: If the model backend fails
        """
        return await self._execute(user_message, emit=None)

    async def run_stream(self, user_message: str) -> AsyncIterator[AgentEvent]:
        """
        Run the loop, yielding events as they happen.

        The loop runs in a producer task feeding a one-slot queue, so it never
        gets ahead of the consumer by more than one event. Closing the iterator
        early cancels the run: a tool call already started still completes, but
        the unfinished round is not written to memory.

        Yields:
            thought, tool_call and tool_result events, then one response event

        Raises:
            AdapterError: If the model backend fails
        """
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)

        async def produce() -> None:
            try:
                result = await self._execute(user_message, emit=queue.put)
            except Exception as e:
                await queue.put(e)
                return
            await queue.put(
                ResponseEvent(
                    content=result.final_response,
                    iterations=result.iterations,
                    reached_iteration_cap=result.reached_iteration_cap,
                )
            )
            await queue.put(_DONE)

        producer = asyncio.create_task(produce())
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                try:
                    await producer
                except asyncio.CancelledError:
                    self.logger.info("agent_stream_cancelled")

    async def _execute(self, user_message: str, emit: Emit | None) -> AgentRunResult:
        if self._running:
            raise RuntimeError("Agent is already running")
        self._running = True
        try:
            await self._drain_inflight()
            return await self._loop(user_message, emit)
        finally:
            self._running = False

    async def _loop(self, user_message: str, emit: Emit | None) -> AgentRunResult:
        streaming = emit is not None
        self.memory.add_message(Message.user(user_message))

        self.logger.info(
            "agent_run_start",
            streaming=streaming,
            max_iterations=self.max_iterations,
            history=len(self.memory),
        )

        final_response = ""
        iterations = 0
        reached_cap = False
        all_calls: list[ToolCall] = []
        all_results: list[ToolResult] = []

        try:
            while True:
                iterations += 1
                content, tool_calls = await self._generate(emit)
                if content.strip():
                    final_response = content

                self.logger.debug(
                    "agent_generation_complete",
                    iteration=iterations,
                    content_length=len(content),
                    tool_calls=len(tool_calls),
                )

                if not tool_calls:
                    self.memory.add_message(Message.assistant(content))
                    break

                if emit is not None:
                    for call in tool_calls:
                        await emit(ToolCallEvent(tool_call=call))

                results: list[ToolResult] = []
                for call in tool_calls:
                    result = await self._dispatch(call)
                    results.append(result)
                    if emit is not None:
                        await emit(ToolResultEvent(tool_result=result))

                self.memory.add_message(Message.assistant(content, tool_calls))
                self.memory.add_message(Message.tool(results))
                all_calls.extend(tool_calls)
                all_results.extend(results)

                if iterations >= self.max_iterations:
                    reached_cap = True
                    self.logger.warning("agent_max_iterations_reached", iterations=iterations)
                    break

        except asyncio.CancelledError:
            self.logger.info("agent_run_cancelled", iterations=iterations)
            raise
        except Exception as e:
            self.logger.error("agent_run_failed", iterations=iterations, error=str(e))
            raise

        self.logger.info(
            "agent_run_complete",
            iterations=iterations,
            tool_calls=len(all_calls),
            reached_iteration_cap=reached_cap,
        )
        return AgentRunResult(
            final_response=final_response,
            messages=list(self.memory.get_messages()),
            tool_calls=all_calls,
            tool_results=all_results,
            iterations=iterations,
            reached_iteration_cap=reached_cap,
        )

    async def _generate(self, emit: Emit | None) -> tuple[str, list[ToolCall]]:
        messages = self.memory.get_messages()
        tools = self.tool_executor.definitions

        if emit is None:
            response = await self.model_adapter.generate(messages, tools)
            return response.content, list(response.tool_calls)

        # Tool calls are held back so a round's thoughts always precede its calls.
        parts: list[str] = []
        tool_calls: list[ToolCall] = []
        async for chunk in self.model_adapter.generate_stream(messages, tools):
            if isinstance(chunk, TextChunk):
                if chunk.content:
                    parts.append(chunk.content)
                    await emit(ThoughtEvent(content=chunk.content))
            else:
                tool_calls.append(chunk.tool_call)
        return "".join(parts), tool_calls

    async def _drain_inflight(self) -> None:
        """Wait for tool calls left running by a cancelled stream."""
        if not self._inflight:
            return
        self.logger.info("agent_waiting_for_inflight_tools", pending=len(self._inflight))
        await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _dispatch(self, call: ToolCall) -> ToolResult:
        # Shielded so a cancelled run never interrupts a tool halfway through.
        task = asyncio.ensure_future(self.tool_executor.execute(call))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)


def create_agent(
    api_key: str,
    *,
    sandbox: Sandbox,
    model: str | None = None,
    provider: str | None = None,
    system_prompt: str | None = None,
    max_iterations: int | None = None,
    memory: ConversationMemory | None = None,
    **adapter_options: Any,
) -> Agent:
    """
    Build an agent wired to a sandbox's built-in tools.

    Args:
        api_key: Model provider credential
        sandbox: Initialized sandbox the tools act on
        model: Model identifier (defaults to settings)
        provider: "openrouter" or "gemini" (defaults to settings)
        system_prompt: System prompt (defaults to the built-in prompt)
        max_iterations: Generation cap per run (defaults to settings)
        memory: Restored memory to continue from
        **adapter_options: Passed to the model adapter

    Returns:
        Configured agent
    """
    settings = get_settings()
    adapter = create_model_adapter(
        provider or settings.default_provider,
        api_key=api_key,
        model=model or settings.default_model,
        **adapter_options,
    )
    if memory is None:
        memory = ConversationMemory(system_prompt or DEFAULT_SYSTEM_PROMPT)

    logger.info(
        "agent_created",
        provider=adapter.provider,
        model=adapter.model_name,
        sandbox_type=sandbox.sandbox_type.value,
    )
    return Agent(
        model_adapter=adapter,
        tool_executor=build_sandbox_toolset(sandbox),
        memory=memory,
        max_iterations=max_iterations or settings.max_iterations,
    )
