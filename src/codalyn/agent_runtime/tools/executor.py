"""Tool executor binding implementations to registered definitions."""

import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog

from ..models.error_types import CodalynError, ToolNotFoundError
from ..models.messages import ToolCall, ToolResult
from ..models.tool_integration import ToolDefinition
from .registry import ToolRegistry

logger = structlog.get_logger()

ToolImplementation = Callable[[dict[str, Any]], Awaitable[Any]]


class ToolExecutor:
    """Dispatches tool calls to their implementations.

    Every definition in the registry must have an implementation bound under
    the same name; the executor refuses to build otherwise. Failures of a call
    are returned as a ToolResult error and never raised, so one broken tool
    cannot end an agent run.

    Example:
        ```python
        executor = ToolExecutor(registry, {"read_file": read_file_tool})
        result = await executor.execute(ToolCall(name="read_file", args={"path": "a.txt"}))
        if not result.success:
            print(result.error)
        ```
    """

    def __init__(
        self,
        registry: ToolRegistry,
        implementations: Mapping[str, ToolImplementation],
    ):
        """Initialize tool executor.

        Args:
            registry: Tool definitions offered to the model
            implementations: Async callables keyed by tool name

        Raises:
            ValueError: If a definition has no implementation, or an
                implementation has no definition
        """
        missing = [name for name in registry.names() if name not in implementations]
        if missing:
            raise ValueError(f"No implementation bound for tools: {', '.join(missing)}")
        unknown = [name for name in implementations if name not in registry]
        if unknown:
            raise ValueError(f"Implementations without a definition: {', '.join(unknown)}")

        self.registry = registry
        self._implementations = dict(implementations)
        self.logger = logger.bind(component="tool_executor")

    @property
    def definitions(self) -> tuple[ToolDefinition, ...]:
        return self.registry.definitions

    async def execute(self, tool_call: ToolCall) -> ToolResult:
        """Run one tool call and capture its outcome.

        Args:
            tool_call: Call requested by the model

        Returns:
            ToolResult with either result or error set
        """
        start_time = time.time()
        implementation = self._implementations.get(tool_call.name)

        try:
            if implementation is None:
                raise ToolNotFoundError(f"Tool not found: {tool_call.name}")
            result = await implementation(dict(tool_call.args))
        except CodalynError as e:
            return self._failure(tool_call, e, start_time)
        except Exception as e:
            self.logger.exception("tool_execution_crashed", tool_name=tool_call.name)
            return self._failure(tool_call, e, start_time)

        self.logger.info(
            "tool_execution_completed",
            tool_name=tool_call.name,
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return ToolResult(
            tool_call_id=tool_call.id,
            name=tool_call.name,
            result=result,
        )

    def _failure(self, tool_call: ToolCall, error: Exception, start_time: float) -> ToolResult:
        self.logger.warning(
            "tool_execution_failed",
            tool_name=tool_call.name,
            error=str(error),
            error_type=type(error).__name__,
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return ToolResult(
            tool_call_id=tool_call.id,
            name=tool_call.name,
            error=str(error) or type(error).__name__,
        )
