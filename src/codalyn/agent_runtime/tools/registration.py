"""Wire the built-in tools to one sandbox."""

from collections.abc import Iterable

import structlog

from ..sandbox import Sandbox
from .base import SandboxTool
from .builtin import BUILTIN_TOOL_CLASSES
from .executor import ToolExecutor
from .registry import ToolRegistry

logger = structlog.get_logger()


def build_sandbox_toolset(
    sandbox: Sandbox,
    include: Iterable[str] | None = None,
) -> ToolExecutor:
    """
    Build a tool executor whose tools all act on the given sandbox.

    Args:
        sandbox: Sandbox the tools operate on
        include: Tool names to keep (all built-in tools when omitted)

    Returns:
        Executor over a fixed registry of the selected tools

    Raises:
        ValueError: If include names an unknown tool
    """
    tools: list[SandboxTool] = [tool_class(sandbox) for tool_class in BUILTIN_TOOL_CLASSES]

    if include is not None:
        wanted = set(include)
        unknown = wanted - {tool.name for tool in tools}
        if unknown:
            raise ValueError(f"Unknown built-in tools: {', '.join(sorted(unknown))}")
        tools = [tool for tool in tools if tool.name in wanted]

    registry = ToolRegistry(tool.definition for tool in tools)
    logger.info(
        "sandbox_toolset_built",
        sandbox_type=sandbox.sandbox_type.value,
        tools=len(registry),
    )
    return ToolExecutor(registry, {tool.name: tool for tool in tools})
