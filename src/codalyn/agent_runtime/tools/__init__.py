"""Tool definitions, registry and executor."""

from .base import SandboxTool, Tool
from .executor import ToolExecutor, ToolImplementation
from .registration import build_sandbox_toolset
from .registry import ToolRegistry

__all__ = [
    "SandboxTool",
    "Tool",
    "ToolExecutor",
    "ToolImplementation",
    "ToolRegistry",
    "build_sandbox_toolset",
]
