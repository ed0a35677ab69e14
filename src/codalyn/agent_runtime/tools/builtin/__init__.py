"""Built-in sandbox tools."""

from .file_operations_tools import (
    CreateDirectoryTool,
    DeletePathTool,
    GlobSearchTool,
    ListDirectoryTool,
    ReadFileTool,
    ReplaceInFileTool,
    WriteFileTool,
)
from .process_tools import RunCommandTool
from .sandbox_tools import (
    GetConsoleLogsTool,
    OpenPortTool,
    PortListTool,
    SandboxInfoTool,
)

BUILTIN_TOOL_CLASSES = (
    ReadFileTool,
    WriteFileTool,
    ListDirectoryTool,
    CreateDirectoryTool,
    DeletePathTool,
    GlobSearchTool,
    ReplaceInFileTool,
    RunCommandTool,
    OpenPortTool,
    PortListTool,
    SandboxInfoTool,
    GetConsoleLogsTool,
)

__all__ = [
    "BUILTIN_TOOL_CLASSES",
    "CreateDirectoryTool",
    "DeletePathTool",
    "GetConsoleLogsTool",
    "GlobSearchTool",
    "ListDirectoryTool",
    "OpenPortTool",
    "PortListTool",
    "ReadFileTool",
    "ReplaceInFileTool",
    "RunCommandTool",
    "SandboxInfoTool",
    "WriteFileTool",
]
