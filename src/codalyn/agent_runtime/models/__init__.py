"""Data models for agent runtime."""

from .agent_state import (
    AgentEvent,
    AgentRunResult,
    ResponseEvent,
    ThoughtEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from .chat_sections import ChatSection, ChatSectionType
from .error_types import (
    AdapterError,
    CodalynError,
    CommandTimeoutError,
    ConversationStoreError,
    SandboxError,
    SandboxNotInitializedError,
    SandboxOperationError,
    SandboxUnsupportedError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolValidationError,
)
from .messages import (
    Message,
    MessageRole,
    ModelResponse,
    StreamChunk,
    TextChunk,
    ToolCall,
    ToolCallChunk,
    ToolResult,
)
from .sandbox import (
    CommandOptions,
    LogEntry,
    LogLevel,
    ProcessResult,
    SandboxInfo,
    SandboxPort,
    SandboxType,
)
from .session import TranscriptEntry, TranscriptEntryKind
from .tool_integration import ToolDefinition

__all__ = [
    "AdapterError",
    "AgentEvent",
    "AgentRunResult",
    "ChatSection",
    "ChatSectionType",
    "CodalynError",
    "CommandOptions",
    "CommandTimeoutError",
    "ConversationStoreError",
    "LogEntry",
    "LogLevel",
    "Message",
    "MessageRole",
    "ModelResponse",
    "ProcessResult",
    "ResponseEvent",
    "SandboxError",
    "SandboxInfo",
    "SandboxNotInitializedError",
    "SandboxOperationError",
    "SandboxPort",
    "SandboxType",
    "SandboxUnsupportedError",
    "StreamChunk",
    "TextChunk",
    "ThoughtEvent",
    "ToolCall",
    "ToolCallChunk",
    "ToolCallEvent",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResult",
    "ToolResultEvent",
    "ToolValidationError",
    "TranscriptEntry",
    "TranscriptEntryKind",
]
