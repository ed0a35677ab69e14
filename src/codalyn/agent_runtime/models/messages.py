"""Conversation message models shared by the agent loop and model adapters."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Roles a message can take in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """Tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Provider call identifier")
    name: str = Field(description="Name of tool to call")
    args: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured tool arguments",
    )


class ToolResult(BaseModel):
    """Outcome of one tool call."""

    model_config = ConfigDict(frozen=True)

    tool_call_id: str | None = Field(
        default=None,
        description="Identifier of the call this result answers",
    )
    name: str = Field(description="Tool name")
    result: Any = Field(default=None, description="Tool result data")
    error: str | None = Field(default=None, description="Error message if failed")

    @property
    def success(self) -> bool:
        """Whether the tool call succeeded."""
        return self.error is None


class Message(BaseModel):
    """A single conversation turn. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole = Field(description="Message role")
    content: str = Field(default="", description="Text content (may be empty)")
    tool_calls: list[ToolCall] = Field(
        default_factory=list,
        description="Tool calls made by an assistant turn",
    )
    tool_results: list[ToolResult] = Field(
        default_factory=list,
        description="Tool results carried by a tool turn",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Creation timestamp",
    )

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: list[ToolCall] | None = None
    ) -> "Message":
        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            tool_calls=tool_calls or [],
        )

    @classmethod
    def tool(cls, tool_results: list[ToolResult]) -> "Message":
        return cls(role=MessageRole.TOOL, tool_results=tool_results)


class ModelResponse(BaseModel):
    """Normalized one-shot response from a model adapter."""

    content: str = Field(default="", description="Generated text content")
    tool_calls: list[ToolCall] = Field(
        default_factory=list,
        description="Tool calls requested by the model",
    )
    finish_reason: Literal["stop", "tool_calls", "max_tokens", "error"] = Field(
        default="stop",
        description="Reason for completion",
    )


class TextChunk(BaseModel):
    """Incremental text from a streaming generation."""

    type: Literal["text"] = "text"
    content: str


class ToolCallChunk(BaseModel):
    """A complete tool call surfaced by a streaming generation."""

    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCall


StreamChunk = Annotated[TextChunk | ToolCallChunk, Field(discriminator="type")]
