"""Agent execution result and streaming event models."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from .messages import Message, ToolCall, ToolResult


class AgentRunResult(BaseModel):
    """Result of one non-streaming agent run."""

    final_response: str = Field(description="Last text generated by the model")
    messages: list[Message] = Field(description="Full memory snapshot after the run")
    tool_calls: list[ToolCall] = Field(
        default_factory=list,
        description="Every tool call made during the run, in order",
    )
    tool_results: list[ToolResult] = Field(
        default_factory=list,
        description="Every tool result produced during the run, in order",
    )
    iterations: int = Field(description="Number of model generations performed")
    reached_iteration_cap: bool = Field(
        default=False,
        description="True when the run stopped at max_iterations with tools pending",
    )


class ThoughtEvent(BaseModel):
    """Text streamed by the model while it generates."""

    type: Literal["thought"] = "thought"
    content: str


class ToolCallEvent(BaseModel):
    """A tool call received from the model."""

    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCall


class ToolResultEvent(BaseModel):
    """The result of a dispatched tool call."""

    type: Literal["tool_result"] = "tool_result"
    tool_result: ToolResult


class ResponseEvent(BaseModel):
    """Final text of the run; always the last event."""

    type: Literal["response"] = "response"
    content: str
    iterations: int = 0
    reached_iteration_cap: bool = False


AgentEvent = Annotated[
    ThoughtEvent | ToolCallEvent | ToolResultEvent | ResponseEvent,
    Field(discriminator="type"),
]
