"""Visible transcript models for a project session."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .chat_sections import ChatSection


class TranscriptEntryKind(str, Enum):
    """Kinds of entries shown in a session transcript."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_SUMMARY = "tool_summary"
    ERROR = "error"


class TranscriptEntry(BaseModel):
    """One visible line of a session transcript."""

    model_config = ConfigDict(frozen=True)

    kind: TranscriptEntryKind = Field(description="Entry kind")
    content: str = Field(description="Display text")
    sections: list[ChatSection] = Field(
        default_factory=list,
        description="Segmented assistant text (assistant entries only)",
    )
