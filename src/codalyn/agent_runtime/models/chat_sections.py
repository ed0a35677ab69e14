"""Typed sections of assistant output."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatSectionType(str, Enum):
    """Kinds of assistant text the segmenter recognizes."""

    THINKING = "thinking"
    PLAN = "plan"
    NARRATIVE = "narrative"


class ChatSection(BaseModel):
    """A contiguous, classified slice of assistant text."""

    model_config = ConfigDict(frozen=True)

    type: ChatSectionType = Field(description="Section classification")
    content: str = Field(description="Section text, trimmed")
