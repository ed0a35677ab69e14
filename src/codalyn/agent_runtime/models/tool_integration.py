"""Tool integration models for agent runtime."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ToolDefinition(BaseModel):
    """Definition of a tool the model may call."""

    name: str = Field(description="Unique tool name within a registry")
    description: str = Field(description="Tool functionality description")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema for the tool arguments",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject empty tool names."""
        if not v or not v.strip():
            raise ValueError("Tool name cannot be empty")
        return v
