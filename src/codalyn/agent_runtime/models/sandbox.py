"""Sandbox models shared by every execution backend."""

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_serializer


class SandboxType(str, Enum):
    """Execution backends a sandbox can be created on."""

    MOCK = "mock"
    CONTAINER = "container"
    BROWSER_HOSTED = "browser-hosted"


class LogLevel(str, Enum):
    """Console log severities."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"


LogLevelFilter = Literal["all", "error", "warn", "info"]


class LogEntry(BaseModel):
    """A captured console line."""

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Capture timestamp",
    )
    level: LogLevel = Field(default=LogLevel.INFO, description="Log severity")
    text: str = Field(description="Log text")

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        """Serialize datetime to ISO format string."""
        return value.isoformat()


class SandboxPort(BaseModel):
    """A network port registered in the sandbox."""

    port: int = Field(ge=1, le=65535, description="Port number")
    protocol: Literal["http", "https"] = Field(
        default="http",
        description="Port protocol",
    )


class CommandOptions(BaseModel):
    """Options accepted by run_command."""

    cwd: str | None = Field(default=None, description="Working directory")
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables",
    )
    timeout_ms: int | None = Field(
        default=None,
        ge=1,
        description="Kill the command after this many milliseconds",
    )
    background: bool = Field(
        default=False,
        description="Return immediately instead of waiting for completion",
    )


class ProcessResult(BaseModel):
    """Aggregated output of a finished command."""

    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    exit_code: int = Field(description="Process exit status")

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class SandboxInfo(BaseModel):
    """Sandbox type and readiness."""

    type: SandboxType = Field(description="Backend type")
    ready: bool = Field(description="Whether the sandbox accepts operations")
