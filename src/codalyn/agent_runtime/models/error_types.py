"""
Error types for the agent runtime.

Adapter errors are fatal to a run and propagate to the caller. Tool execution
errors are caught per call and fed back to the model. Sandbox state errors
surface from whichever sandbox method was invoked. Command timeouts are kept
apart from ordinary non-zero exits.
"""

from __future__ import annotations


class CodalynError(Exception):
    """Base exception for all agent runtime errors."""


class AdapterError(CodalynError):
    """Transport, authentication or quota failure from a model backend."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        """Initialize adapter error."""
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ToolExecutionError(CodalynError):
    """Base exception for tool execution errors."""


class ToolNotFoundError(ToolExecutionError):
    """Raised when a tool call names no bound implementation."""


class ToolValidationError(ToolExecutionError):
    """Raised when tool arguments fail validation."""


class SandboxError(CodalynError):
    """Base exception for sandbox failures."""


class SandboxNotInitializedError(SandboxError):
    """Raised when a sandbox is used before init() or after destroy()."""

    def __init__(self, message: str = "Sandbox not initialized") -> None:
        super().__init__(message)


class SandboxUnsupportedError(SandboxError):
    """Raised when a sandbox variant cannot perform an operation."""


class SandboxOperationError(SandboxError):
    """Raised when a sandbox operation fails (missing file, bad path, ...)."""


class CommandTimeoutError(SandboxError):
    """Raised when run_command exceeds its timeout and the process is killed."""

    def __init__(self, command: str, timeout_ms: int) -> None:
        """Initialize command timeout error."""
        super().__init__(f"Command timed out after {timeout_ms}ms: {command}")
        self.command = command
        self.timeout_ms = timeout_ms


class ConversationStoreError(CodalynError):
    """Raised when a conversation cannot be saved or loaded."""
