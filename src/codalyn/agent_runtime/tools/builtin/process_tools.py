"""Command execution tool."""

from typing import Any

from pydantic import BaseModel, Field

from ...config import get_settings
from ...models.sandbox import CommandOptions
from ..base import SandboxTool


class RunCommandParams(BaseModel):
    command: str = Field(min_length=1, description="Shell command to execute")
    cwd: str | None = Field(default=None, description="Working directory (default: workspace root)")
    env: dict[str, str] = Field(default_factory=dict, description="Environment variables to set")
    timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout in milliseconds (default from settings)",
    )
    background: bool = Field(default=False, description="Run in background")


class RunCommandTool(SandboxTool):
    name = "run_command"
    description = "Execute a shell command in the workspace"
    params_model = RunCommandParams

    async def execute(self, params: RunCommandParams) -> dict[str, Any]:
        options = CommandOptions(
            cwd=params.cwd,
            env=params.env,
            timeout_ms=params.timeout or get_settings().sandbox_command_timeout_ms,
            background=params.background,
        )
        process = await self.sandbox.run_command(params.command, options)
        if params.background:
            self.logger.info("background_command_started", process_id=process.id)
            return {"process_id": process.id, "command": params.command, "background": True}

        result = await process.wait()
        return result.model_dump()
