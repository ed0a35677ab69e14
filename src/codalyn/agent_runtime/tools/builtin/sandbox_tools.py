"""Sandbox inspection tools: ports, info and console logs."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from ...models.sandbox import LogLevelFilter
from ..base import SandboxTool


class SandboxInfoTool(SandboxTool):
    name = "sandbox_info"
    description = "Get information about the sandbox"

    async def execute(self, params: Any) -> dict[str, Any]:
        info = await self.sandbox.get_info()
        return info.model_dump(mode="json")


class PortListTool(SandboxTool):
    name = "port_list"
    description = "List open ports in the sandbox"

    async def execute(self, params: Any) -> list[dict[str, Any]]:
        return [port.model_dump(mode="json") for port in await self.sandbox.get_ports()]


class OpenPortParams(BaseModel):
    port: int = Field(ge=1, le=65535, description="Port number")
    protocol: Literal["http", "https"] = Field(default="http", description="Protocol")


class OpenPortTool(SandboxTool):
    name = "open_port"
    description = "Open a port for access"
    params_model = OpenPortParams

    async def execute(self, params: OpenPortParams) -> str:
        await self.sandbox.open_port(params.port, params.protocol)
        return f"Opened port {params.port} ({params.protocol})"


class GetConsoleLogsParams(BaseModel):
    limit: int | None = Field(
        default=None,
        ge=1,
        description="Maximum number of entries (default 50)",
    )
    level: LogLevelFilter = Field(default="all", description="Only entries of this level")
    since: datetime | None = Field(
        default=None,
        description="Only entries after this time (ISO 8601 or epoch milliseconds)",
    )


class GetConsoleLogsTool(SandboxTool):
    name = "get_console_logs"
    description = (
        "Read recent console output and errors from the sandbox, newest first. "
        "Use this to diagnose build or runtime errors."
    )
    params_model = GetConsoleLogsParams

    async def execute(self, params: GetConsoleLogsParams) -> dict[str, Any]:
        logs = await self.sandbox.get_console_logs(
            limit=params.limit,
            level=params.level,
            since=params.since,
        )
        return {
            "logs": [entry.model_dump(mode="json") for entry in logs],
            "count": len(logs),
        }
