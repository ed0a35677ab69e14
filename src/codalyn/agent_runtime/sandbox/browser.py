"""
Browser-hosted sandbox.

The project runs in an in-browser runtime (a WebContainer). The page exposes
a small JSON bridge over HTTP; every request is `POST {bridge_url}/{op}` and
every reply is `{"ok": true, "result": ...}` or
`{"ok": false, "error": "...", "code": "..."}`.
"""

from datetime import datetime
from typing import Any

import httpx

from ..config import get_settings
from ..models.error_types import SandboxOperationError, SandboxUnsupportedError
from ..models.sandbox import (
    CommandOptions,
    LogEntry,
    ProcessResult,
    SandboxPort,
    SandboxType,
)
from .base import Sandbox


class BrowserSandbox(Sandbox):
    """Sandbox whose file system and processes live in a browser runtime."""

    sandbox_type = SandboxType.BROWSER_HOSTED

    def __init__(
        self,
        bridge_url: str | None = None,
        timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        log_capacity: int | None = None,
    ) -> None:
        """
        Initialize browser-hosted sandbox.

        Args:
            bridge_url: Base URL of the page's sandbox bridge
            timeout_seconds: Per-request timeout (command waits are unbounded)
            transport: Optional httpx transport
            log_capacity: Console log ring buffer capacity
        """
        super().__init__(log_capacity)
        settings = get_settings()
        self.bridge_url = (bridge_url or settings.sandbox_browser_bridge_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.sandbox_browser_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._remote_pids: dict[str, Any] = {}
        self._last_log_at: datetime | None = None

    async def _call(
        self,
        operation: str,
        payload: dict[str, Any] | None = None,
        unbounded: bool = False,
    ) -> Any:
        if self._client is None:
            raise SandboxOperationError("Browser bridge not connected")

        kwargs: dict[str, Any] = {"json": payload or {}}
        if unbounded:
            kwargs["timeout"] = None
        try:
            response = await self._client.post(f"/{operation}", **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            self.logger.error("browser_bridge_request_failed", operation=operation, error=str(e))
            raise SandboxOperationError(f"Browser bridge {operation} failed: {e}") from e
        except ValueError as e:
            raise SandboxOperationError(f"Browser bridge {operation} returned invalid JSON") from e

        if not body.get("ok", False):
            message = body.get("error") or f"{operation} failed"
            if body.get("code") == "unsupported":
                raise SandboxUnsupportedError(message)
            raise SandboxOperationError(message)
        return body.get("result")

    # Lifecycle

    async def _start(self, environment: dict[str, str]) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.bridge_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )
        try:
            await self._call("boot", {"environment": environment})
        except Exception:
            await self._client.aclose()
            self._client = None
            raise
        self.logger.info("browser_sandbox_connected", bridge_url=self.bridge_url)

    async def _stop(self) -> None:
        if self._client is None:
            return
        try:
            await self._call("teardown")
        except SandboxOperationError as e:
            self.logger.warning("browser_sandbox_teardown_failed", error=str(e))
        await self._client.aclose()
        self._client = None
        self._remote_pids.clear()

    # File system

    async def _read_file(self, path: str) -> str:
        return await self._call("fs/readFile", {"path": path})

    async def _write_file(self, path: str, content: str) -> None:
        await self._call("fs/writeFile", {"path": path, "content": content})

    async def _readdir(self, path: str) -> list[str]:
        return list(await self._call("fs/readdir", {"path": path}))

    async def _mkdir(self, path: str, recursive: bool) -> None:
        await self._call("fs/mkdir", {"path": path, "recursive": recursive})

    async def _delete_path(self, path: str, recursive: bool) -> None:
        await self._call("fs/rm", {"path": path, "recursive": recursive})

    async def _glob(self, pattern: str) -> list[str]:
        return list(await self._call("fs/glob", {"pattern": pattern}))

    # Commands

    async def _execute_command(
        self,
        process_id: str,
        command: str,
        options: CommandOptions,
    ) -> ProcessResult:
        spawned = await self._call(
            "process/spawn",
            {"command": command, "cwd": options.cwd, "env": options.env},
        )
        remote_pid = spawned["pid"]
        self._remote_pids[process_id] = remote_pid
        try:
            result = await self._call("process/wait", {"pid": remote_pid}, unbounded=True)
        except SandboxOperationError:
            self._remote_pids.pop(process_id, None)
            raise
        # Left registered on cancellation so the timeout path can still kill it.
        self._remote_pids.pop(process_id, None)
        return ProcessResult.model_validate(result)

    async def _kill_process(self, process_id: str) -> None:
        remote_pid = self._remote_pids.pop(process_id, None)
        if remote_pid is None or self._client is None:
            return
        try:
            await self._call("process/kill", {"pid": remote_pid})
        except SandboxOperationError as e:
            self.logger.error("browser_process_kill_failed", pid=remote_pid, error=str(e))

    # Ports and logs

    async def _open_port(self, port: SandboxPort) -> None:
        await self._call("ports/open", {"port": port.port, "protocol": port.protocol})

    async def _refresh_logs(self) -> None:
        since = self._last_log_at.isoformat() if self._last_log_at else None
        entries = await self._call("logs", {"since": since}) or []
        for raw in entries:
            entry = LogEntry.model_validate(raw)
            self._logs.append(entry)
            if self._last_log_at is None or entry.timestamp > self._last_log_at:
                self._last_log_at = entry.timestamp
