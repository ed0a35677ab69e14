"""
Sandbox contract shared by every execution backend.

The public methods enforce the lifecycle (nothing works before init() or after
destroy()), the command timeout, and console log capture. Backends implement
the underscore-prefixed hooks only.
"""

import asyncio
import fnmatch
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from ..config import get_settings
from ..models.error_types import (
    CommandTimeoutError,
    SandboxNotInitializedError,
)
from ..models.sandbox import (
    CommandOptions,
    LogEntry,
    LogLevel,
    LogLevelFilter,
    ProcessResult,
    SandboxInfo,
    SandboxPort,
    SandboxType,
)

logger = structlog.get_logger()

DEFAULT_LOG_CAPACITY = 1000


class LogBuffer:
    """Fixed-capacity ring buffer of console log entries, oldest evicted first."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("Log buffer capacity must be positive")
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: LogEntry) -> None:
        self._entries.append(entry)

    def add(self, level: LogLevel, text: str) -> LogEntry:
        entry = LogEntry(level=level, text=text)
        self._entries.append(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def query(
        self,
        limit: int = 50,
        level: LogLevelFilter = "all",
        since: datetime | None = None,
    ) -> list[LogEntry]:
        """
        Return entries newest first, filtered, then truncated to limit.

        Args:
            limit: Maximum number of entries to return
            level: "all" or a single level to keep
            since: Only entries captured strictly after this instant

        Returns:
            Matching log entries, newest first
        """
        matches: list[LogEntry] = []
        if limit <= 0:
            return matches
        for entry in reversed(self._entries):
            if level != "all" and entry.level.value != level:
                continue
            if since is not None and entry.timestamp <= since:
                continue
            matches.append(entry)
            if len(matches) >= limit:
                break
        return matches


class SandboxProcess:
    """Handle to a command started in a sandbox."""

    def __init__(
        self,
        process_id: str,
        command: str,
        task: "asyncio.Task[ProcessResult]",
        kill: Callable[[], Awaitable[None]],
    ) -> None:
        self.id = process_id
        self.command = command
        self._task = task
        self._kill = kill

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> ProcessResult:
        """
        Wait for the command to finish.

        Raises:
            CommandTimeoutError: If the command exceeded its timeout
        """
        return await asyncio.shield(self._task)

    async def kill(self) -> None:
        """Terminate the command if it is still running."""
        if not self._task.done():
            self._task.cancel()
            await self._kill()

    def __repr__(self) -> str:
        return f"SandboxProcess(id={self.id!r}, command={self.command!r}, done={self.done})"


def match_glob(paths: list[str], pattern: str) -> list[str]:
    """Filter paths by a glob pattern; patterns without wildcards match as substrings."""
    if any(ch in pattern for ch in "*?["):
        normalized = pattern[2:] if pattern.startswith("./") else pattern
        return [p for p in paths if fnmatch.fnmatchcase(p, normalized)]
    return [p for p in paths if pattern in p]


class Sandbox(ABC):
    """Uniform file-system, process, port and log surface over an execution backend."""

    sandbox_type: SandboxType

    def __init__(self, log_capacity: int | None = None) -> None:
        settings = get_settings()
        self._ready = False
        self._destroyed = False
        self._ports: dict[int, SandboxPort] = {}
        self._logs = LogBuffer(log_capacity or settings.sandbox_log_capacity)
        self._processes: dict[str, asyncio.Task[ProcessResult]] = {}
        self._default_log_limit = settings.sandbox_default_log_limit
        self.logger = logger.bind(sandbox_type=self.sandbox_type.value)

    # Lifecycle

    async def init(
        self,
        files: dict[str, str] | None = None,
        environment: dict[str, str] | None = None,
    ) -> None:
        """
        Prepare the backend and seed files.

        Args:
            files: Mapping of path to content written after startup
            environment: Environment variables applied to every command
        """
        if self._destroyed:
            raise SandboxNotInitializedError("Sandbox already destroyed")
        if self._ready:
            return

        await self._start(environment or {})
        self._ready = True
        try:
            for path, content in (files or {}).items():
                await self._write_file(path, content)
        except Exception:
            await self.destroy()
            raise

        self.logger.info("sandbox_initialized", seeded_files=len(files or {}))

    async def destroy(self) -> None:
        """Release every resource held by the sandbox. Safe to call repeatedly."""
        if self._destroyed:
            return
        was_ready = self._ready
        self._ready = False
        self._destroyed = True

        for process_id, task in list(self._processes.items()):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    self.logger.debug(
                        "sandbox_process_failed_during_destroy",
                        process_id=process_id,
                        error=str(e),
                    )
                if was_ready:
                    await self._kill_process(process_id)
        self._processes.clear()

        await self._stop()
        self._ports.clear()
        self._logs.clear()
        self.logger.info("sandbox_destroyed")

    async def get_info(self) -> SandboxInfo:
        return SandboxInfo(type=self.sandbox_type, ready=self._ready)

    @property
    def ready(self) -> bool:
        return self._ready

    def _ensure_ready(self) -> None:
        if self._destroyed:
            raise SandboxNotInitializedError("Sandbox already destroyed")
        if not self._ready:
            raise SandboxNotInitializedError()

    # File system

    async def read_file(self, path: str) -> str:
        self._ensure_ready()
        return await self._read_file(path)

    async def write_file(self, path: str, content: str) -> None:
        self._ensure_ready()
        await self._write_file(path, content)

    async def readdir(self, path: str = ".") -> list[str]:
        self._ensure_ready()
        return await self._readdir(path)

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        self._ensure_ready()
        await self._mkdir(path, recursive)

    async def delete_path(self, path: str, recursive: bool = False) -> None:
        self._ensure_ready()
        await self._delete_path(path, recursive)

    async def glob(self, pattern: str) -> list[str]:
        self._ensure_ready()
        return await self._glob(pattern)

    # Processes

    async def run_command(
        self,
        command: str,
        options: CommandOptions | None = None,
        **kwargs: Any,
    ) -> SandboxProcess:
        """
        Start a command.

        Foreground commands are awaited before returning, so a timeout raises
        CommandTimeoutError here. Background commands return at once and
        surface their outcome through SandboxProcess.wait().

        Args:
            command: Shell command line
            options: Command options (cwd, env, timeout_ms, background)
            **kwargs: Option fields, used when options is not given

        Returns:
            Process handle
        """
        self._ensure_ready()
        options = options or CommandOptions(**kwargs)
        process_id = uuid.uuid4().hex[:12]

        self.logger.debug(
            "sandbox_command_started",
            process_id=process_id,
            command=command,
            timeout_ms=options.timeout_ms,
            background=options.background,
        )

        task = asyncio.create_task(self._supervise(process_id, command, options))
        self._processes[process_id] = task
        task.add_done_callback(lambda _t: self._processes.pop(process_id, None))

        handle = SandboxProcess(
            process_id,
            command,
            task,
            kill=lambda: self._kill_process(process_id),
        )
        if not options.background:
            await handle.wait()
        return handle

    def running_processes(self) -> list[str]:
        """Identifiers of commands that have not finished yet."""
        return [pid for pid, task in self._processes.items() if not task.done()]

    async def _supervise(
        self,
        process_id: str,
        command: str,
        options: CommandOptions,
    ) -> ProcessResult:
        execution = self._execute_command(process_id, command, options)
        if options.timeout_ms is None:
            result = await execution
        else:
            try:
                result = await asyncio.wait_for(
                    execution, timeout=options.timeout_ms / 1000
                )
            except asyncio.TimeoutError as e:
                await self._kill_process(process_id)
                self._logs.add(
                    LogLevel.ERROR,
                    f"Command timed out after {options.timeout_ms}ms: {command}",
                )
                self.logger.warning(
                    "sandbox_command_timeout",
                    process_id=process_id,
                    command=command,
                    timeout_ms=options.timeout_ms,
                )
                raise CommandTimeoutError(command, options.timeout_ms) from e

        self._record_output(result)
        self.logger.debug(
            "sandbox_command_finished",
            process_id=process_id,
            exit_code=result.exit_code,
        )
        return result

    def _record_output(self, result: ProcessResult) -> None:
        for line in result.stdout.splitlines():
            if line.strip():
                self._logs.add(LogLevel.INFO, line)
        for line in result.stderr.splitlines():
            if line.strip():
                self._logs.add(LogLevel.ERROR, line)

    # Ports

    async def open_port(self, port: int, protocol: str = "http") -> None:
        self._ensure_ready()
        entry = SandboxPort(port=port, protocol=protocol)
        await self._open_port(entry)
        self._ports[port] = entry
        self.logger.info("sandbox_port_opened", port=port, protocol=protocol)

    async def get_ports(self) -> list[SandboxPort]:
        self._ensure_ready()
        return list(self._ports.values())

    # Logs

    async def get_console_logs(
        self,
        limit: int | None = None,
        level: LogLevelFilter = "all",
        since: datetime | None = None,
    ) -> list[LogEntry]:
        """Console entries newest first, filtered then truncated (default limit 50)."""
        self._ensure_ready()
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=UTC)
        await self._refresh_logs()
        return self._logs.query(
            limit=limit if limit is not None else self._default_log_limit,
            level=level,
            since=since,
        )

    def log(self, level: LogLevel, text: str) -> LogEntry:
        """Append a console entry on behalf of the running project."""
        return self._logs.add(level, text)

    # Backend hooks

    @abstractmethod
    async def _start(self, environment: dict[str, str]) -> None:
        """Bring up the backend."""

    @abstractmethod
    async def _stop(self) -> None:
        """Tear down the backend."""

    @abstractmethod
    async def _read_file(self, path: str) -> str: ...

    @abstractmethod
    async def _write_file(self, path: str, content: str) -> None: ...

    @abstractmethod
    async def _readdir(self, path: str) -> list[str]: ...

    @abstractmethod
    async def _mkdir(self, path: str, recursive: bool) -> None: ...

    @abstractmethod
    async def _delete_path(self, path: str, recursive: bool) -> None: ...

    @abstractmethod
    async def _glob(self, pattern: str) -> list[str]: ...

    @abstractmethod
    async def _execute_command(
        self,
        process_id: str,
        command: str,
        options: CommandOptions,
    ) -> ProcessResult:
        """Run a command to completion. Cancellation must stop the command."""

    @abstractmethod
    async def _kill_process(self, process_id: str) -> None:
        """Forcibly terminate a command started by _execute_command."""

    async def _open_port(self, port: SandboxPort) -> None:
        """Backend-specific port registration."""

    async def _refresh_logs(self) -> None:
        """Pull console output held by the backend into the ring buffer."""
