"""
Tests for the sandbox contract, exercised through the in-memory sandbox.

Covers the lifecycle, file-system operations, simulated commands, timeouts,
background processes, ports and the console log ring buffer.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime, timedelta

import pytest

from codalyn.agent_runtime.models.error_types import (
    CommandTimeoutError,
    SandboxNotInitializedError,
    SandboxOperationError,
)
from codalyn.agent_runtime.models.sandbox import (
    CommandOptions,
    LogEntry,
    LogLevel,
    SandboxType,
)
from codalyn.agent_runtime.sandbox import LogBuffer, MockSandbox, build_sandbox
from codalyn.agent_runtime.sandbox.base import match_glob
from codalyn.agent_runtime.sandbox.mock import normalize_path


class TestLogBuffer:
    """Test suite for the console log ring buffer."""

    def test_keeps_latest_entries_at_capacity(self) -> None:
        """Test the oldest entries are evicted first."""
        buffer = LogBuffer(capacity=1000)
        for i in range(1500):
            buffer.add(LogLevel.INFO, f"line {i}")

        assert len(buffer) == 1000
        entries = buffer.query(limit=1000)
        assert entries[0].text == "line 1499"
        assert entries[-1].text == "line 500"

    def test_query_filters_before_limit(self) -> None:
        """Test level filtering happens before truncation."""
        buffer = LogBuffer(capacity=10)
        buffer.add(LogLevel.ERROR, "first error")
        for i in range(5):
            buffer.add(LogLevel.INFO, f"info {i}")
        buffer.add(LogLevel.ERROR, "second error")

        errors = buffer.query(limit=2, level="error")

        assert [e.text for e in errors] == ["second error", "first error"]

    def test_query_since_is_exclusive(self) -> None:
        """Test only entries strictly after since are returned."""
        base = datetime(2026, 1, 1, tzinfo=UTC)
        buffer = LogBuffer(capacity=10)
        for offset in range(3):
            buffer.append(
                LogEntry(timestamp=base + timedelta(seconds=offset), text=f"t{offset}")
            )

        entries = buffer.query(since=base + timedelta(seconds=1))

        assert [e.text for e in entries] == ["t2"]

    def test_query_non_positive_limit_is_empty(self) -> None:
        buffer = LogBuffer(capacity=10)
        for i in range(5):
            buffer.add(LogLevel.INFO, f"l{i}")

        assert buffer.query(limit=0) == []
        assert buffer.query(limit=-1) == []
        assert [e.text for e in buffer.query(limit=1)] == ["l4"]

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            LogBuffer(capacity=0)


class TestSandboxLifecycle:
    """Test suite for init/destroy guards."""

    @pytest.mark.asyncio
    async def test_operations_fail_before_init(self) -> None:
        """Test every operation is rejected before init()."""
        sandbox = MockSandbox()

        with pytest.raises(SandboxNotInitializedError):
            await sandbox.read_file("package.json")
        with pytest.raises(SandboxNotInitializedError):
            await sandbox.run_command("echo hi")
        with pytest.raises(SandboxNotInitializedError):
            await sandbox.get_console_logs()

        info = await sandbox.get_info()
        assert info.type == SandboxType.MOCK
        assert info.ready is False

    @pytest.mark.asyncio
    async def test_operations_fail_after_destroy(self) -> None:
        """Test destroy() is final and idempotent."""
        sandbox = MockSandbox()
        await sandbox.init()
        await sandbox.destroy()
        await sandbox.destroy()

        with pytest.raises(SandboxNotInitializedError):
            await sandbox.read_file("package.json")
        with pytest.raises(SandboxNotInitializedError):
            await sandbox.init()
        assert sandbox.ready is False

    @pytest.mark.asyncio
    async def test_init_seeds_files(self) -> None:
        """Test seed files are written after startup."""
        sandbox = MockSandbox()
        await sandbox.init(files={"src/app.tsx": "export default App", "README.md": "# App"})
        try:
            assert await sandbox.read_file("src/app.tsx") == "export default App"
            assert "package.json" in await sandbox.readdir(".")
            assert (await sandbox.get_info()).ready is True
        finally:
            await sandbox.destroy()

    @pytest.mark.asyncio
    async def test_destroy_cancels_background_processes(self) -> None:
        """Test destroy() leaves no running process behind."""
        sandbox = MockSandbox()
        await sandbox.init()
        process = await sandbox.run_command("sleep 10", background=True)
        assert sandbox.running_processes() == [process.id]

        await sandbox.destroy()

        assert sandbox.running_processes() == []
        assert process.done

    def test_build_sandbox_by_tag(self) -> None:
        """Test the factory resolves type tags."""
        assert isinstance(build_sandbox("mock"), MockSandbox)
        assert build_sandbox("browser-hosted").sandbox_type == SandboxType.BROWSER_HOSTED
        with pytest.raises(ValueError, match="Unknown sandbox type"):
            build_sandbox("vm")


class TestMockFileSystem:
    """Test suite for the in-memory file tree."""

    @pytest.mark.asyncio
    async def test_write_creates_parents(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.write_file("src/components/Button.tsx", "button")

        assert await mock_sandbox.readdir("src") == ["components"]
        assert await mock_sandbox.readdir("src/components") == ["Button.tsx"]

    @pytest.mark.asyncio
    async def test_failed_write_leaves_tree_unchanged(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.write_file("f", "data")

        with pytest.raises(SandboxOperationError, match="Not a directory: f"):
            await mock_sandbox.write_file("f/x/y.txt", "nested")

        with pytest.raises(SandboxOperationError, match="Directory not found"):
            await mock_sandbox.readdir("f/x")
        assert await mock_sandbox.read_file("f") == "data"

    @pytest.mark.asyncio
    async def test_failed_mkdir_leaves_tree_unchanged(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.write_file("f", "data")

        with pytest.raises(SandboxOperationError):
            await mock_sandbox.mkdir("f/a/b", recursive=True)

        assert await mock_sandbox.glob("f/*") == []
        with pytest.raises(SandboxOperationError, match="Directory not found"):
            await mock_sandbox.readdir("f/a")

    @pytest.mark.asyncio
    async def test_read_missing_file(self, mock_sandbox: MockSandbox) -> None:
        with pytest.raises(SandboxOperationError, match="File not found"):
            await mock_sandbox.read_file("nope.txt")

    @pytest.mark.asyncio
    async def test_mkdir_rules(self, mock_sandbox: MockSandbox) -> None:
        with pytest.raises(SandboxOperationError):
            await mock_sandbox.mkdir("a/b/c")

        await mock_sandbox.mkdir("a/b/c", recursive=True)
        assert await mock_sandbox.readdir("a/b") == ["c"]

        with pytest.raises(SandboxOperationError, match="Directory exists"):
            await mock_sandbox.mkdir("a")

    @pytest.mark.asyncio
    async def test_delete_requires_recursive_for_non_empty_dir(
        self, mock_sandbox: MockSandbox
    ) -> None:
        await mock_sandbox.write_file("lib/util.ts", "x")

        with pytest.raises(SandboxOperationError, match="not empty"):
            await mock_sandbox.delete_path("lib")

        await mock_sandbox.delete_path("lib", recursive=True)
        assert "lib" not in await mock_sandbox.readdir(".")
        with pytest.raises(SandboxOperationError):
            await mock_sandbox.read_file("lib/util.ts")

    @pytest.mark.asyncio
    async def test_paths_cannot_escape_workspace(self, mock_sandbox: MockSandbox) -> None:
        with pytest.raises(SandboxOperationError, match="escapes"):
            await mock_sandbox.write_file("../outside.txt", "x")

    @pytest.mark.asyncio
    async def test_glob(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.write_file("src/app.tsx", "")
        await mock_sandbox.write_file("src/lib/api.ts", "")

        assert await mock_sandbox.glob("src/*.tsx") == ["src/app.tsx"]
        assert await mock_sandbox.glob("*.ts") == ["src/lib/api.ts"]
        assert await mock_sandbox.glob("lib") == ["src/lib/api.ts"]

    def test_normalize_path(self) -> None:
        assert normalize_path("./src/../app.ts") == "app.ts"
        assert normalize_path("/src/app.ts") == "src/app.ts"
        assert normalize_path(".") == ""
        assert normalize_path("b.ts", cwd="src") == "src/b.ts"

    def test_match_glob_without_wildcards_is_substring(self) -> None:
        assert match_glob(["a/button.tsx", "b/link.tsx"], "button") == ["a/button.tsx"]


class TestMockCommands:
    """Test suite for simulated commands."""

    @pytest.mark.asyncio
    async def test_foreground_command_output(self, mock_sandbox: MockSandbox) -> None:
        process = await mock_sandbox.run_command("echo hello $NAME", env={"NAME": "world"})

        assert process.done
        result = await process.wait()
        assert result.stdout == "hello world\n"
        assert result.exit_code == 0
        assert result.success

    @pytest.mark.asyncio
    async def test_chained_commands_stop_at_failure(self, mock_sandbox: MockSandbox) -> None:
        process = await mock_sandbox.run_command("echo one && false && echo two")

        result = await process.wait()
        assert result.stdout == "one\n"
        assert result.exit_code == 1

    @pytest.mark.asyncio
    async def test_commands_act_on_file_tree(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.run_command("mkdir -p src && touch src/index.ts")

        assert await mock_sandbox.read_file("src/index.ts") == ""
        result = await (await mock_sandbox.run_command("cat package.json")).wait()
        assert '"name": "codalyn-project"' in result.stdout

    @pytest.mark.asyncio
    async def test_missing_file_is_nonzero_exit(self, mock_sandbox: MockSandbox) -> None:
        result = await (await mock_sandbox.run_command("cat missing.txt")).wait()

        assert result.exit_code == 1
        assert "File not found" in result.stderr

    @pytest.mark.asyncio
    async def test_timeout_kills_command_promptly(self, mock_sandbox: MockSandbox) -> None:
        """Test a 100ms timeout against a 10s command fails fast and cleans up."""
        started = time.monotonic()

        with pytest.raises(CommandTimeoutError) as exc_info:
            await mock_sandbox.run_command("sleep 10", CommandOptions(timeout_ms=100))

        elapsed = time.monotonic() - started
        assert elapsed < 0.6
        assert exc_info.value.timeout_ms == 100
        assert mock_sandbox.running_processes() == []

        errors = await mock_sandbox.get_console_logs(level="error")
        assert "timed out" in errors[0].text

    @pytest.mark.asyncio
    async def test_background_command_returns_immediately(
        self, mock_sandbox: MockSandbox
    ) -> None:
        process = await mock_sandbox.run_command("sleep 0.05 && echo ready", background=True)

        assert not process.done
        assert process.id in mock_sandbox.running_processes()

        result = await process.wait()
        assert result.stdout == "ready\n"
        assert mock_sandbox.running_processes() == []

    @pytest.mark.asyncio
    async def test_background_timeout_surfaces_on_wait(self, mock_sandbox: MockSandbox) -> None:
        process = await mock_sandbox.run_command("sleep 10", timeout_ms=50, background=True)

        with pytest.raises(CommandTimeoutError):
            await process.wait()

    @pytest.mark.asyncio
    async def test_kill_background_process(self, mock_sandbox: MockSandbox) -> None:
        process = await mock_sandbox.run_command("sleep 10", background=True)

        await process.kill()
        await asyncio.sleep(0.01)

        assert process.done
        assert mock_sandbox.running_processes() == []


class TestPortsAndLogs:
    """Test suite for ports and console logs."""

    @pytest.mark.asyncio
    async def test_open_port_registers_port(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.open_port(3000)
        await mock_sandbox.open_port(3000)
        await mock_sandbox.open_port(8443, "https")

        ports = await mock_sandbox.get_ports()
        assert [(p.port, p.protocol) for p in ports] == [(3000, "http"), (8443, "https")]

    @pytest.mark.asyncio
    async def test_command_output_captured_newest_first(self, mock_sandbox: MockSandbox) -> None:
        await mock_sandbox.run_command("echo first")
        await mock_sandbox.run_command("cat nothing.txt")
        await mock_sandbox.run_command("echo last")

        logs = await mock_sandbox.get_console_logs()
        assert [entry.text for entry in logs][0] == "last"
        assert logs[-1].text == "first"

        errors = await mock_sandbox.get_console_logs(level="error")
        assert len(errors) == 1
        assert errors[0].level == LogLevel.ERROR

        assert len(await mock_sandbox.get_console_logs(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_naive_since_treated_as_utc(self, mock_sandbox: MockSandbox) -> None:
        mock_sandbox.log(LogLevel.WARN, "deprecated API")
        past = datetime.now(UTC).replace(tzinfo=None) - timedelta(minutes=1)

        logs = await mock_sandbox.get_console_logs(since=past, level="warn")

        assert [entry.text for entry in logs] == ["deprecated API"]
