"""Tests for the Docker-backed sandbox with a mocked aiodocker client."""

from __future__ import annotations

import asyncio
import io
import tarfile
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest
from aiodocker.exceptions import DockerError

from codalyn.agent_runtime.models.error_types import (
    CommandTimeoutError,
    SandboxNotInitializedError,
    SandboxOperationError,
    SandboxUnsupportedError,
)
from codalyn.agent_runtime.sandbox import container as container_module
from codalyn.agent_runtime.sandbox.container import ContainerSandbox

STDOUT = 1
STDERR = 2


class FakeStream:
    """Exec output stream yielding canned messages."""

    def __init__(self, messages: list[SimpleNamespace]) -> None:
        self._messages = list(messages)

    async def __aenter__(self) -> "FakeStream":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False

    async def read_out(self) -> SimpleNamespace | None:
        return self._messages.pop(0) if self._messages else None


class FakeExec:
    """Exec instance returning fixed output and exit code."""

    def __init__(self, stdout: str = "", stderr: str = "", exit_code: int = 0) -> None:
        self.messages = []
        if stdout:
            self.messages.append(SimpleNamespace(stream=STDOUT, data=stdout.encode()))
        if stderr:
            self.messages.append(SimpleNamespace(stream=STDERR, data=stderr.encode()))
        self.exit_code = exit_code

    def start(self, detach: bool = False) -> FakeStream:
        return FakeStream(self.messages)

    async def inspect(self) -> dict[str, Any]:
        return {"ExitCode": self.exit_code}


class HangingStream(FakeStream):
    """Exec output stream that never produces output."""

    def __init__(self) -> None:
        super().__init__([])

    async def read_out(self) -> SimpleNamespace | None:
        await asyncio.Event().wait()
        return None


class HangingExec(FakeExec):
    """Exec instance for a command that never finishes."""

    def start(self, detach: bool = False) -> FakeStream:
        return HangingStream()


@pytest.fixture
def mock_docker_container() -> Mock:
    """Create mock aiodocker container."""
    container = Mock()
    container.id = "container-abc123"
    container.start = AsyncMock()
    container.delete = AsyncMock()
    container.put_archive = AsyncMock()
    container.show = AsyncMock(
        return_value={"NetworkSettings": {"Ports": {"3000/tcp": [{"HostPort": "49153"}]}}}
    )
    container.exec_calls = []
    container.respond = lambda cmd: FakeExec()

    async def exec_(**kwargs: Any) -> FakeExec:
        container.exec_calls.append(kwargs)
        return container.respond(kwargs["cmd"])

    container.exec = exec_
    return container


@pytest.fixture
def mock_docker_client(
    mock_docker_container: Mock, monkeypatch: pytest.MonkeyPatch
) -> Mock:
    """Patch aiodocker.Docker to return a mock client."""
    client = Mock()
    client.containers = Mock()
    client.containers.create = AsyncMock(return_value=mock_docker_container)
    client.close = AsyncMock()
    monkeypatch.setattr(container_module.aiodocker, "Docker", Mock(return_value=client))
    return client


@pytest.fixture
async def sandbox(mock_docker_client: Mock) -> AsyncIterator[ContainerSandbox]:
    sandbox = ContainerSandbox(
        image="node:20-slim",
        memory_limit_mb=512,
        cpu_percent=50.0,
        pids_limit=64,
        published_ports=[3000],
        name="codalyn-test",
    )
    await sandbox.init(environment={"NODE_ENV": "development"})
    yield sandbox
    await sandbox.destroy()


class TestContainerLifecycle:
    """Test suite for container creation and removal."""

    @pytest.mark.asyncio
    async def test_container_created_with_fixed_limits(
        self, sandbox: ContainerSandbox, mock_docker_client: Mock
    ) -> None:
        """Test resource ceilings and published ports are set at creation."""
        kwargs = mock_docker_client.containers.create.call_args.kwargs
        config = kwargs["config"]
        host_config = config["HostConfig"]

        assert kwargs["name"] == "codalyn-test"
        assert config["Image"] == "node:20-slim"
        assert config["Env"] == ["NODE_ENV=development"]
        assert host_config["Memory"] == 512 * 1024 * 1024
        assert host_config["MemorySwap"] == host_config["Memory"]
        assert host_config["CpuQuota"] == 50000
        assert host_config["PidsLimit"] == 64
        assert host_config["CapDrop"] == ["ALL"]
        assert host_config["PortBindings"] == {"3000/tcp": [{"HostPort": ""}]}
        assert config["ExposedPorts"] == {"3000/tcp": {}}
        assert sandbox.container_id == "container-abc123"

    @pytest.mark.asyncio
    async def test_destroy_force_removes_container(
        self,
        sandbox: ContainerSandbox,
        mock_docker_container: Mock,
        mock_docker_client: Mock,
    ) -> None:
        await sandbox.destroy()

        mock_docker_container.delete.assert_awaited_once_with(force=True)
        mock_docker_client.close.assert_awaited_once()
        with pytest.raises(SandboxNotInitializedError):
            await sandbox.read_file("package.json")

    @pytest.mark.asyncio
    async def test_creation_failure_closes_client(self, mock_docker_client: Mock) -> None:
        mock_docker_client.containers.create.side_effect = DockerError(
            500, {"message": "no such image"}
        )
        sandbox = ContainerSandbox(image="missing:latest")

        with pytest.raises(SandboxOperationError, match="Container creation failed"):
            await sandbox.init()

        mock_docker_client.close.assert_awaited_once()
        assert sandbox.ready is False

    @pytest.mark.asyncio
    async def test_setup_failure_after_create_removes_container(
        self,
        mock_docker_client: Mock,
        mock_docker_container: Mock,
    ) -> None:
        def respond(cmd: list[str]) -> FakeExec:
            raise DockerError(500, {"message": "exec unavailable"})

        mock_docker_container.respond = respond
        sandbox = ContainerSandbox()

        with pytest.raises(SandboxOperationError, match="exec unavailable"):
            await sandbox.init()

        mock_docker_container.delete.assert_awaited_once_with(force=True)
        mock_docker_client.close.assert_awaited_once()
        assert sandbox.container_id is None
        assert sandbox.ready is False

    @pytest.mark.asyncio
    async def test_start_failure_removes_container(
        self,
        mock_docker_client: Mock,
        mock_docker_container: Mock,
    ) -> None:
        mock_docker_container.start.side_effect = DockerError(500, {"message": "oom"})
        sandbox = ContainerSandbox()

        with pytest.raises(SandboxOperationError, match="Container start failed"):
            await sandbox.init()

        mock_docker_container.delete.assert_awaited_once_with(force=True)
        mock_docker_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_before_init(self, mock_docker_client: Mock) -> None:
        with pytest.raises(SandboxNotInitializedError):
            await ContainerSandbox().read_file("package.json")


class TestContainerOperations:
    """Test suite for exec-backed operations."""

    @pytest.mark.asyncio
    async def test_read_file_uses_cat(
        self, sandbox: ContainerSandbox, mock_docker_container: Mock
    ) -> None:
        mock_docker_container.respond = lambda cmd: FakeExec(stdout='{"name": "app"}')

        content = await sandbox.read_file("package.json")

        assert content == '{"name": "app"}'
        last = mock_docker_container.exec_calls[-1]
        assert last["cmd"] == ["cat", "--", "/workspace/package.json"]
        assert last["environment"] == {"NODE_ENV": "development"}

    @pytest.mark.asyncio
    async def test_failed_exec_raises_operation_error(
        self, sandbox: ContainerSandbox, mock_docker_container: Mock
    ) -> None:
        mock_docker_container.respond = lambda cmd: FakeExec(
            stderr="cat: missing.txt: No such file or directory", exit_code=1
        )

        with pytest.raises(SandboxOperationError, match="No such file"):
            await sandbox.read_file("missing.txt")

    @pytest.mark.asyncio
    async def test_write_file_puts_tar_archive(
        self, sandbox: ContainerSandbox, mock_docker_container: Mock
    ) -> None:
        await sandbox.write_file("src/app.tsx", "export default 1")

        directory, data = mock_docker_container.put_archive.call_args.args
        assert directory == "/workspace/src"
        with tarfile.open(fileobj=io.BytesIO(data)) as archive:
            member = archive.getmember("app.tsx")
            assert archive.extractfile(member).read() == b"export default 1"
        assert mock_docker_container.exec_calls[-1]["cmd"] == [
            "mkdir",
            "-p",
            "--",
            "/workspace/src",
        ]

    @pytest.mark.asyncio
    async def test_readdir_and_glob(
        self, sandbox: ContainerSandbox, mock_docker_container: Mock
    ) -> None:
        mock_docker_container.respond = lambda cmd: FakeExec(
            stdout="./src/app.tsx\n./src/lib/api.ts\n./package.json\n"
            if cmd[0] == "find"
            else "package.json\nsrc\n"
        )

        assert await sandbox.readdir(".") == ["package.json", "src"]
        assert await sandbox.glob("*.ts") == ["src/lib/api.ts"]

    @pytest.mark.asyncio
    async def test_run_command_wraps_in_process_group(
        self, sandbox: ContainerSandbox, mock_docker_container: Mock
    ) -> None:
        mock_docker_container.respond = lambda cmd: FakeExec(stdout="v20.11.0\n")

        process = await sandbox.run_command("node --version", cwd="src", env={"CI": "1"})

        result = await process.wait()
        assert result.stdout == "v20.11.0\n"
        call = mock_docker_container.exec_calls[-1]
        assert call["cmd"][:3] == ["setsid", "sh", "-c"]
        assert "node --version" in call["cmd"][3]
        assert call["workdir"] == "/workspace/src"
        assert call["environment"] == {"NODE_ENV": "development", "CI": "1"}

    @pytest.mark.asyncio
    async def test_run_command_timeout_kills_process_group(
        self, sandbox: ContainerSandbox, mock_docker_container: Mock
    ) -> None:
        mock_docker_container.respond = lambda cmd: (
            HangingExec() if cmd[0] == "setsid" else FakeExec()
        )

        with pytest.raises(CommandTimeoutError) as exc_info:
            await sandbox.run_command("sleep 10", timeout_ms=100)

        assert exc_info.value.timeout_ms == 100
        kill_call = mock_docker_container.exec_calls[-1]
        assert kill_call["cmd"][:2] == ["sh", "-c"]
        assert "kill -9 -- -$pid" in kill_call["cmd"][2]
        assert kill_call["workdir"] == "/"
        assert sandbox.running_processes() == []
        logs = await sandbox.get_console_logs(level="error")
        assert logs[0].text == "Command timed out after 100ms: sleep 10"

    @pytest.mark.asyncio
    async def test_delete_root_refused(self, sandbox: ContainerSandbox) -> None:
        with pytest.raises(SandboxOperationError, match="workspace root"):
            await sandbox.delete_path(".", recursive=True)


class TestContainerPorts:
    """Test suite for port handling."""

    @pytest.mark.asyncio
    async def test_only_published_ports_can_open(self, sandbox: ContainerSandbox) -> None:
        await sandbox.open_port(3000)

        with pytest.raises(SandboxUnsupportedError):
            await sandbox.open_port(5173)

        assert [p.port for p in await sandbox.get_ports()] == [3000]

    @pytest.mark.asyncio
    async def test_host_port_lookup(self, sandbox: ContainerSandbox) -> None:
        assert await sandbox.get_host_port(3000) == 49153
        assert await sandbox.get_host_port(8080) is None
