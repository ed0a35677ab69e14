"""
Docker-backed sandbox.

A long-lived container is created on init() with fixed resource ceilings and
every operation is carried out through `docker exec` or the archive API.
"""

import io
import posixpath
import shlex
import tarfile
import time
import uuid
from typing import Any

import aiodocker
from aiodocker.containers import DockerContainer
from aiodocker.exceptions import DockerError

from ..config import get_settings
from ..models.error_types import (
    SandboxNotInitializedError,
    SandboxOperationError,
    SandboxUnsupportedError,
)
from ..models.sandbox import CommandOptions, ProcessResult, SandboxPort, SandboxType
from .base import Sandbox, match_glob

PID_DIR = "/tmp"


class ContainerSandbox(Sandbox):
    """Sandbox running inside a Docker container."""

    sandbox_type = SandboxType.CONTAINER

    def __init__(
        self,
        image: str | None = None,
        workdir: str | None = None,
        memory_limit_mb: int | None = None,
        cpu_percent: float | None = None,
        pids_limit: int | None = None,
        network_mode: str | None = None,
        published_ports: list[int] | None = None,
        name: str | None = None,
        log_capacity: int | None = None,
    ) -> None:
        """
        Initialize container sandbox.

        Resource ceilings and published ports are fixed when the container is
        created and cannot be changed for the life of the sandbox.

        Args:
            image: Container image
            workdir: Project directory inside the container
            memory_limit_mb: Memory ceiling (swap disabled)
            cpu_percent: CPU quota as a percentage of one core
            pids_limit: Maximum number of processes
            network_mode: Docker network mode (none, bridge, host)
            published_ports: Container ports published to the host
            name: Container name (generated if omitted)
            log_capacity: Console log ring buffer capacity
        """
        super().__init__(log_capacity)
        settings = get_settings()
        self.image = image or settings.sandbox_container_image
        self.workdir = workdir or settings.sandbox_container_workdir
        self.memory_limit_mb = memory_limit_mb or settings.sandbox_memory_limit_mb
        self.cpu_percent = cpu_percent or settings.sandbox_cpu_percent
        self.pids_limit = pids_limit or settings.sandbox_pids_limit
        self.network_mode = network_mode or settings.sandbox_network_mode
        self.published_ports = list(published_ports or [])
        self.name = name or f"codalyn-sandbox-{uuid.uuid4().hex[:12]}"
        self._environment: dict[str, str] = {}
        self._docker: aiodocker.Docker | None = None
        self._container: DockerContainer | None = None

    @property
    def container_id(self) -> str | None:
        return self._container.id if self._container else None

    # Lifecycle

    async def _start(self, environment: dict[str, str]) -> None:
        self._environment = dict(environment)
        self._docker = aiodocker.Docker()
        config = self._build_container_config()
        try:
            self._container = await self._docker.containers.create(
                config=config,
                name=self.name,
            )
        except DockerError as e:
            self.logger.error("container_creation_failed", error=str(e))
            await self._close_client()
            raise SandboxOperationError(f"Container creation failed: {e}") from e

        # init() does not destroy a sandbox that never became ready.
        try:
            await self._container.start()
            self.logger.info(
                "container_created",
                container_id=self._container.id,
                image=self.image,
                memory_limit_mb=self.memory_limit_mb,
            )
            await self._check(await self._exec(["mkdir", "-p", self.workdir], workdir="/"))
        except DockerError as e:
            self.logger.error("container_start_failed", error=str(e))
            await self._stop()
            raise SandboxOperationError(f"Container start failed: {e}") from e
        except Exception:
            await self._stop()
            raise

    async def _stop(self) -> None:
        if self._container is not None:
            try:
                await self._container.delete(force=True)
                self.logger.info("container_removed", container_id=self._container.id)
            except DockerError as e:
                self.logger.error(
                    "container_removal_failed",
                    container_id=self._container.id,
                    error=str(e),
                )
            self._container = None
        await self._close_client()

    async def _close_client(self) -> None:
        if self._docker is not None:
            await self._docker.close()
            self._docker = None

    def _build_container_config(self) -> dict[str, Any]:
        """Build the Docker create payload with fixed resource ceilings."""
        memory_limit = self.memory_limit_mb * 1024 * 1024
        cpu_quota = int((self.cpu_percent / 100.0) * 100000)
        env_vars = [f"{k}={v}" for k, v in self._environment.items()]

        host_config: dict[str, Any] = {
            "Memory": memory_limit,
            "MemorySwap": memory_limit,  # Disable swap
            "CpuQuota": cpu_quota,
            "CpuPeriod": 100000,
            "PidsLimit": self.pids_limit,
            "SecurityOpt": ["no-new-privileges"],
            "CapDrop": ["ALL"],
            "Privileged": False,
            "NetworkMode": self.network_mode,
        }
        config: dict[str, Any] = {
            "Image": self.image,
            "Cmd": ["sleep", "infinity"],
            "WorkingDir": self.workdir,
            "Env": env_vars,
            "Tty": False,
            "HostConfig": host_config,
        }
        if self.published_ports:
            config["ExposedPorts"] = {f"{p}/tcp": {} for p in self.published_ports}
            host_config["PortBindings"] = {
                f"{p}/tcp": [{"HostPort": ""}] for p in self.published_ports
            }
        return config

    # Exec helpers

    def _require_container(self) -> DockerContainer:
        if self._container is None:
            raise SandboxNotInitializedError()
        return self._container

    async def _exec(
        self,
        cmd: list[str],
        workdir: str | None = None,
        environment: dict[str, str] | None = None,
    ) -> ProcessResult:
        container = self._require_container()
        try:
            exec_ = await container.exec(
                cmd=cmd,
                stdout=True,
                stderr=True,
                workdir=workdir or self.workdir,
                environment={**self._environment, **(environment or {})},
            )
            stdout: list[str] = []
            stderr: list[str] = []
            async with exec_.start(detach=False) as stream:
                while True:
                    message = await stream.read_out()
                    if message is None:
                        break
                    text = message.data.decode("utf-8", errors="replace")
                    (stdout if message.stream == 1 else stderr).append(text)
            info = await exec_.inspect()
        except DockerError as e:
            self.logger.error("container_exec_failed", cmd=cmd[0], error=str(e))
            raise SandboxOperationError(f"Container exec failed: {e}") from e

        exit_code = info.get("ExitCode")
        return ProcessResult(
            stdout="".join(stdout),
            stderr="".join(stderr),
            exit_code=exit_code if exit_code is not None else -1,
        )

    @staticmethod
    async def _check(result: ProcessResult) -> ProcessResult:
        if result.exit_code != 0:
            raise SandboxOperationError(result.stderr.strip() or f"exit code {result.exit_code}")
        return result

    def _resolve(self, path: str) -> str:
        return posixpath.normpath(posixpath.join(self.workdir, path))

    # File system

    async def _read_file(self, path: str) -> str:
        result = await self._check(await self._exec(["cat", "--", self._resolve(path)]))
        return result.stdout

    async def _write_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        directory, filename = posixpath.split(target)
        await self._check(await self._exec(["mkdir", "-p", "--", directory]))

        data = content.encode("utf-8")
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            info = tarfile.TarInfo(name=filename)
            info.size = len(data)
            info.mtime = int(time.time())
            archive.addfile(info, io.BytesIO(data))

        try:
            await self._require_container().put_archive(directory, buffer.getvalue())
        except DockerError as e:
            raise SandboxOperationError(f"Write failed for {path}: {e}") from e

    async def _readdir(self, path: str) -> list[str]:
        result = await self._check(await self._exec(["ls", "-A1", "--", self._resolve(path)]))
        return [line for line in result.stdout.splitlines() if line]

    async def _mkdir(self, path: str, recursive: bool) -> None:
        cmd = ["mkdir", "-p"] if recursive else ["mkdir"]
        await self._check(await self._exec([*cmd, "--", self._resolve(path)]))

    async def _delete_path(self, path: str, recursive: bool) -> None:
        target = self._resolve(path)
        if target == posixpath.normpath(self.workdir):
            raise SandboxOperationError("Refusing to delete the workspace root")
        cmd = ["rm", "-r"] if recursive else ["rm"]
        await self._check(await self._exec([*cmd, "--", target]))

    async def _glob(self, pattern: str) -> list[str]:
        result = await self._check(
            await self._exec(
                ["find", ".", "-type", "f", "-not", "-path", "./node_modules/*"]
            )
        )
        paths = sorted(
            line[2:] if line.startswith("./") else line
            for line in result.stdout.splitlines()
            if line
        )
        return match_glob(paths, pattern)

    # Commands

    @staticmethod
    def _pid_file(process_id: str) -> str:
        return f"{PID_DIR}/codalyn-{process_id}.pid"

    async def _execute_command(
        self,
        process_id: str,
        command: str,
        options: CommandOptions,
    ) -> ProcessResult:
        pid_file = self._pid_file(process_id)
        # setsid makes the shell a process-group leader so a timeout can kill the whole group.
        script = (
            f"echo $$ > {pid_file}; sh -c {shlex.quote(command)}; "
            f"status=$?; rm -f {pid_file}; exit $status"
        )
        workdir = self._resolve(options.cwd) if options.cwd else self.workdir
        return await self._exec(
            ["setsid", "sh", "-c", script],
            workdir=workdir,
            environment=options.env,
        )

    async def _kill_process(self, process_id: str) -> None:
        if self._container is None:
            return
        pid_file = self._pid_file(process_id)
        script = (
            f"if [ -f {pid_file} ]; then pid=$(cat {pid_file}); "
            f"kill -9 -- -$pid 2>/dev/null || kill -9 $pid 2>/dev/null; "
            f"rm -f {pid_file}; fi"
        )
        try:
            await self._exec(["sh", "-c", script], workdir="/")
            self.logger.info("container_process_killed", process_id=process_id)
        except SandboxOperationError as e:
            self.logger.error(
                "container_process_kill_failed",
                process_id=process_id,
                error=str(e),
            )

    # Ports

    async def _open_port(self, port: SandboxPort) -> None:
        if port.port not in self.published_ports:
            raise SandboxUnsupportedError(
                f"Port {port.port} was not published when the container was created"
            )

    async def get_host_port(self, port: int) -> int | None:
        """Host port bound to a published container port."""
        self._ensure_ready()
        info = await self._require_container().show()
        bindings = (info.get("NetworkSettings") or {}).get("Ports") or {}
        for binding in bindings.get(f"{port}/tcp") or []:
            if binding.get("HostPort"):
                return int(binding["HostPort"])
        return None
