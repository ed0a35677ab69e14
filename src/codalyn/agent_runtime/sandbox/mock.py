"""
In-process sandbox.

Stores the project in memory and simulates a small set of shell commands
against it. Used where no privileged execution is available (tests, constrained
hosts, server-side previews).
"""

import asyncio
import json
import posixpath
import re
import shlex

from ..models.error_types import SandboxOperationError
from ..models.sandbox import CommandOptions, ProcessResult, SandboxType
from .base import Sandbox, match_glob

DEFAULT_PACKAGE_JSON = json.dumps(
    {
        "name": "codalyn-project",
        "version": "0.1.0",
        "scripts": {
            "dev": "next dev",
            "build": "next build",
            "start": "next start",
        },
    },
    indent=2,
)

_ENV_VAR = re.compile(r"\$(\w+)|\$\{(\w+)\}")


def normalize_path(path: str, cwd: str = "") -> str:
    """
    Normalize a workspace-relative path.

    Returns "" for the workspace root.

    Raises:
        SandboxOperationError: If the path escapes the workspace
    """
    path = path.strip()
    if path.startswith("/"):
        joined = path.lstrip("/")
    else:
        joined = posixpath.join(cwd, path) if cwd else path
    normalized = posixpath.normpath(joined) if joined else "."
    if normalized == "..":
        raise SandboxOperationError(f"Path escapes workspace: {path}")
    if normalized.startswith("../"):
        raise SandboxOperationError(f"Path escapes workspace: {path}")
    return "" if normalized == "." else normalized


class MockSandbox(Sandbox):
    """Sandbox backed by an in-memory file tree and simulated commands."""

    sandbox_type = SandboxType.MOCK

    def __init__(self, log_capacity: int | None = None) -> None:
        super().__init__(log_capacity)
        self._files: dict[str, str] = {}
        self._dirs: set[str] = set()
        self._environment: dict[str, str] = {}

    async def _start(self, environment: dict[str, str]) -> None:
        self._environment = dict(environment)
        self._files["package.json"] = DEFAULT_PACKAGE_JSON

    async def _stop(self) -> None:
        self._files.clear()
        self._dirs.clear()
        self._environment.clear()

    # File system

    def _is_dir(self, path: str) -> bool:
        return path == "" or path in self._dirs

    def _add_parents(self, path: str) -> None:
        parents: list[str] = []
        parent = posixpath.dirname(path)
        while parent:
            if parent in self._files:
                raise SandboxOperationError(f"Not a directory: {parent}")
            parents.append(parent)
            parent = posixpath.dirname(parent)
        # Validated in full before any directory is recorded.
        self._dirs.update(parents)

    def _children(self, path: str) -> set[str]:
        prefix = f"{path}/" if path else ""
        names: set[str] = set()
        for entry in [*self._files, *self._dirs]:
            if entry.startswith(prefix) and entry != path:
                names.add(entry[len(prefix):].split("/", 1)[0])
        return names

    async def _read_file(self, path: str) -> str:
        key = normalize_path(path)
        if key not in self._files:
            raise SandboxOperationError(f"File not found: {path}")
        return self._files[key]

    async def _write_file(self, path: str, content: str) -> None:
        key = normalize_path(path)
        if not key or key in self._dirs:
            raise SandboxOperationError(f"Is a directory: {path}")
        self._add_parents(key)
        self._files[key] = content

    async def _readdir(self, path: str) -> list[str]:
        key = normalize_path(path)
        if key in self._files:
            raise SandboxOperationError(f"Not a directory: {path}")
        if not self._is_dir(key):
            raise SandboxOperationError(f"Directory not found: {path}")
        return sorted(self._children(key))

    async def _mkdir(self, path: str, recursive: bool) -> None:
        key = normalize_path(path)
        if key in self._files:
            raise SandboxOperationError(f"File exists: {path}")
        if self._is_dir(key):
            if recursive:
                return
            raise SandboxOperationError(f"Directory exists: {path}")
        parent = posixpath.dirname(key)
        if not recursive and not self._is_dir(parent):
            raise SandboxOperationError(f"Parent directory not found: {path}")
        self._add_parents(key)
        self._dirs.add(key)

    async def _delete_path(self, path: str, recursive: bool) -> None:
        key = normalize_path(path)
        if not key:
            raise SandboxOperationError("Refusing to delete the workspace root")
        if key in self._files:
            del self._files[key]
            return
        if key not in self._dirs:
            raise SandboxOperationError(f"Path not found: {path}")
        if self._children(key) and not recursive:
            raise SandboxOperationError(f"Directory not empty: {path}")
        prefix = f"{key}/"
        self._files = {p: c for p, c in self._files.items() if not p.startswith(prefix)}
        self._dirs = {d for d in self._dirs if d != key and not d.startswith(prefix)}

    async def _glob(self, pattern: str) -> list[str]:
        return match_glob(sorted(self._files), pattern)

    # Commands

    async def _execute_command(
        self,
        process_id: str,
        command: str,
        options: CommandOptions,
    ) -> ProcessResult:
        env = {**self._environment, **options.env}
        cwd = normalize_path(options.cwd) if options.cwd else ""
        if not self._is_dir(cwd):
            return ProcessResult(stderr=f"cd: {options.cwd}: No such directory\n", exit_code=1)

        stdout: list[str] = []
        stderr: list[str] = []
        exit_code = 0
        for segment in command.split("&&"):
            segment = segment.strip()
            if not segment:
                continue
            out, err, exit_code = await self._simulate(segment, cwd, env)
            stdout.append(out)
            stderr.append(err)
            if exit_code != 0:
                break
        return ProcessResult(
            stdout="".join(stdout),
            stderr="".join(stderr),
            exit_code=exit_code,
        )

    async def _kill_process(self, process_id: str) -> None:
        # Simulated commands run inside the supervising task; cancelling it is enough.
        return None

    async def _simulate(
        self, command: str, cwd: str, env: dict[str, str]
    ) -> tuple[str, str, int]:
        expanded = _ENV_VAR.sub(
            lambda m: env.get(m.group(1) or m.group(2), ""), command
        )
        try:
            argv = shlex.split(expanded)
        except ValueError as e:
            return "", f"sh: {e}\n", 2
        if not argv:
            return "", "", 0

        program, args = argv[0], argv[1:]
        try:
            if program == "echo":
                return " ".join(args) + "\n", "", 0
            if program == "pwd":
                return "/" + cwd + "\n", "", 0
            if program == "true":
                return "", "", 0
            if program == "false":
                return "", "", 1
            if program == "exit":
                return "", "", int(args[0]) if args else 0
            if program == "sleep":
                await asyncio.sleep(float(args[0]) if args else 0)
                return "", "", 0
            if program == "cat":
                contents = [await self._read_file(normalize_path(a, cwd)) for a in args]
                return "".join(contents), "", 0
            if program == "ls":
                targets = [a for a in args if not a.startswith("-")] or ["."]
                names = await self._readdir(normalize_path(targets[0], cwd))
                return "".join(f"{n}\n" for n in names), "", 0
            if program == "mkdir":
                recursive = "-p" in args
                for a in args:
                    if not a.startswith("-"):
                        await self._mkdir(normalize_path(a, cwd), recursive)
                return "", "", 0
            if program == "rm":
                recursive = any(a.startswith("-") and "r" in a for a in args)
                for a in args:
                    if not a.startswith("-"):
                        await self._delete_path(normalize_path(a, cwd), recursive)
                return "", "", 0
            if program == "touch":
                for a in args:
                    key = normalize_path(a, cwd)
                    if key not in self._files:
                        await self._write_file(key, "")
                return "", "", 0
        except SandboxOperationError as e:
            return "", f"{program}: {e}\n", 1
        except (IndexError, ValueError) as e:
            return "", f"{program}: invalid arguments ({e})\n", 2

        if program in ("npm", "bun", "pnpm", "yarn") and args[:1] in (["install"], ["i"], ["add"]):
            return "Dependencies installed successfully\n", "", 0
        if program in ("npm", "bun", "pnpm", "yarn") and args[:1] == ["run"]:
            return "Command executed successfully\n", "", 0
        if program == "git":
            return "Git command executed\n", "", 0
        return f"Executed: {command}\n", "", 0
