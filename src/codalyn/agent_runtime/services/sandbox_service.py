"""Sandbox manager owning the live sandboxes of active sessions."""

import uuid
from typing import Any

import structlog

from ..config import get_settings
from ..models.sandbox import SandboxType
from ..sandbox import Sandbox, build_sandbox

logger = structlog.get_logger()


class SandboxManager:
    """Creates, tracks and destroys sandboxes. Only sandboxes it created are tracked."""

    def __init__(self) -> None:
        self._sandboxes: dict[str, Sandbox] = {}

    async def create_sandbox(
        self,
        sandbox_type: SandboxType | str | None = None,
        files: dict[str, str] | None = None,
        environment: dict[str, str] | None = None,
        **backend_options: Any,
    ) -> tuple[str, Sandbox]:
        """
        Create and initialize a sandbox.

        Args:
            sandbox_type: Backend type tag (defaults to settings.sandbox_default_type)
            files: Files to seed
            environment: Environment variables for commands
            **backend_options: Backend constructor arguments

        Returns:
            Tuple of (sandbox ID, initialized sandbox)
        """
        sandbox = build_sandbox(
            sandbox_type or get_settings().sandbox_default_type, **backend_options
        )
        await sandbox.init(files=files, environment=environment)

        sandbox_id = str(uuid.uuid4())
        self._sandboxes[sandbox_id] = sandbox

        logger.info(
            "sandbox_created",
            sandbox_id=sandbox_id,
            sandbox_type=sandbox.sandbox_type.value,
        )
        return sandbox_id, sandbox

    def get_sandbox(self, sandbox_id: str) -> Sandbox | None:
        return self._sandboxes.get(sandbox_id)

    def list_sandboxes(self) -> list[str]:
        return list(self._sandboxes)

    async def destroy_sandbox(self, sandbox_id: str) -> None:
        """
        Destroy a sandbox and stop tracking it.

        Raises:
            KeyError: If sandbox not found
        """
        sandbox = self._sandboxes.pop(sandbox_id, None)
        if sandbox is None:
            raise KeyError(f"Sandbox {sandbox_id} not found")
        await sandbox.destroy()
        logger.info("sandbox_removed", sandbox_id=sandbox_id)

    async def destroy_all(self) -> None:
        """Destroy every tracked sandbox (shutdown path)."""
        for sandbox_id in list(self._sandboxes):
            try:
                await self.destroy_sandbox(sandbox_id)
            except Exception as e:
                logger.error(
                    "sandbox_destroy_failed",
                    sandbox_id=sandbox_id,
                    error=str(e),
                )
