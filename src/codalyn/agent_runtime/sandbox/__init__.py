"""Sandbox backends exposing a uniform file-system/process/port/log surface."""

from typing import Any

from ..models.sandbox import SandboxType
from .base import LogBuffer, Sandbox, SandboxProcess
from .browser import BrowserSandbox
from .container import ContainerSandbox
from .mock import MockSandbox

_SANDBOX_CLASSES: dict[SandboxType, type[Sandbox]] = {
    SandboxType.MOCK: MockSandbox,
    SandboxType.CONTAINER: ContainerSandbox,
    SandboxType.BROWSER_HOSTED: BrowserSandbox,
}


def build_sandbox(sandbox_type: SandboxType | str, **kwargs: Any) -> Sandbox:
    """
    Construct an uninitialized sandbox for a type tag.

    Args:
        sandbox_type: "mock", "container" or "browser-hosted"
        **kwargs: Backend-specific constructor arguments

    Raises:
        ValueError: If the type tag is unknown
    """
    try:
        resolved = SandboxType(sandbox_type)
    except ValueError as e:
        raise ValueError(f"Unknown sandbox type: {sandbox_type}") from e
    return _SANDBOX_CLASSES[resolved](**kwargs)


__all__ = [
    "BrowserSandbox",
    "ContainerSandbox",
    "LogBuffer",
    "MockSandbox",
    "Sandbox",
    "SandboxProcess",
    "build_sandbox",
]
