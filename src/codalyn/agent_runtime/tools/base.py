"""Base tool interface for sandbox-backed tools.

A tool pairs a ToolDefinition (what the model sees) with an async
implementation (what actually runs). Arguments are validated with a pydantic
model before execution, and the model's JSON schema becomes the definition's
parameter schema.
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ValidationError

from ..models.error_types import ToolValidationError
from ..models.tool_integration import ToolDefinition
from ..sandbox import Sandbox

logger = structlog.get_logger()


class NoParams(BaseModel):
    """Parameters of a tool that takes no arguments."""


class Tool(ABC):
    """Abstract base class for agent tools.

    Subclasses set `name`, `description` and `params_model` and implement
    execute(). Calling the tool validates raw arguments first; invalid
    arguments raise ToolValidationError without running anything.

    Example:
        ```python
        class EchoParams(BaseModel):
            text: str

        class EchoTool(Tool):
            name = "echo"
            description = "Return the given text"
            params_model = EchoParams

            async def execute(self, params: EchoParams) -> str:
                return params.text
        ```
    """

    name: ClassVar[str]
    description: ClassVar[str]
    params_model: ClassVar[type[BaseModel]] = NoParams

    def __init__(self) -> None:
        self.logger = logger.bind(tool_name=self.name)

    @property
    def definition(self) -> ToolDefinition:
        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=schema,
        )

    def validate_parameters(self, args: dict[str, Any]) -> BaseModel:
        """Validate raw arguments against params_model.

        Raises:
            ToolValidationError: If arguments do not match the schema
        """
        try:
            return self.params_model.model_validate(args)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            self.logger.warning("parameter_validation_failed", error=details)
            raise ToolValidationError(f"Invalid arguments for {self.name}: {details}") from e

    async def __call__(self, args: dict[str, Any]) -> Any:
        params = self.validate_parameters(args)
        return await self.execute(params)

    @abstractmethod
    async def execute(self, params: Any) -> Any:
        """Run the tool with validated parameters and return its result.

        Failures are raised, not returned; the executor turns them into a
        ToolResult error.
        """


class SandboxTool(Tool):
    """Tool operating on one sandbox."""

    def __init__(self, sandbox: Sandbox) -> None:
        super().__init__()
        self.sandbox = sandbox
