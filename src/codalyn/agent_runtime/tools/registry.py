"""Fixed registry of tool definitions offered to the model."""

from collections.abc import Iterable, Iterator

import structlog

from ..models.tool_integration import ToolDefinition

logger = structlog.get_logger()


class ToolRegistry:
    """Immutable name-to-definition mapping.

    Built once from a list of definitions and passed into the agent; there is
    no registration after construction and no global instance.

    Example:
        ```python
        registry = ToolRegistry([read_file.definition, write_file.definition])
        registry.get("read_file")
        ```
    """

    def __init__(self, definitions: Iterable[ToolDefinition]):
        """Build the registry.

        Raises:
            ValueError: If two definitions share a name
        """
        tools: dict[str, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in tools:
                raise ValueError(f"Duplicate tool name: {definition.name}")
            tools[definition.name] = definition
        self._tools = tools
        logger.debug("tool_registry_built", tools=list(tools))

    @property
    def definitions(self) -> tuple[ToolDefinition, ...]:
        return tuple(self._tools.values())

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
