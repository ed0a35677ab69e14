"""Tests for the tool registry, executor and Tool base class."""

from typing import Any

import pytest
from pydantic import BaseModel, Field

from codalyn.agent_runtime.models.error_types import ToolExecutionError, ToolValidationError
from codalyn.agent_runtime.models.messages import ToolCall
from codalyn.agent_runtime.models.tool_integration import ToolDefinition
from codalyn.agent_runtime.tools import Tool, ToolExecutor, ToolRegistry


class EchoParams(BaseModel):
    text: str = Field(description="Text to echo")
    times: int = Field(default=1, ge=1, description="Repetitions")


class EchoTool(Tool):
    name = "echo"
    description = "Return the given text"
    params_model = EchoParams

    async def execute(self, params: EchoParams) -> str:
        return params.text * params.times


class FailingTool(Tool):
    name = "fail"
    description = "Always fails"

    async def execute(self, params: Any) -> Any:
        raise ToolExecutionError("nothing to do")


def definition(name: str) -> ToolDefinition:
    return ToolDefinition(name=name, description=f"{name} tool")


class TestToolRegistry:
    """Test suite for ToolRegistry."""

    def test_lookup_and_order(self) -> None:
        registry = ToolRegistry([definition("b"), definition("a")])

        assert registry.names() == ["b", "a"]
        assert registry.get("a").name == "a"
        assert registry.get("missing") is None
        assert "b" in registry
        assert len(registry) == 2
        assert [d.name for d in registry] == ["b", "a"]

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate tool name: a"):
            ToolRegistry([definition("a"), definition("a")])

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            ToolDefinition(name=" ", description="blank")


class TestToolBase:
    """Test suite for the Tool base class."""

    def test_definition_from_params_model(self) -> None:
        schema = EchoTool().definition.parameters

        assert schema["type"] == "object"
        assert "title" not in schema
        assert schema["required"] == ["text"]
        assert schema["properties"]["times"]["default"] == 1

    def test_no_params_definition(self) -> None:
        assert FailingTool().definition.parameters["properties"] == {}

    @pytest.mark.asyncio
    async def test_call_validates_arguments(self) -> None:
        tool = EchoTool()

        assert await tool({"text": "ab", "times": 2}) == "abab"
        with pytest.raises(ToolValidationError, match="text"):
            await tool({"times": 2})


class TestToolExecutor:
    """Test suite for ToolExecutor."""

    def make_executor(self) -> ToolExecutor:
        echo, fail = EchoTool(), FailingTool()
        registry = ToolRegistry([echo.definition, fail.definition])
        return ToolExecutor(registry, {"echo": echo, "fail": fail})

    def test_requires_implementation_for_every_definition(self) -> None:
        registry = ToolRegistry([definition("a"), definition("b")])

        with pytest.raises(ValueError, match="No implementation bound"):
            ToolExecutor(registry, {"a": EchoTool()})

    def test_rejects_implementation_without_definition(self) -> None:
        registry = ToolRegistry([definition("a")])

        with pytest.raises(ValueError, match="without a definition"):
            ToolExecutor(registry, {"a": EchoTool(), "z": EchoTool()})

    @pytest.mark.asyncio
    async def test_success_result_carries_call_id(self) -> None:
        result = await self.make_executor().execute(
            ToolCall(id="call-7", name="echo", args={"text": "hi"})
        )

        assert result.success
        assert result.result == "hi"
        assert result.tool_call_id == "call-7"
        assert result.name == "echo"

    @pytest.mark.asyncio
    async def test_validation_error_returned(self) -> None:
        result = await self.make_executor().execute(ToolCall(name="echo", args={"times": 0}))

        assert not result.success
        assert result.error.startswith("Invalid arguments for echo")

    @pytest.mark.asyncio
    async def test_tool_error_returned(self) -> None:
        result = await self.make_executor().execute(ToolCall(name="fail"))

        assert result.error == "nothing to do"

    @pytest.mark.asyncio
    async def test_unknown_tool_returned_as_error(self) -> None:
        result = await self.make_executor().execute(ToolCall(name="teleport"))

        assert result.error == "Tool not found: teleport"

    @pytest.mark.asyncio
    async def test_unexpected_exception_returned(self) -> None:
        async def crash(args: dict[str, Any]) -> Any:
            raise KeyError("boom")

        executor = ToolExecutor(ToolRegistry([definition("crash")]), {"crash": crash})

        result = await executor.execute(ToolCall(name="crash"))

        assert result.error == "'boom'"
