"""OpenRouter adapter (OpenAI-compatible chat completions API)."""

import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from ..config import get_settings
from ..models.messages import (
    Message,
    MessageRole,
    ModelResponse,
    StreamChunk,
    TextChunk,
    ToolCall,
    ToolCallChunk,
)
from ..models.tool_integration import ToolDefinition
from .base import (
    ModelAdapter,
    filter_response_text,
    parse_tool_arguments,
    tool_result_payload,
    validate_messages,
)

_FINISH_REASONS = {
    "stop": "stop",
    "tool_calls": "tool_calls",
    "function_call": "tool_calls",
    "length": "max_tokens",
    "error": "error",
}


class OpenRouterAdapter(ModelAdapter):
    """Adapter for any model routed through OpenRouter."""

    provider = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=base_url or get_settings().openrouter_base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Title": "Codalyn",
            },
            timeout_seconds=timeout_seconds,
            transport=transport,
        )

    def _build_payload(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model_name,
            "messages": convert_messages(messages),
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters,
                    },
                }
                for tool in tools
            ]
            payload["tool_choice"] = "auto"
        if stream:
            payload["stream"] = True
        return payload

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        validate_messages(messages)
        payload = self._build_payload(messages, tools, stream=False)

        self.logger.debug("model_request", messages=len(messages), tools=len(tools))
        data = await self._post_json("/chat/completions", payload)

        choices = data.get("choices") or []
        if not choices:
            self.logger.warning("model_response_empty")
            return ModelResponse(finish_reason="error")

        choice = choices[0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=raw.get("id"),
                name=raw["function"]["name"],
                args=parse_tool_arguments(raw["function"].get("arguments")),
            )
            for raw in message.get("tool_calls") or []
            if raw.get("function", {}).get("name")
        ]
        content = filter_response_text(message.get("content") or "")
        finish_reason = (
            "tool_calls"
            if tool_calls
            else _FINISH_REASONS.get(choice.get("finish_reason") or "stop", "stop")
        )

        self.logger.info(
            "model_response",
            content_length=len(content),
            tool_calls=len(tool_calls),
            finish_reason=finish_reason,
        )
        return ModelResponse(
            content=content,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    async def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[StreamChunk]:
        validate_messages(messages)
        payload = self._build_payload(messages, tools, stream=True)

        self.logger.debug("model_stream_request", messages=len(messages), tools=len(tools))

        # Tool call fragments arrive spread over many deltas, keyed by index.
        pending: dict[int, dict[str, Any]] = {}
        async for event in self._stream_sse("/chat/completions", payload):
            for choice in event.get("choices") or []:
                delta = choice.get("delta") or {}
                if content := delta.get("content"):
                    yield TextChunk(content=content)

                for fragment in delta.get("tool_calls") or []:
                    slot = pending.setdefault(
                        fragment.get("index", 0),
                        {"id": None, "name": "", "arguments": ""},
                    )
                    if fragment.get("id"):
                        slot["id"] = fragment["id"]
                    function = fragment.get("function") or {}
                    if function.get("name"):
                        slot["name"] += function["name"]
                    if function.get("arguments"):
                        slot["arguments"] += function["arguments"]

                if choice.get("finish_reason") == "tool_calls":
                    for chunk in _drain(pending):
                        yield chunk

        for chunk in _drain(pending):
            yield chunk


def _drain(pending: dict[int, dict[str, Any]]) -> list[ToolCallChunk]:
    chunks = [
        ToolCallChunk(
            tool_call=ToolCall(
                id=slot["id"],
                name=slot["name"],
                args=parse_tool_arguments(slot["arguments"]),
            )
        )
        for _, slot in sorted(pending.items())
        if slot["name"]
    ]
    pending.clear()
    return chunks


def convert_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """
    Convert conversation messages to chat-completions messages.

    Assistant tool calls without a provider id get a generated one; the
    following tool message links its results to those ids by position.
    """
    converted: list[dict[str, Any]] = []
    last_call_ids: list[str] = []

    for turn, message in enumerate(messages):
        if message.role in (MessageRole.SYSTEM, MessageRole.USER):
            converted.append({"role": message.role.value, "content": message.content})

        elif message.role == MessageRole.ASSISTANT:
            entry: dict[str, Any] = {
                "role": "assistant",
                "content": message.content or None,
            }
            last_call_ids = [
                call.id or f"call_{turn}_{position}"
                for position, call in enumerate(message.tool_calls)
            ]
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.args),
                        },
                    }
                    for call_id, call in zip(last_call_ids, message.tool_calls)
                ]
            converted.append(entry)

        elif message.role == MessageRole.TOOL:
            for position, result in enumerate(message.tool_results):
                call_id = result.tool_call_id
                if call_id is None:
                    call_id = (
                        last_call_ids[position]
                        if position < len(last_call_ids)
                        else f"call_{turn}_{position}"
                    )
                converted.append(
                    {
                        "role": "tool",
                        "tool_call_id": call_id,
                        "name": result.name,
                        "content": json.dumps(
                            tool_result_payload(result.result, result.error),
                            default=str,
                        ),
                    }
                )

    return converted
