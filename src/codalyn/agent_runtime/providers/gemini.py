"""Google Gemini adapter (Generative Language REST API)."""

import re
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

MAX_TOOL_NAME_LENGTH = 64

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.:-]")
_VALID_NAME_START = re.compile(r"^[a-zA-Z_]")

_FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "max_tokens",
    "SAFETY": "error",
    "RECITATION": "error",
    "MALFORMED_FUNCTION_CALL": "error",
}


def sanitize_tool_name(name: str) -> str:
    """
    Apply Gemini function naming rules.

    Invalid characters become underscores, a leading underscore is added when
    the name does not start with a letter or underscore, and the result is cut
    to 64 characters.
    """
    sanitized = _INVALID_NAME_CHARS.sub("_", name)
    if not _VALID_NAME_START.match(sanitized):
        sanitized = f"_{sanitized}"
    return sanitized[:MAX_TOOL_NAME_LENGTH]


class GeminiAdapter(ModelAdapter):
    """Adapter for Gemini models."""

    provider = "gemini"

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
            base_url=base_url or get_settings().gemini_base_url,
            headers={"x-goog-api-key": api_key},
            timeout_seconds=timeout_seconds,
            transport=transport,
        )

    def _build_request(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> tuple[dict[str, Any], dict[str, str]]:
        """Build the request body and the sanitized-to-original tool name map."""
        name_map: dict[str, str] = {}
        declarations = []
        for tool in tools:
            sanitized = sanitize_tool_name(tool.name)
            if sanitized != tool.name:
                self.logger.debug(
                    "tool_name_sanitized", original=tool.name, sanitized=sanitized
                )
            name_map[sanitized] = tool.name
            declarations.append(
                {
                    "name": sanitized,
                    "description": tool.description,
                    "parametersJsonSchema": tool.parameters,
                }
            )

        system_instruction, contents = convert_messages(messages)
        body: dict[str, Any] = {"contents": contents}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if declarations:
            body["tools"] = [{"functionDeclarations": declarations}]
            body["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}
        return body, name_map

    async def generate(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        validate_messages(messages)
        body, name_map = self._build_request(messages, tools)

        self.logger.debug("model_request", messages=len(messages), tools=len(tools))
        data = await self._post_json(f"/models/{self.model_name}:generateContent", body)

        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            self.logger.warning("model_response_empty", block_reason=block_reason)
            return ModelResponse(finish_reason="error")

        candidate = candidates[0]
        text, tool_calls = _parse_parts(candidate, name_map)
        content = filter_response_text(text)
        finish_reason = (
            "tool_calls"
            if tool_calls
            else _FINISH_REASONS.get(candidate.get("finishReason") or "STOP", "stop")
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
        body, name_map = self._build_request(messages, tools)

        self.logger.debug("model_stream_request", messages=len(messages), tools=len(tools))
        url = f"/models/{self.model_name}:streamGenerateContent?alt=sse"
        async for event in self._stream_sse(url, body):
            for candidate in (event.get("candidates") or [])[:1]:
                text, tool_calls = _parse_parts(candidate, name_map)
                if text:
                    yield TextChunk(content=text)
                for tool_call in tool_calls:
                    yield ToolCallChunk(tool_call=tool_call)


def _parse_parts(
    candidate: dict[str, Any], name_map: dict[str, str]
) -> tuple[str, list[ToolCall]]:
    parts = (candidate.get("content") or {}).get("parts") or []
    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for part in parts:
        if part.get("thought"):
            continue
        if "text" in part:
            texts.append(part["text"])
        elif call := part.get("functionCall"):
            name = call.get("name", "")
            tool_calls.append(
                ToolCall(
                    id=call.get("id"),
                    name=name_map.get(name, name),
                    args=parse_tool_arguments(call.get("args")),
                )
            )
    return "".join(texts), tool_calls


def convert_messages(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
    """
    Convert conversation messages to Gemini contents.

    Returns:
        Tuple of (system instruction text, contents list)
    """
    system_parts: list[str] = []
    contents: list[dict[str, Any]] = []

    for message in messages:
        if message.role == MessageRole.SYSTEM:
            if message.content:
                system_parts.append(message.content)

        elif message.role == MessageRole.USER:
            contents.append({"role": "user", "parts": [{"text": message.content}]})

        elif message.role == MessageRole.ASSISTANT:
            parts: list[dict[str, Any]] = []
            if message.content:
                parts.append({"text": message.content})
            for call in message.tool_calls:
                function_call: dict[str, Any] = {
                    "name": sanitize_tool_name(call.name),
                    "args": call.args,
                }
                if call.id:
                    function_call["id"] = call.id
                parts.append({"functionCall": function_call})
            if parts:
                contents.append({"role": "model", "parts": parts})

        elif message.role == MessageRole.TOOL:
            parts = []
            for result in message.tool_results:
                function_response: dict[str, Any] = {
                    "name": sanitize_tool_name(result.name),
                    "response": {
                        "name": result.name,
                        "content": tool_result_payload(result.result, result.error),
                    },
                }
                if result.tool_call_id:
                    function_response["id"] = result.tool_call_id
                parts.append({"functionResponse": function_response})
            if parts:
                contents.append({"role": "user", "parts": parts})

    return "\n\n".join(system_parts), contents
