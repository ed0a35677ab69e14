"""Model adapter contract shared by every provider backend."""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import structlog

from ..config import get_settings
from ..models.error_types import AdapterError
from ..models.messages import Message, MessageRole, ModelResponse, StreamChunk
from ..models.tool_integration import ToolDefinition

logger = structlog.get_logger()

_FILE_CONTENT_BLOCK = re.compile(r"File content:\s*\n\s*```[\s\S]*?```", re.IGNORECASE)
_CODE_BLOCK = re.compile(r"```[\w-]*\n([\s\S]*?)```")
_IMPORT_LINE = re.compile(r"import\s+.*from")
_EXPORT_LINE = re.compile(r"export\s+(default\s+)?(const|function|class|interface|type)")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


def filter_response_text(text: str) -> str:
    """
    Remove whole-file dumps the model leaked into its reply.

    Files are meant to be written through tools, so code blocks that look like a
    complete source file (long, with imports or exports) and "File content:"
    blocks are dropped. Short snippets are kept.
    """
    if not text:
        return text

    filtered = _FILE_CONTENT_BLOCK.sub("", text)

    def _drop_file_dump(match: re.Match[str]) -> str:
        body = match.group(1)
        is_large = body.count("\n") + 1 > 30 and len(body) > 500
        looks_like_module = bool(_IMPORT_LINE.search(body) or _EXPORT_LINE.search(body))
        return "" if is_large and looks_like_module else match.group(0)

    filtered = _CODE_BLOCK.sub(_drop_file_dump, filtered)
    filtered = _EXTRA_NEWLINES.sub("\n\n", filtered)
    return filtered.strip()


def validate_messages(messages: Sequence[Message]) -> None:
    """
    Check a request before any network I/O.

    Raises:
        ValueError: If messages is empty or ends with an assistant turn
    """
    if not messages:
        raise ValueError("At least one message is required")
    if messages[-1].role == MessageRole.ASSISTANT:
        raise ValueError("The last message must not be an assistant message")


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    """Decode provider tool-call arguments into a dict."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        logger.warning("tool_arguments_parse_error", error=str(e), raw=str(raw)[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def tool_result_payload(result: Any, error: str | None) -> Any:
    """Body sent back to the model for one tool result."""
    if error is not None:
        return {"error": error}
    return result


class ModelAdapter(ABC):
    """
    Normalizes one language-model provider to a single request/response/stream
    contract.

    Adapters hold no conversation state and may be shared between agents.
    Transport, authentication and quota failures raise AdapterError; adapters
    never retry.
    """

    provider: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        headers: dict[str, str],
        timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize adapter HTTP client.

        Args:
            api_key: Provider credential
            model: Provider model identifier
            base_url: Provider API root
            headers: Authentication and content headers
            timeout_seconds: Request timeout (defaults to settings)
            transport: Optional httpx transport
        """
        if not api_key:
            raise ValueError(f"An API key is required for {self.provider}")
        self._model = model
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json", **headers},
            timeout=timeout_seconds or get_settings().llm_timeout_seconds,
            transport=transport,
        )
        self.logger = logger.bind(provider=self.provider, model=model)

    @property
    def model_name(self) -> str:
        return self._model

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> ModelResponse:
        """
        Generate one complete response.

        Args:
            messages: Conversation so far, ending in a non-assistant turn
            tools: Tools the model may call (may be empty)

        Returns:
            Normalized model response

        Raises:
            ValueError: If the message list is invalid
            AdapterError: If the provider request fails
        """

    @abstractmethod
    def generate_stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a response as text and tool-call chunks.

        Text chunks arrive in provider order; tool calls are surfaced as
        discrete chunks, never inside text. The iterator ends when the
        provider closes the stream.
        """

    async def _post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response) from e
        except httpx.HTTPError as e:
            self.logger.error("model_request_failed", error=str(e))
            raise AdapterError(
                f"{self.provider} request failed: {e}", provider=self.provider
            ) from e
        except ValueError as e:
            raise AdapterError(
                f"{self.provider} returned invalid JSON", provider=self.provider
            ) from e

    async def _stream_sse(self, url: str, payload: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded `data:` events of a server-sent event stream."""
        try:
            async with self.client.stream("POST", url, json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise self._status_error(response)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError as e:
                        self.logger.warning("model_stream_parse_error", error=str(e), line=line)
                        continue
                    if isinstance(event, dict):
                        yield event
        except httpx.HTTPError as e:
            self.logger.error("model_stream_failed", error=str(e))
            raise AdapterError(
                f"{self.provider} stream failed: {e}", provider=self.provider
            ) from e

    def _status_error(self, response: httpx.Response) -> AdapterError:
        detail = response.text[:500] if response.content else response.reason_phrase
        self.logger.error(
            "model_request_rejected",
            status_code=response.status_code,
            detail=detail,
        )
        return AdapterError(
            f"{self.provider} returned HTTP {response.status_code}: {detail}",
            provider=self.provider,
            status_code=response.status_code,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
