"""Model adapters normalizing language-model providers."""

from typing import Any

from .base import ModelAdapter, filter_response_text
from .gemini import GeminiAdapter
from .openrouter import OpenRouterAdapter

_ADAPTERS: dict[str, type[ModelAdapter]] = {
    OpenRouterAdapter.provider: OpenRouterAdapter,
    GeminiAdapter.provider: GeminiAdapter,
}


def create_model_adapter(
    provider: str,
    api_key: str,
    model: str,
    **kwargs: Any,
) -> ModelAdapter:
    """
    Create a model adapter for a provider tag.

    Args:
        provider: "openrouter" or "gemini"
        api_key: Provider credential
        model: Provider model identifier
        **kwargs: Adapter options (base_url, timeout_seconds, transport)

    Raises:
        ValueError: If the provider is unknown
    """
    adapter_class = _ADAPTERS.get(provider.lower())
    if adapter_class is None:
        raise ValueError(
            f"Unknown provider: {provider}. Expected one of {sorted(_ADAPTERS)}"
        )
    return adapter_class(api_key=api_key, model=model, **kwargs)


__all__ = [
    "GeminiAdapter",
    "ModelAdapter",
    "OpenRouterAdapter",
    "create_model_adapter",
    "filter_response_text",
]
