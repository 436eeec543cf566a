"""Built-in provider implementations."""

from typing import List

from ..base import BaseProvider
from .anthropic_provider import AnthropicProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAICompatibleProvider, OpenAIProvider
from .openrouter_provider import OpenRouterProvider


def builtin_providers() -> List[BaseProvider]:
    """Fresh instances of every built-in provider."""
    return [
        OpenAIProvider(),
        AnthropicProvider(),
        OllamaProvider(),
        OpenRouterProvider(),
        OpenAICompatibleProvider(),
    ]


__all__ = [
    "AnthropicProvider",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "builtin_providers",
]
