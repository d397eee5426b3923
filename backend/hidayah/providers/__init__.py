"""LLM Provider implementations for the Hidayah service."""

from .base import BaseLLMProvider, LLMResponse, Message, ProviderConfig, ProviderType
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider
from .factory import get_provider, ProviderFactory

__all__ = [
    "BaseLLMProvider",
    "LLMResponse",
    "Message",
    "ProviderConfig",
    "ProviderType",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "get_provider",
    "ProviderFactory",
]
