"""
Abstract base class for LLM providers.

All provider implementations must inherit from BaseLLMProvider and implement
the required methods for completion, streaming and embedding.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Any
from enum import Enum


class ProviderType(str, Enum):
    """Supported LLM provider types."""
    OPENAI = "openai"
    GEMINI = "gemini"


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""

    provider_type: ProviderType
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: str = "default"
    fast_model: Optional[str] = None  # cheap model for rewrite/rerank calls
    embedding_model: Optional[str] = None
    embedding_dimensions: int = 3072
    max_tokens: int = 2000
    temperature: float = 0.3
    timeout: float = 120.0
    extra_params: dict = field(default_factory=dict)


@dataclass
class LLMResponse:
    """Standardized response from LLM providers."""

    content: str
    model: str
    provider: str
    usage: dict = field(default_factory=dict)  # tokens used
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None  # Original provider response

    @property
    def prompt_tokens(self) -> int:
        return self.usage.get("prompt_tokens", 0)

    @property
    def completion_tokens(self) -> int:
        return self.usage.get("completion_tokens", 0)

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", self.prompt_tokens + self.completion_tokens)


@dataclass
class Message:
    """Chat message structure."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All provider implementations must implement:
    - generate_async(): One-shot completion (optionally JSON-constrained)
    - stream(): Token-incremental completion
    - embed_async(): Query embedding
    - health_check(): Verify provider availability

    Clients are built once per provider instance and are safe to share
    between concurrent requests.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._initialized = False

    @property
    def name(self) -> str:
        """Provider name for identification."""
        return self.config.provider_type.value

    @property
    def model(self) -> str:
        """Current model being used."""
        return self.config.model

    @abstractmethod
    async def generate_async(
        self,
        messages: list[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        fast: bool = False,
        **kwargs
    ) -> LLMResponse:
        """
        Generate a complete response from the LLM.

        Args:
            messages: List of chat messages
            max_tokens: Override default max tokens
            temperature: Override default temperature
            json_mode: Constrain the output to a single JSON object
            fast: Use the configured fast model instead of the main one
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse with generated content
        """
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> AsyncIterator[str]:
        """
        Stream response text fragments from the LLM.

        Closing the returned iterator early must abort the upstream request.

        Yields:
            Generated text fragments as they become available
        """
        pass

    @abstractmethod
    async def embed_async(self, text: str, dimensions: Optional[int] = None) -> list[float]:
        """
        Embed a single text with the corpus embedding model.

        Args:
            text: Text to embed
            dimensions: Override configured embedding dimensions

        Returns:
            Embedding vector
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the provider is available and responding.

        Returns:
            True if provider is healthy, False otherwise
        """
        pass

    def _get_param(self, param_name: str, override: Optional[Any]) -> Any:
        """Get parameter value with override support."""
        if override is not None:
            return override
        return getattr(self.config, param_name, None)

    def _model_for(self, fast: bool) -> str:
        if fast and self.config.fast_model:
            return self.config.fast_model
        return self.config.model

    def _format_messages(self, messages: list[Message]) -> list[dict]:
        """Convert Message objects to provider-expected format."""
        return [msg.to_dict() for msg in messages]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model})"
