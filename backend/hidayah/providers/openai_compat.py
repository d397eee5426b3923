"""
OpenAI-Compatible Provider Implementation.

Works with the OpenAI API and any OpenAI-compatible endpoint.
Provides chat completions (plain, JSON-constrained and streamed) and the
embedding model the verse corpus was indexed with.
"""

from typing import AsyncIterator, Optional
from loguru import logger

from .base import BaseLLMProvider, ProviderConfig, LLMResponse, Message, ProviderType
from ..core.exceptions import ConfigurationError, EmbeddingError, GenerationError


OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAICompatibleProvider(BaseLLMProvider):
    """
    OpenAI-compatible API provider.

    Works with:
    - OpenAI API
    - Azure OpenAI
    - vLLM / LM Studio / LocalAI
    - Any OpenAI-compatible endpoint
    """

    def __init__(self, config: Optional[ProviderConfig] = None):
        if config is None:
            config = ProviderConfig(
                provider_type=ProviderType.OPENAI,
                base_url=OPENAI_BASE_URL,
                model="gpt-4.1",
                fast_model="gpt-4.1-mini",
                embedding_model="text-embedding-3-large",
            )
        super().__init__(config)

        self._async_client = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize the OpenAI client."""
        from openai import AsyncOpenAI

        base_url = self.config.base_url or OPENAI_BASE_URL
        api_key = self.config.api_key

        if not api_key:
            if base_url == OPENAI_BASE_URL:
                raise ConfigurationError("Missing OpenAI API key")
            api_key = "not-needed"  # Local endpoints don't need a key

        self._async_client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=self.config.timeout,
        )
        self._initialized = True
        logger.info(f"OpenAI provider initialized with model: {self.config.model}")

    async def generate_async(
        self,
        messages: list[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        fast: bool = False,
        **kwargs
    ) -> LLMResponse:
        """Generate response using OpenAI-compatible API."""

        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._async_client.chat.completions.create(
                model=self._model_for(fast),
                messages=self._format_messages(messages),
                max_completion_tokens=self._get_param("max_tokens", max_tokens),
                temperature=self._get_param("temperature", temperature),
                **kwargs
            )

            return self._parse_response(response)

        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise GenerationError(f"OpenAI generation failed: {e}") from e

    async def stream(
        self,
        messages: list[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> AsyncIterator[str]:
        """Stream response fragments from OpenAI-compatible API."""

        try:
            stream = await self._async_client.chat.completions.create(
                model=self.config.model,
                messages=self._format_messages(messages),
                max_completion_tokens=self._get_param("max_tokens", max_tokens),
                temperature=self._get_param("temperature", temperature),
                stream=True,
                **kwargs
            )
        except Exception as e:
            logger.error(f"OpenAI stream failed: {e}")
            raise GenerationError(f"OpenAI streaming failed: {e}") from e

        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except Exception as e:
            logger.error(f"OpenAI stream failed: {e}")
            raise GenerationError(f"OpenAI streaming failed: {e}") from e
        finally:
            # Releases the HTTP response; aborts generation if we stopped early
            await stream.close()

    async def embed_async(self, text: str, dimensions: Optional[int] = None) -> list[float]:
        """Embed text with the configured embedding model."""

        try:
            response = await self._async_client.embeddings.create(
                model=self.config.embedding_model or "text-embedding-3-large",
                input=text,
                dimensions=dimensions or self.config.embedding_dimensions,
            )
            return list(response.data[0].embedding)

        except Exception as e:
            logger.error(f"OpenAI embedding failed: {e}")
            raise EmbeddingError(f"OpenAI embedding failed: {e}") from e

    async def health_check(self) -> bool:
        """Check if OpenAI API is accessible."""
        if not self._initialized:
            return False

        try:
            await self._async_client.models.list()
            return True
        except Exception as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    def _parse_response(self, response) -> LLMResponse:
        """Parse OpenAI API response."""

        choice = response.choices[0] if response.choices else None

        return LLMResponse(
            content=(choice.message.content or "") if choice else "",
            model=response.model,
            provider=self.name,
            usage={
                "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
                "completion_tokens": response.usage.completion_tokens if response.usage else 0,
                "total_tokens": response.usage.total_tokens if response.usage else 0,
            },
            finish_reason=choice.finish_reason if choice else None,
            raw_response=response
        )
