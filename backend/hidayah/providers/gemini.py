"""
Google Gemini Provider Implementation.

Uses the google-genai SDK (async surface, ``client.aio``).
Best for: Good Arabic support, cost-effective, large context windows.
"""

from typing import AsyncIterator, Optional
from loguru import logger

from .base import BaseLLMProvider, ProviderConfig, LLMResponse, Message, ProviderType
from ..core.exceptions import ConfigurationError, EmbeddingError, GenerationError


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini LLM provider.

    Requires an API key via config (``HIDAYAH_GEMINI__API_KEY`` or
    ``GEMINI_API_KEY``).
    """

    def __init__(self, config: Optional[ProviderConfig] = None):
        if config is None:
            config = ProviderConfig(
                provider_type=ProviderType.GEMINI,
                model="gemini-2.5-flash",
                fast_model="gemini-2.5-flash-lite",
                embedding_model="gemini-embedding-001",
            )
        elif config.model == "default":
            # Override default model with valid Gemini model
            config.model = "gemini-2.5-flash"
        super().__init__(config)

        self._client = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize the Gemini client."""
        from google import genai

        if not self.config.api_key:
            raise ConfigurationError("Missing Gemini API key")

        self._client = genai.Client(api_key=self.config.api_key)
        self._initialized = True
        logger.info(f"Gemini provider initialized with model: {self.config.model}")

    async def generate_async(
        self,
        messages: list[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        fast: bool = False,
        **kwargs
    ) -> LLMResponse:
        """Generate response using Gemini."""

        model = self._model_for(fast)
        config = self._build_generation_config(messages, max_tokens, temperature, json_mode, **kwargs)

        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=self._convert_messages(messages),
                config=config,
            )
            return self._parse_response(response, model)

        except Exception as e:
            logger.error(f"Gemini generation failed: {e}")
            raise GenerationError(f"Gemini generation failed: {e}") from e

    async def stream(
        self,
        messages: list[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> AsyncIterator[str]:
        """Stream response fragments from Gemini."""

        config = self._build_generation_config(messages, max_tokens, temperature, False, **kwargs)

        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self.config.model,
                contents=self._convert_messages(messages),
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini stream failed: {e}")
            raise GenerationError(f"Gemini streaming failed: {e}") from e

        try:
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            logger.error(f"Gemini stream failed: {e}")
            raise GenerationError(f"Gemini streaming failed: {e}") from e
        finally:
            await response.aclose()

    async def embed_async(self, text: str, dimensions: Optional[int] = None) -> list[float]:
        """Embed text with the configured Gemini embedding model."""
        from google.genai import types

        try:
            result = await self._client.aio.models.embed_content(
                model=self.config.embedding_model or "gemini-embedding-001",
                contents=text,
                config=types.EmbedContentConfig(
                    output_dimensionality=dimensions or self.config.embedding_dimensions,
                ),
            )
            return list(result.embeddings[0].values)

        except Exception as e:
            logger.error(f"Gemini embedding failed: {e}")
            raise EmbeddingError(f"Gemini embedding failed: {e}") from e

    async def health_check(self) -> bool:
        """Check if Gemini API is accessible."""
        if not self._initialized:
            return False

        try:
            await self._client.aio.models.get(model=self.config.model)
            return True
        except Exception as e:
            logger.warning(f"Gemini health check failed: {e}")
            return False

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert messages to Gemini contents; system text goes in the config."""
        contents = []

        for msg in messages:
            if msg.role == "user":
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
            elif msg.role == "assistant":
                contents.append({"role": "model", "parts": [{"text": msg.content}]})

        return contents

    def _build_generation_config(
        self,
        messages: list[Message],
        max_tokens: Optional[int],
        temperature: Optional[float],
        json_mode: bool,
        **kwargs
    ):
        """Build Gemini generation config."""
        from google.genai import types

        system_instruction = next(
            (msg.content for msg in messages if msg.role == "system"), None
        )

        config = {
            "max_output_tokens": self._get_param("max_tokens", max_tokens),
            "temperature": self._get_param("temperature", temperature),
            **kwargs
        }
        if system_instruction:
            config["system_instruction"] = system_instruction
        if json_mode:
            config["response_mime_type"] = "application/json"

        return types.GenerateContentConfig(**config)

    def _parse_response(self, response, model: str) -> LLMResponse:
        """Parse Gemini API response."""

        try:
            content = response.text or ""
        except (AttributeError, ValueError):
            content = ""

        usage = {}
        if getattr(response, "usage_metadata", None):
            usage = {
                "prompt_tokens": response.usage_metadata.prompt_token_count or 0,
                "completion_tokens": response.usage_metadata.candidates_token_count or 0,
                "total_tokens": response.usage_metadata.total_token_count or 0,
            }

        return LLMResponse(
            content=content,
            model=model,
            provider=self.name,
            usage=usage,
            finish_reason="stop",
            raw_response=response
        )
