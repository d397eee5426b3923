"""
Provider Factory for creating LLM provider instances.

Handles provider creation based on configuration.
"""

from typing import Optional
from loguru import logger

from .base import BaseLLMProvider, ProviderConfig, ProviderType
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider


class ProviderFactory:
    """Factory for creating LLM provider instances."""

    _providers: dict[str, type[BaseLLMProvider]] = {
        "openai": OpenAICompatibleProvider,
        "gemini": GeminiProvider,
    }

    @classmethod
    def create(
        cls,
        provider_name: str,
        config: Optional[ProviderConfig] = None,
        **kwargs
    ) -> BaseLLMProvider:
        """
        Create a provider instance.

        Args:
            provider_name: Name of the provider (openai, gemini)
            config: Optional provider configuration
            **kwargs: Additional config parameters

        Returns:
            Configured provider instance
        """
        provider_name = provider_name.lower()

        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown provider: {provider_name}. Available: {available}"
            )

        provider_class = cls._providers[provider_name]
        logger.debug(f"Creating provider: {provider_name}")

        # Build config if not provided
        if config is None:
            provider_type = ProviderType(provider_name)
            config = ProviderConfig(provider_type=provider_type, **kwargs)

        return provider_class(config)

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available provider names."""
        return list(cls._providers.keys())


def get_provider(
    provider_name: Optional[str] = None,
    config: Optional[ProviderConfig] = None,
    **kwargs
) -> BaseLLMProvider:
    """
    Convenience function to get a provider instance.

    Args:
        provider_name: Provider name. If None, uses default from settings.
        config: Optional provider configuration
        **kwargs: Additional config parameters

    Returns:
        Configured provider instance

    Raises:
        ConfigurationError: If the provider's credentials are missing
    """
    from ..config.settings import settings

    if provider_name is None:
        provider_name = settings.default_provider

    # If config not provided, build from settings
    if config is None:
        provider_name_lower = provider_name.lower()
        gen = settings.generation

        if provider_name_lower == "openai":
            s = settings.openai
            config = ProviderConfig(
                provider_type=ProviderType.OPENAI,
                api_key=s.api_key,
                base_url=s.base_url,
                model=s.model,
                fast_model=s.fast_model,
                embedding_model=s.embedding_model,
                embedding_dimensions=s.embedding_dimensions,
                max_tokens=gen.max_tokens,
                temperature=gen.temperature,
                timeout=s.timeout,
            )
        elif provider_name_lower == "gemini":
            s = settings.gemini
            config = ProviderConfig(
                provider_type=ProviderType.GEMINI,
                api_key=s.api_key,
                model=s.model,
                fast_model=s.fast_model,
                embedding_model=s.embedding_model,
                embedding_dimensions=s.embedding_dimensions,
                max_tokens=gen.max_tokens,
                temperature=gen.temperature,
            )

    return ProviderFactory.create(provider_name, config, **kwargs)
