"""
Configuration management for the Hidayah service using Pydantic Settings.

Supports environment variables and .env files for configuration.
Nested sections are addressed as ``HIDAYAH_<SECTION>__<FIELD>``, e.g.
``HIDAYAH_RETRIEVAL__TOP_K=8``.
"""

import os
from typing import Optional, Literal
from pathlib import Path
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAISettings(BaseModel):
    """OpenAI (or OpenAI-compatible) completion and embedding settings."""

    api_key: Optional[str] = Field(default=None, description="API key")
    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    model: str = Field(default="gpt-4.1", description="Answer generation model")
    fast_model: str = Field(default="gpt-4.1-mini", description="Model for query rewriting and reranking")
    embedding_model: str = Field(default="text-embedding-3-large", description="Embedding model used for the corpus")
    embedding_dimensions: int = Field(default=3072, description="Embedding size; must match the stored vectors")
    timeout: float = Field(default=120.0, description="Request timeout in seconds")


class GeminiSettings(BaseModel):
    """Google Gemini provider settings."""

    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    model: str = Field(default="gemini-2.5-flash", description="Answer generation model")
    fast_model: str = Field(default="gemini-2.5-flash-lite", description="Model for query rewriting and reranking")
    embedding_model: str = Field(default="gemini-embedding-001", description="Embedding model")
    embedding_dimensions: int = Field(default=3072, description="Embedding size; must match the stored vectors")


class SupabaseSettings(BaseModel):
    """Row store and vector-search RPC settings."""

    url: Optional[str] = Field(default=None, description="Supabase project URL")
    service_role_key: Optional[str] = Field(default=None, description="Supabase service role key")
    match_function: str = Field(default="match_documents", description="Vector search RPC name")
    documents_table: str = Field(default="documents", description="Verse rows (one per verse and language)")
    context_table: str = Field(default="verse_context", description="Verse annotation table")


class RetrievalSettings(BaseModel):
    """Retrieval configuration."""

    top_k: int = Field(default=10, description="Number of anchor verses to retrieve")
    similarity_threshold: float = Field(default=0.3, description="Minimum cosine similarity")
    search_lang: str = Field(default="en", description="Language searched by the vector RPC")
    passage_window: int = Field(default=2, description="Verses added on each side of an anchor")
    reranker: Literal["none", "llm"] = Field(
        default="none",
        description="Rerank strategy; per-candidate LLM scoring adds noticeable latency",
    )
    rerank_candidates: int = Field(default=20, description="Candidates fetched when reranking")
    rerank_top_n: int = Field(default=10, description="Candidates kept as anchors after reranking")


class GenerationSettings(BaseModel):
    """Answer generation settings."""

    temperature: float = Field(default=0.3, description="Generation pass temperature")
    verification_temperature: float = Field(default=0.1, description="Verification pass temperature")
    max_tokens: int = Field(default=2000, description="Maximum tokens per completion")
    rewrite_history_messages: int = Field(default=4, description="History turns shown to the query rewriter")
    rewrite_message_chars: int = Field(default=500, description="Per-turn truncation for the rewriter")
    explorer_hint: Optional[str] = Field(
        default=None,
        description="Line appended to cited answers pointing at a verse explorer UI",
    )


class RateLimitSettings(BaseModel):
    """Per-IP fixed-window rate limiting."""

    window_seconds: float = Field(default=60.0, description="Window length")
    max_requests: int = Field(default=10, description="Requests allowed per window")
    max_clients: int = Field(default=10_000, description="Tracked client cap")


class ApiSettings(BaseModel):
    """Request shape limits at the HTTP boundary."""

    message_min_chars: int = Field(default=3)
    message_max_chars: int = Field(default=1000)
    history_max_messages: int = Field(default=10)
    history_message_chars: int = Field(default=2000)


class Settings(BaseSettings):
    """Main settings for the Hidayah service."""

    # Provider selection
    default_provider: Literal["openai", "gemini"] = Field(
        default="openai",
        description="Completion and embedding provider",
    )

    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    def __init__(self, **kwargs):
        """Initialize settings, then fill credentials from the conventional variable names."""
        super().__init__(**kwargs)

        # The SDKs' own variable names are honoured when the prefixed ones are unset
        fallbacks = [
            (self.openai, "api_key", "OPENAI_API_KEY"),
            (self.gemini, "api_key", "GEMINI_API_KEY"),
            (self.supabase, "url", "SUPABASE_URL"),
            (self.supabase, "service_role_key", "SUPABASE_SERVICE_ROLE_KEY"),
        ]
        for section, attr, env_name in fallbacks:
            if getattr(section, attr) is None and os.environ.get(env_name):
                setattr(section, attr, os.environ[env_name])

    model_config = SettingsConfigDict(
        env_prefix="HIDAYAH_",
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        case_sensitive=False,
        extra="ignore"
    )


# Load .env file explicitly before creating settings instance
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)  # Only load if not already set

# Global settings instance
settings = Settings()
