"""Utility modules for RAG service."""

from .prompts import (
    GENERATION_SYSTEM_PROMPT,
    VERIFICATION_SYSTEM_PROMPT,
    STREAMING_SYSTEM_PROMPT,
    REWRITE_SYSTEM_PROMPT,
    RERANK_SYSTEM_PROMPT,
    build_answer_prompt,
    build_verification_prompt,
    build_rewrite_prompt,
    build_rerank_prompt,
)

__all__ = [
    "GENERATION_SYSTEM_PROMPT",
    "VERIFICATION_SYSTEM_PROMPT",
    "STREAMING_SYSTEM_PROMPT",
    "REWRITE_SYSTEM_PROMPT",
    "RERANK_SYSTEM_PROMPT",
    "build_answer_prompt",
    "build_verification_prompt",
    "build_rewrite_prompt",
    "build_rerank_prompt",
]
