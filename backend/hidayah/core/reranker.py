"""
Rerank strategies for vector-search candidates.

Two implementations behind one interface, selected by configuration:
- ``IdentityReranker`` keeps the search order (default);
- ``LLMReranker`` scores every candidate 1-10 with a fast model, all
  calls in parallel, and keeps the best ``top_n``.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from typing import Optional
from loguru import logger

from ..providers.base import BaseLLMProvider, Message
from ..storage.verse_store import RetrievalResult
from ..utils.prompts import RERANK_SYSTEM_PROMPT, build_rerank_prompt


NEUTRAL_SCORE = 5
_SCORE_RE = re.compile(r"\d+")


class BaseReranker(ABC):
    """Orders search candidates and picks the anchors for expansion."""

    @abstractmethod
    async def rerank(
        self,
        query: str,
        candidates: list[RetrievalResult],
        top_n: int,
    ) -> list[RetrievalResult]:
        """Return at most ``top_n`` candidates, best first."""


class IdentityReranker(BaseReranker):
    """No reranking: similarity order from the search is kept."""

    async def rerank(
        self,
        query: str,
        candidates: list[RetrievalResult],
        top_n: int,
    ) -> list[RetrievalResult]:
        return candidates[:top_n]


class LLMReranker(BaseReranker):
    """
    Pointwise LLM relevance scoring.

    A failed or unparseable score counts as neutral (5), so a single bad
    call never drops a candidate or fails the request.
    """

    def __init__(self, provider: BaseLLMProvider):
        self.provider = provider

    async def rerank(
        self,
        query: str,
        candidates: list[RetrievalResult],
        top_n: int,
    ) -> list[RetrievalResult]:
        if not candidates:
            return []

        scores = await asyncio.gather(
            *(self.score(query, candidate) for candidate in candidates)
        )

        # sorted() is stable: equal scores keep their similarity order
        ranked = sorted(zip(candidates, scores), key=lambda pair: -pair[1])
        logger.debug(f"Rerank scores: {[s for _, s in ranked[:top_n]]}")

        return [candidate for candidate, _ in ranked[:top_n]]

    async def score(self, query: str, candidate: RetrievalResult) -> int:
        """Score one candidate from 1 to 10."""
        messages = [
            Message(role="system", content=RERANK_SYSTEM_PROMPT),
            Message(role="user", content=build_rerank_prompt(query, candidate.content)),
        ]

        try:
            response = await self.provider.generate_async(
                messages,
                max_tokens=5,
                temperature=0.0,
                fast=True,
            )
        except Exception as e:
            logger.warning(f"Rerank scoring failed for {candidate.surah}:{candidate.ayah}: {e}")
            return NEUTRAL_SCORE

        return self._parse_score(response.content)

    @staticmethod
    def _parse_score(text: str) -> int:
        match = _SCORE_RE.search(text or "")
        if not match:
            return NEUTRAL_SCORE
        return max(1, min(10, int(match.group())))


def get_reranker(
    strategy: str = "none",
    provider: Optional[BaseLLMProvider] = None,
) -> BaseReranker:
    """Build the configured rerank strategy."""
    if strategy == "llm":
        if provider is None:
            raise ValueError("LLM reranking requires a provider")
        return LLMReranker(provider)
    if strategy == "none":
        return IdentityReranker()
    raise ValueError(f"Unknown rerank strategy: {strategy}")
