"""
Query Preprocessor - Prepare user questions for retrieval.

Two steps, both optional and both safe to skip:
- follow-up rewriting: turn "what about men?" into a standalone question
  using recent conversation turns (one fast LLM call);
- short-query expansion: turn a bare topic ("music") into a full question
  so the embedding has a sentence-shaped anchor like the corpus text.
"""

import re
from typing import Optional
from loguru import logger

from .models import ConversationMessage
from ..providers.base import BaseLLMProvider, Message
from ..utils.prompts import REWRITE_SYSTEM_PROMPT, build_rewrite_prompt


SHORT_QUERY_MAX_WORDS = 6

QUESTION_STARTERS = {
    "what", "why", "how", "when", "where", "who", "whom", "whose", "which",
    "is", "are", "am", "was", "were", "do", "does", "did", "can", "could",
    "should", "would", "will", "shall", "may", "might", "must", "has",
    "have", "had",
}

DOMAIN_TERMS = ("quran", "qur'an", "islam", "allah", "muslim", "ayah", "surah", "verse")

EXPANSION_TEMPLATE = "What does the Quran say about {topic}?"

# Queries longer than this are treated as already self-contained
REWRITE_MAX_QUERY_CHARS = 100
REWRITE_MIN_OUTPUT_CHARS = 5


def _is_question(query: str) -> bool:
    first_word = re.split(r"\W+", query.lower(), maxsplit=1)[0]
    return first_word in QUESTION_STARTERS


def _mentions_domain(query: str) -> bool:
    lowered = query.lower()
    return any(term in lowered for term in DOMAIN_TERMS)


def expand_short_query(query: str) -> str:
    """
    Expand a terse topic query into a full question.

    Only applies when the query has at most six words, is not already
    phrased as a question, and does not mention a domain term.

    Examples:
        >>> expand_short_query("music")
        'What does the Quran say about music?'
        >>> expand_short_query("the role of patience in surah 2")
        'the role of patience in surah 2'
    """
    trimmed = query.strip()
    if not trimmed:
        return query

    if len(trimmed.split()) > SHORT_QUERY_MAX_WORDS:
        return query
    if _is_question(trimmed) or _mentions_domain(trimmed):
        return query

    topic = trimmed.rstrip(" ?!.")
    return EXPANSION_TEMPLATE.format(topic=topic)


class QueryRewriter:
    """
    Rewrites follow-up questions into standalone ones.

    Never a hard dependency: any failure returns the original query.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        history_messages: int = 4,
        message_chars: int = 500,
    ):
        self.provider = provider
        self.history_messages = history_messages
        self.message_chars = message_chars

    async def rewrite(
        self,
        query: str,
        history: Optional[list[ConversationMessage]] = None,
    ) -> str:
        """
        Rewrite ``query`` using the last few history turns.

        Skipped when there is no history or the query is already long
        enough to stand on its own.
        """
        if not history or len(query) > REWRITE_MAX_QUERY_CHARS:
            return query

        recent = history[-self.history_messages:]
        messages = [
            Message(role="system", content=REWRITE_SYSTEM_PROMPT),
            Message(role="user", content=build_rewrite_prompt(query, recent, self.message_chars)),
        ]

        try:
            response = await self.provider.generate_async(
                messages,
                max_tokens=150,
                temperature=0.0,
                fast=True,
            )
        except Exception as e:
            logger.warning(f"Query rewrite failed, using original query: {e}")
            return query

        rewritten = response.content.strip().strip('"').strip()
        if len(rewritten) < REWRITE_MIN_OUTPUT_CHARS:
            logger.warning("Query rewrite returned too little text, using original query")
            return query

        logger.info(f"Rewrote follow-up query: {query[:100]!r} -> {rewritten[:100]!r}")
        return rewritten


async def rewrite_query_with_context(
    query: str,
    history: Optional[list[ConversationMessage]],
    provider: BaseLLMProvider,
) -> str:
    """Functional shortcut for ``QueryRewriter(provider).rewrite(...)``."""
    return await QueryRewriter(provider).rewrite(query, history)
