"""
Streaming Module - Single-pass answer streaming as server-sent events.

Event order on every stream:
    context -> text* -> done
    context -> text* -> error

``done`` carries citations parsed from the full concatenated text. No
verification pass runs here, since verification needs the complete draft.
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional
from loguru import logger

from .generator import build_generation_messages
from .models import ConversationMessage, PairedVerse
from ..citation.parser import parse_citations
from ..providers.base import BaseLLMProvider
from ..utils.prompts import STREAMING_SYSTEM_PROMPT


STREAM_ERROR_MESSAGE = "Failed to generate a response. Please try again."


@dataclass
class StreamEvent:
    """One event of the answer stream."""

    type: str  # "context", "text", "done", "error"
    data: Any

    def to_dict(self) -> dict:
        return {"type": self.type, "data": self.data}

    def to_sse(self) -> str:
        """Server-sent-events framing: one ``data:`` line, blank-line terminated."""
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"


async def stream_answer(
    provider: BaseLLMProvider,
    question: str,
    context: list[PairedVerse],
    history: Optional[list[ConversationMessage]] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[StreamEvent]:
    """
    Stream an answer as events.

    Args:
        provider: Completion provider
        question: The user's question (not the rewritten retrieval query)
        context: Retrieved verses, sent first as the ``context`` event
        history: Prior conversation turns
        is_disconnected: Polled between fragments; when it returns True the
            upstream completion is closed and no further events are sent

    Closing this generator early (``aclose()``) also closes the upstream
    completion.
    """
    yield StreamEvent("context", [verse.to_dict() for verse in context])

    messages = build_generation_messages(question, context, history, STREAMING_SYSTEM_PROMPT)

    fragments: list[str] = []
    upstream = provider.stream(messages, max_tokens=max_tokens, temperature=temperature)

    try:
        async for fragment in upstream:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Client disconnected, abandoning stream")
                return

            fragments.append(fragment)
            yield StreamEvent("text", fragment)

    except Exception as e:
        logger.error(f"Streaming generation failed: {e}")
        yield StreamEvent("error", STREAM_ERROR_MESSAGE)
        return

    finally:
        await upstream.aclose()

    full_content = "".join(fragments)
    citations = parse_citations(full_content)
    logger.info(f"Stream finished: {len(full_content)} chars, {len(citations)} citations")

    yield StreamEvent("done", {
        "citations": [c.to_dict() for c in citations],
        "fullContent": full_content,
    })
