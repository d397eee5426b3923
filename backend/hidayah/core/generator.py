"""
Generator Module - Cited answer generation with a conditional verification pass.

Each pass is one JSON-constrained completion. Model output goes through a
strict schema; anything that fails it falls back to the raw text with
citations re-derived from that text. Parsing never raises.
"""

import re
from dataclasses import dataclass
from typing import Optional
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .context_manager import format_context_for_prompt
from .models import (
    ChatResponse,
    Citation,
    ConversationMessage,
    PairedVerse,
    MAX_AYAH,
    MAX_SURAH,
)
from ..citation.parser import parse_citations, paragraph_has_citation, split_into_paragraphs
from ..citation.validator import merge_citations, validate_citation_list
from ..providers.base import BaseLLMProvider, Message
from ..utils.prompts import (
    GENERATION_SYSTEM_PROMPT,
    VERIFICATION_SYSTEM_PROMPT,
    build_answer_prompt,
    build_verification_prompt,
)


NO_VERSES_ANSWER = (
    "I could not find relevant Quran verses to answer your question. "
    "Could you please rephrase or provide more context about what you're looking for?"
)
NO_VERSES_UNCERTAINTY = "No relevant verses found in the database."
OUT_OF_CONTEXT_UNCERTAINTY = "Some citations may reference verses not in the current context."
PARSE_FAILURE_UNCERTAINTY = "Response parsing issue - please verify the citations manually."

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


# =============================================================================
# RESPONSE SCHEMA
# =============================================================================

class CitationPayload(BaseModel):
    """One entry of the model's structured citation list."""

    surah: int
    ayah: int


class ModelAnswer(BaseModel):
    """The JSON object the model is instructed to return."""

    model_config = ConfigDict(extra="ignore")

    answer_markdown: str = Field(min_length=1)
    citations: list[CitationPayload] = Field(default_factory=list)
    uncertainty: Optional[str] = None

    @field_validator("citations", mode="before")
    @classmethod
    def null_to_empty(cls, value):
        return [] if value is None else value

    @field_validator("citations")
    @classmethod
    def drop_out_of_range(cls, citations: list[CitationPayload]) -> list[CitationPayload]:
        return [
            c for c in citations
            if 1 <= c.surah <= MAX_SURAH and 1 <= c.ayah <= MAX_AYAH
        ]

    @field_validator("uncertainty", mode="before")
    @classmethod
    def falsy_to_none(cls, value) -> Optional[str]:
        # false, 0, "" and blank strings all mean "no uncertainty"
        if not value:
            return None
        text = value if isinstance(value, str) else str(value)
        return text.strip() or None


def strip_code_fence(content: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```)."""
    return _CODE_FENCE.sub("", content.strip()).strip()


def parse_model_response(content: str, context: list[PairedVerse]) -> ChatResponse:
    """
    Turn raw model output into a ChatResponse.

    Valid JSON path: structured citations are unioned with citations found
    in the answer text, then checked against ``context``; out-of-context
    citations only add an advisory uncertainty.

    Fallback path: the raw text becomes the answer, citations come from
    the text alone, and a fixed uncertainty note is attached.
    """
    try:
        parsed = ModelAnswer.model_validate_json(strip_code_fence(content))
    except ValidationError as e:
        logger.warning(f"Failed to parse model response as JSON ({e.error_count()} errors)")
        return ChatResponse(
            answer_markdown=content,
            citations=parse_citations(content),
            uncertainty=PARSE_FAILURE_UNCERTAINTY,
        )

    structured = [Citation(c.surah, c.ayah) for c in parsed.citations]
    citations = merge_citations(structured, parse_citations(parsed.answer_markdown))

    answer = ChatResponse(
        answer_markdown=parsed.answer_markdown,
        citations=citations,
        uncertainty=parsed.uncertainty,
    )

    validation = validate_citation_list(citations, [verse.ref for verse in context])
    if not validation.valid:
        logger.warning(
            f"Answer cites verses outside context: "
            f"{[c.key for c in validation.invalid_citations]}"
        )
        if not answer.uncertainty:
            answer.uncertainty = OUT_OF_CONTEXT_UNCERTAINTY

    return answer


def needs_verification(draft: ChatResponse) -> bool:
    """A draft is verified when it has no citations or an uncited paragraph."""
    if not draft.citations:
        return True
    return not all(
        paragraph_has_citation(p) for p in split_into_paragraphs(draft.answer_markdown)
    )


def no_verses_response() -> ChatResponse:
    return ChatResponse(
        answer_markdown=NO_VERSES_ANSWER,
        citations=[],
        uncertainty=NO_VERSES_UNCERTAINTY,
    )


# =============================================================================
# GENERATOR
# =============================================================================

@dataclass
class GenerationConfig:
    """Configuration for generation."""

    temperature: float = 0.3
    verification_temperature: float = 0.1
    max_tokens: int = 2000
    explorer_hint: Optional[str] = None


class AnswerGenerator:
    """
    Cited answer generator.

    Pipeline:
    1. Generation pass (temperature 0.3, JSON)
    2. Parse, union citations, validate against context
    3. Verification pass, once, if the draft has uncited paragraphs or no
       citations at all; its parsed result replaces the draft
    4. Optional explorer hint on cited answers
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        config: Optional[GenerationConfig] = None,
    ):
        self.provider = provider
        self.config = config or GenerationConfig()

    async def generate_answer(
        self,
        question: str,
        context: list[PairedVerse],
        history: Optional[list[ConversationMessage]] = None,
    ) -> ChatResponse:
        """Run the generation pass."""
        messages = build_generation_messages(question, context, history, GENERATION_SYSTEM_PROMPT)

        response = await self.provider.generate_async(
            messages,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            json_mode=True,
        )
        logger.debug(f"Generation pass used {response.total_tokens} tokens")

        return parse_model_response(response.content, context)

    async def verify_answer(
        self,
        draft: ChatResponse,
        context: list[PairedVerse],
    ) -> ChatResponse:
        """Run the verification pass over a draft answer."""
        user_message = build_verification_prompt(
            draft.answer_markdown,
            draft.citations,
            format_context_for_prompt(context),
        )
        messages = [
            Message(role="system", content=VERIFICATION_SYSTEM_PROMPT),
            Message(role="user", content=user_message),
        ]

        response = await self.provider.generate_async(
            messages,
            max_tokens=self.config.max_tokens,
            temperature=self.config.verification_temperature,
            json_mode=True,
        )
        logger.debug(f"Verification pass used {response.total_tokens} tokens")

        return parse_model_response(response.content, context)

    async def generate_verified_answer(
        self,
        question: str,
        context: list[PairedVerse],
        history: Optional[list[ConversationMessage]] = None,
    ) -> ChatResponse:
        """
        Full generation: generate, then verify at most once.

        With an empty context no model is called and a fixed
        "no relevant verses" response is returned.
        """
        if not context:
            return no_verses_response()

        answer = await self.generate_answer(question, context, history)

        if needs_verification(answer):
            logger.info("Draft has uncited paragraphs, running verification pass")
            answer = await self.verify_answer(answer, context)

        if answer.citations and self.config.explorer_hint:
            answer.answer_markdown = f"{answer.answer_markdown}\n\n{self.config.explorer_hint}"

        return answer


def build_generation_messages(
    question: str,
    context: list[PairedVerse],
    history: Optional[list[ConversationMessage]],
    system_prompt: str,
) -> list[Message]:
    """System prompt, prior turns, then the question with its verse block."""
    messages = [Message(role="system", content=system_prompt)]

    for turn in history or []:
        messages.append(Message(role=turn.role, content=turn.content))

    user_message = build_answer_prompt(question, format_context_for_prompt(context))
    messages.append(Message(role="user", content=user_message))

    logger.debug(f"Prompt token estimate: ~{(len(system_prompt) + len(user_message)) // 4} tokens")
    return messages
