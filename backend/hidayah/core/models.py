"""
Data model shared across the pipeline.

Verse references, retrieved (paired) verses, conversation turns and the
final chat response. Everything here is constructed per request and never
persisted by the service.
"""

from dataclasses import dataclass, field, asdict
from typing import Literal, Optional


MAX_SURAH = 114
MAX_AYAH = 286  # Longest surah (Al-Baqarah); used as a parse-time bound


@dataclass(frozen=True)
class VerseRef:
    """Immutable identity of a single verse."""

    surah: int
    ayah: int

    @property
    def key(self) -> str:
        """Uniqueness key, e.g. ``"2:255"``."""
        return f"{self.surah}:{self.ayah}"

    @property
    def label(self) -> str:
        """Inline citation form, e.g. ``"(2:255)"``."""
        return f"({self.surah}:{self.ayah})"

    def to_dict(self) -> dict:
        return {"surah": self.surah, "ayah": self.ayah}


@dataclass(frozen=True)
class Citation(VerseRef):
    """A verse referenced by an answer (as opposed to one retrieved as evidence)."""


@dataclass
class VerseContext:
    """Thematic annotation for a verse (enrichment, never evidence)."""

    theme: Optional[str] = None
    context_summary: Optional[str] = None
    asbab_summary: Optional[str] = None


@dataclass
class PairedVerse:
    """A retrieved verse with its Arabic text and English translation."""

    surah: int
    ayah: int
    arabic: str
    english: str
    similarity: float
    context_summary: Optional[str] = None
    theme: Optional[str] = None

    @property
    def ref(self) -> VerseRef:
        return VerseRef(self.surah, self.ayah)

    @property
    def key(self) -> str:
        return f"{self.surah}:{self.ayah}"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["ref"] = f"({self.surah}:{self.ayah})"
        return data


@dataclass
class ConversationMessage:
    """One caller-supplied turn of conversation history."""

    role: Literal["user", "assistant"]
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatResponse:
    """Atomic unit of output: a cited markdown answer."""

    answer_markdown: str
    citations: list[Citation] = field(default_factory=list)
    uncertainty: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "answer_markdown": self.answer_markdown,
            "citations": [c.to_dict() for c in self.citations],
            "uncertainty": self.uncertainty,
        }
