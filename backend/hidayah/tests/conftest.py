"""
Shared fixtures: a scripted fake LLM provider, an in-memory verse store
and sample verses.
"""

import json
from typing import Callable, Optional, Union

import pytest

from ..core.exceptions import GenerationError, StorageError
from ..core.models import PairedVerse, VerseContext, VerseRef
from ..providers.base import BaseLLMProvider, LLMResponse, Message, ProviderConfig, ProviderType
from ..storage.verse_store import BaseVerseStore, RetrievalResult


TEST_DIMENSIONS = 8

ScriptedResponse = Union[str, Exception]


class FakeProvider(BaseLLMProvider):
    """
    Provider double with scripted output.

    ``responses`` is either a list consumed in call order (an Exception
    entry is raised instead of returned) or a callable ``messages -> str``.
    """

    def __init__(
        self,
        responses: Optional[Union[list[ScriptedResponse], Callable[[list[Message]], str]]] = None,
        chunks: Optional[list[str]] = None,
        stream_error: Optional[Exception] = None,
        embedding: Optional[list[float]] = None,
        healthy: bool = True,
    ):
        super().__init__(ProviderConfig(
            provider_type=ProviderType.OPENAI,
            model="fake-model",
            fast_model="fake-fast-model",
            embedding_model="fake-embedding",
            embedding_dimensions=TEST_DIMENSIONS,
        ))
        self.responses = responses if callable(responses) else list(responses or [])
        self.chunks = list(chunks or [])
        self.stream_error = stream_error
        self.embedding = embedding if embedding is not None else [0.1] * TEST_DIMENSIONS
        self.healthy = healthy

        self.generate_calls: list[dict] = []
        self.stream_calls: list[dict] = []
        self.embed_calls: list[str] = []
        self.stream_closed = False

    async def generate_async(
        self,
        messages,
        max_tokens=None,
        temperature=None,
        json_mode=False,
        fast=False,
        **kwargs
    ) -> LLMResponse:
        self.generate_calls.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "json_mode": json_mode,
            "fast": fast,
        })

        if callable(self.responses):
            content = self.responses(messages)
        elif self.responses:
            content = self.responses.pop(0)
        else:
            raise GenerationError("No scripted response left")

        if isinstance(content, Exception):
            raise content

        return LLMResponse(content=content, model=self._model_for(fast), provider="fake")

    async def stream(self, messages, max_tokens=None, temperature=None, **kwargs):
        self.stream_calls.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        try:
            for chunk in self.chunks:
                yield chunk
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True

    async def embed_async(self, text, dimensions=None) -> list[float]:
        self.embed_calls.append(text)
        return list(self.embedding)

    async def health_check(self) -> bool:
        return self.healthy


class FakeVerseStore(BaseVerseStore):
    """In-memory verse store with call recording."""

    def __init__(
        self,
        matches: Optional[list[RetrievalResult]] = None,
        verses: Optional[dict[str, dict[str, str]]] = None,
        contexts: Optional[dict[str, VerseContext]] = None,
        fail_contexts: bool = False,
        fail_search: bool = False,
        fail_rows: bool = False,
    ):
        self.matches = matches or []
        self.verses = verses or {"ar": {}, "en": {}}
        self.contexts = contexts or {}
        self.fail_contexts = fail_contexts
        self.fail_search = fail_search
        self.fail_rows = fail_rows

        self.match_calls: list[dict] = []
        self.fetch_calls: list[tuple[str, list[str]]] = []

    async def match_verses(self, embedding, match_count, lang, min_similarity):
        self.match_calls.append({
            "match_count": match_count,
            "lang": lang,
            "min_similarity": min_similarity,
        })
        if self.fail_search:
            raise StorageError("Failed to search verses: connection refused")

        hits = [m for m in self.matches if m.similarity >= min_similarity]
        return hits[:match_count]

    async def fetch_verses(self, refs, lang):
        refs = list(refs)
        self.fetch_calls.append((lang, [r.key for r in refs]))
        table = self.verses.get(lang, {})
        return {r.key: table[r.key] for r in refs if r.key in table}

    async def fetch_verse_contexts(self, refs):
        if self.fail_contexts:
            raise StorageError("Failed to fetch verse context: relation does not exist")
        return {r.key: self.contexts[r.key] for r in refs if r.key in self.contexts}

    async def fetch_surah_verses(self, surah, lang):
        if self.fail_rows:
            raise StorageError("Failed to fetch verses: connection refused")
        prefix = f"{surah}:"
        rows = {
            int(key[len(prefix):]): text
            for key, text in self.verses.get(lang, {}).items()
            if key.startswith(prefix)
        }
        return dict(sorted(rows.items()))


def make_corpus(surah_lengths: dict[int, int]) -> dict[str, dict[str, str]]:
    """Arabic and English rows for every verse of the given surahs."""
    corpus = {"ar": {}, "en": {}}
    for surah, length in surah_lengths.items():
        for ayah in range(1, length + 1):
            corpus["ar"][f"{surah}:{ayah}"] = f"arabic {surah}:{ayah}"
            corpus["en"][f"{surah}:{ayah}"] = f"english {surah}:{ayah}"
    return corpus


def hit(surah: int, ayah: int, similarity: float) -> RetrievalResult:
    return RetrievalResult(surah, ayah, f"english {surah}:{ayah}", similarity)


def model_json(answer: str, citations: Optional[list[tuple[int, int]]] = None, uncertainty=None) -> str:
    """Serialize a model answer the way the generation prompt asks for it."""
    return json.dumps({
        "answer_markdown": answer,
        "citations": [{"surah": s, "ayah": a} for s, a in (citations or [])],
        "uncertainty": uncertainty,
    })


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def sample_verses():
    """Retrieved verses on patience."""
    return [
        PairedVerse(
            surah=2,
            ayah=153,
            arabic="يَا أَيُّهَا الَّذِينَ آمَنُوا اسْتَعِينُوا بِالصَّبْرِ وَالصَّلَاةِ",
            english="O you who have believed, seek help through patience and prayer.",
            similarity=0.82,
            theme="Patience and prayer",
        ),
        PairedVerse(
            surah=2,
            ayah=155,
            arabic="وَلَنَبْلُوَنَّكُم بِشَيْءٍ مِّنَ الْخَوْفِ وَالْجُوعِ",
            english="And We will surely test you with something of fear and hunger.",
            similarity=0.74,
        ),
        PairedVerse(
            surah=103,
            ayah=3,
            arabic="إِلَّا الَّذِينَ آمَنُوا وَعَمِلُوا الصَّالِحَاتِ وَتَوَاصَوْا بِالصَّبْرِ",
            english="Except for those who have believed and advised each other to patience.",
            similarity=0.69,
            context_summary="Closing verse of Al-Asr.",
        ),
    ]


@pytest.fixture
def sample_refs(sample_verses):
    return [VerseRef(v.surah, v.ayah) for v in sample_verses]


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def corpus():
    return make_corpus({1: 7, 2: 286, 103: 3})
