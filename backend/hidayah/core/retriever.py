"""
Retriever Module - Vector search, Arabic pairing and passage expansion.

Per call: embed -> search -> (optional rerank) -> fetch pairs ->
expand passages -> attach annotations. The result is an ordered list of
paired verses ready for the prompt.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional
from loguru import logger

from .exceptions import EmbeddingError
from .models import PairedVerse, VerseContext, VerseRef
from .reranker import BaseReranker, IdentityReranker
from ..citation.validator import dedupe_refs
from ..providers.base import BaseLLMProvider
from ..storage.verse_store import BaseVerseStore, RetrievalResult


# Expanded-only rows are context next to a real hit, not search matches
EXPANSION_SIMILARITY = 1.0


@dataclass
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 10
    similarity_threshold: float = 0.3
    search_lang: str = "en"
    embedding_dimensions: int = 3072
    passage_window: int = 2
    rerank_candidates: int = 20
    rerank_top_n: int = 10


class VerseRetriever:
    """
    Verse retriever over the vector-search RPC and the verse row store.

    Failure policy:
    - embedding, search and Arabic/English lookups are fatal;
    - annotation (theme/context) lookup is not: verses come back without it.
    """

    def __init__(
        self,
        embedder: BaseLLMProvider,
        store: BaseVerseStore,
        config: Optional[RetrievalConfig] = None,
        reranker: Optional[BaseReranker] = None,
    ):
        self.embedder = embedder
        self.store = store
        self.config = config or RetrievalConfig()
        self.reranker = reranker or IdentityReranker()

    @property
    def reranking(self) -> bool:
        return not isinstance(self.reranker, IdentityReranker)

    async def generate_query_embedding(self, query: str) -> list[float]:
        """
        Embed the query with the corpus embedding model.

        Raises:
            EmbeddingError: On call failure or a dimension mismatch
        """
        embedding = await self.embedder.embed_async(query, self.config.embedding_dimensions)

        if len(embedding) != self.config.embedding_dimensions:
            raise EmbeddingError(
                f"Embedding has {len(embedding)} dimensions, "
                f"expected {self.config.embedding_dimensions}"
            )
        return embedding

    async def search_similar_verses(
        self,
        embedding: list[float],
        top_k: Optional[int] = None,
        lang: Optional[str] = None,
    ) -> list[RetrievalResult]:
        """Vector search; results come back thresholded and best-first."""
        return await self.store.match_verses(
            embedding,
            match_count=top_k or self.config.top_k,
            lang=lang or self.config.search_lang,
            min_similarity=self.config.similarity_threshold,
        )

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> list[PairedVerse]:
        """
        Retrieve paired verses for a (pre-processed) query.

        Args:
            query: Standalone query text
            top_k: Number of anchor verses; with reranking on, the size of
                the candidate pool floor while ``rerank_top_n`` anchors are kept

        Returns:
            Anchors with their surrounding passages. Ordering is by anchor,
            each anchor's window ascending; similarity is NOT monotonic.
        """
        top_k = top_k or self.config.top_k

        embedding = await self.generate_query_embedding(query)

        search_k = top_k
        keep = top_k
        if self.reranking:
            search_k = max(top_k, self.config.rerank_candidates)
            keep = self.config.rerank_top_n
        results = await self.search_similar_verses(embedding, search_k)

        if not results:
            logger.info("No verses passed the similarity threshold")
            return []

        anchors = await self.reranker.rerank(query, results, keep)
        logger.info(f"Vector search returned {len(results)} verses, {len(anchors)} anchors")

        paired = await self._pair_anchors(anchors)
        expanded = await self.expand_passages(paired)

        logger.debug(f"Expanded {len(paired)} anchors to {len(expanded)} verses")
        return expanded

    async def _pair_anchors(self, anchors: list[RetrievalResult]) -> list[PairedVerse]:
        """Attach Arabic text and annotations to search hits."""
        refs = dedupe_refs(r.ref for r in anchors)

        arabic, contexts = await asyncio.gather(
            self.store.fetch_verses(refs, "ar"),
            self._fetch_contexts(refs),
        )

        paired = []
        for result in anchors:
            key = result.ref.key
            context = contexts.get(key, VerseContext())
            paired.append(PairedVerse(
                surah=result.surah,
                ayah=result.ayah,
                arabic=arabic.get(key, ""),
                english=result.content,
                similarity=result.similarity,
                context_summary=context.context_summary,
                theme=context.theme,
            ))
        return paired

    async def expand_passages(self, anchors: list[PairedVerse]) -> list[PairedVerse]:
        """
        Add up to ``passage_window`` verses on each side of every anchor.

        Rows are merged through an insertion-ordered map keyed by
        ``surah:ayah``; anchors keep their own similarity, expanded-only
        rows get ``EXPANSION_SIMILARITY``. Ayah numbers never go below 1.
        """
        window = self.config.passage_window
        if window <= 0 or not anchors:
            return list(anchors)

        anchor_map = {a.key: a for a in anchors}

        ordered_refs: list[VerseRef] = []
        for anchor in anchors:
            start = max(1, anchor.ayah - window)
            for ayah in range(start, anchor.ayah + window + 1):
                ordered_refs.append(VerseRef(anchor.surah, ayah))
        ordered_refs = dedupe_refs(ordered_refs)

        missing = [ref for ref in ordered_refs if ref.key not in anchor_map]
        if not missing:
            return list(anchors)

        arabic, english, contexts = await asyncio.gather(
            self.store.fetch_verses(missing, "ar"),
            self.store.fetch_verses(missing, "en"),
            self._fetch_contexts(missing),
        )

        merged: dict[str, PairedVerse] = {}
        for ref in ordered_refs:
            if ref.key in anchor_map:
                merged[ref.key] = anchor_map[ref.key]
                continue

            # Past the end of a surah there is no row; skip it
            if ref.key not in english and ref.key not in arabic:
                continue

            context = contexts.get(ref.key, VerseContext())
            merged[ref.key] = PairedVerse(
                surah=ref.surah,
                ayah=ref.ayah,
                arabic=arabic.get(ref.key, ""),
                english=english.get(ref.key, ""),
                similarity=EXPANSION_SIMILARITY,
                context_summary=context.context_summary,
                theme=context.theme,
            )

        return list(merged.values())

    async def _fetch_contexts(self, refs: list[VerseRef]) -> dict[str, VerseContext]:
        try:
            return await self.store.fetch_verse_contexts(refs)
        except Exception as e:
            logger.warning(f"Verse context lookup failed, continuing without it: {e}")
            return {}

    async def health_check(self) -> bool:
        """Check if the verse store is accessible."""
        return await self.store.health_check()
