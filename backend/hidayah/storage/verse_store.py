"""
Verse Store - Row lookups and vector search over the verse corpus.

The vector index lives in the database (``match_documents`` RPC doing a
brute-force cosine search); this module only calls it and performs keyed
reads of verse rows and their annotations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional
from loguru import logger

from ..core.exceptions import ConfigurationError, StorageError
from ..core.models import VerseContext, VerseRef


DOC_TYPE = "quran_ayah"


@dataclass
class RetrievalResult:
    """A single vector-search hit."""

    surah: int
    ayah: int
    content: str
    similarity: float

    @property
    def ref(self) -> VerseRef:
        return VerseRef(self.surah, self.ayah)


class BaseVerseStore(ABC):
    """Read-only access to verse rows, annotations and the vector RPC."""

    @abstractmethod
    async def match_verses(
        self,
        embedding: list[float],
        match_count: int,
        lang: str,
        min_similarity: float,
    ) -> list[RetrievalResult]:
        """Similarity search; results pre-filtered and sorted best-first."""

    @abstractmethod
    async def fetch_verses(self, refs: Iterable[VerseRef], lang: str) -> dict[str, str]:
        """Verse text keyed by ``"surah:ayah"``; missing verses are absent."""

    @abstractmethod
    async def fetch_verse_contexts(self, refs: Iterable[VerseRef]) -> dict[str, VerseContext]:
        """Annotations keyed by ``"surah:ayah"``; missing rows are absent."""

    @abstractmethod
    async def fetch_surah_verses(self, surah: int, lang: str) -> dict[int, str]:
        """Every verse text of one surah keyed by ayah, in ayah order."""

    async def fetch_verse(self, surah: int, ayah: int) -> Optional[dict]:
        """Arabic and English text for one verse, or None if neither exists."""
        ref = VerseRef(surah, ayah)
        arabic = await self.fetch_verses([ref], "ar")
        english = await self.fetch_verses([ref], "en")

        if ref.key not in arabic and ref.key not in english:
            return None

        return {
            "surah": surah,
            "ayah": ayah,
            "arabic": arabic.get(ref.key, ""),
            "english": english.get(ref.key, ""),
        }

    async def fetch_surah(self, surah: int) -> list[dict]:
        """
        All verses of a surah with Arabic and English paired, ordered by ayah.

        An ayah present in only one language still appears, with the other
        text empty. An unknown surah gives an empty list.
        """
        arabic = await self.fetch_surah_verses(surah, "ar")
        english = await self.fetch_surah_verses(surah, "en")

        return [
            {
                "ayah": ayah,
                "arabic": arabic.get(ayah, ""),
                "english": english.get(ayah, ""),
            }
            for ayah in sorted(set(arabic) | set(english))
        ]

    async def health_check(self) -> bool:
        return True


class SupabaseVerseStore(BaseVerseStore):
    """
    Verse store backed by Supabase (PostgREST + pgvector RPC).

    Build with ``await SupabaseVerseStore.connect(...)``; the client is
    shared by all requests for the life of the process.
    """

    def __init__(
        self,
        client,
        match_function: str = "match_documents",
        documents_table: str = "documents",
        context_table: str = "verse_context",
        batch_size: int = 50,
    ):
        self._client = client
        self.match_function = match_function
        self.documents_table = documents_table
        self.context_table = context_table
        self.batch_size = batch_size

    @classmethod
    async def connect(
        cls,
        url: Optional[str] = None,
        key: Optional[str] = None,
        **kwargs
    ) -> "SupabaseVerseStore":
        """
        Create the async Supabase client.

        Raises:
            ConfigurationError: If URL or key is missing
        """
        from supabase import acreate_client

        if url is None and key is None:
            from ..config.settings import settings

            url = settings.supabase.url
            key = settings.supabase.service_role_key
            kwargs.setdefault("match_function", settings.supabase.match_function)
            kwargs.setdefault("documents_table", settings.supabase.documents_table)
            kwargs.setdefault("context_table", settings.supabase.context_table)

        if not url or not key:
            raise ConfigurationError("Missing Supabase URL or service role key")

        client = await acreate_client(url, key)
        logger.info("Connected to Supabase verse store")
        return cls(client, **kwargs)

    async def match_verses(
        self,
        embedding: list[float],
        match_count: int,
        lang: str,
        min_similarity: float,
    ) -> list[RetrievalResult]:
        try:
            result = await self._client.rpc(
                self.match_function,
                {
                    "query_embedding": embedding,
                    "match_count": match_count,
                    "filter_lang": lang,
                    "similarity_threshold": min_similarity,
                },
            ).execute()
        except Exception as e:
            logger.error(f"Vector search RPC failed: {e}")
            raise StorageError(f"Failed to search verses: {e}") from e

        return [
            RetrievalResult(
                surah=int(row["surah"]),
                ayah=int(row["ayah"]),
                content=row.get("content") or "",
                similarity=float(row.get("similarity") or 0.0),
            )
            for row in (result.data or [])
        ]

    async def fetch_verses(self, refs: Iterable[VerseRef], lang: str) -> dict[str, str]:
        verses: dict[str, str] = {}

        for batch in self._batches(refs):
            try:
                result = await (
                    self._client.table(self.documents_table)
                    .select("surah, ayah, content")
                    .eq("doc_type", DOC_TYPE)
                    .eq("lang", lang)
                    .or_(self._ref_filter(batch))
                    .execute()
                )
            except Exception as e:
                logger.error(f"Fetching {lang} verses failed: {e}")
                raise StorageError(f"Failed to fetch {lang} verses: {e}") from e

            for row in result.data or []:
                verses[f"{row['surah']}:{row['ayah']}"] = row.get("content") or ""

        return verses

    async def fetch_verse_contexts(self, refs: Iterable[VerseRef]) -> dict[str, VerseContext]:
        contexts: dict[str, VerseContext] = {}

        for batch in self._batches(refs):
            try:
                result = await (
                    self._client.table(self.context_table)
                    .select("surah, ayah, theme, context_summary, asbab_summary")
                    .or_(self._ref_filter(batch))
                    .execute()
                )
            except Exception as e:
                raise StorageError(f"Failed to fetch verse context: {e}") from e

            for row in result.data or []:
                contexts[f"{row['surah']}:{row['ayah']}"] = VerseContext(
                    theme=row.get("theme") or None,
                    context_summary=row.get("context_summary") or None,
                    asbab_summary=row.get("asbab_summary") or None,
                )

        return contexts

    async def fetch_surah_verses(self, surah: int, lang: str) -> dict[int, str]:
        try:
            result = await (
                self._client.table(self.documents_table)
                .select("ayah, content")
                .eq("doc_type", DOC_TYPE)
                .eq("lang", lang)
                .eq("surah", surah)
                .order("ayah")
                .execute()
            )
        except Exception as e:
            logger.error(f"Fetching {lang} verses of surah {surah} failed: {e}")
            raise StorageError(f"Failed to fetch {lang} verses of surah {surah}: {e}") from e

        return {int(row["ayah"]): row.get("content") or "" for row in (result.data or [])}

    async def health_check(self) -> bool:
        try:
            await self._client.table(self.documents_table).select("surah").limit(1).execute()
            return True
        except Exception as e:
            logger.warning(f"Verse store health check failed: {e}")
            return False

    def _batches(self, refs: Iterable[VerseRef]) -> list[list[VerseRef]]:
        refs = list(refs)
        return [refs[i:i + self.batch_size] for i in range(0, len(refs), self.batch_size)]

    @staticmethod
    def _ref_filter(refs: list[VerseRef]) -> str:
        """PostgREST compound filter: ``and(surah.eq.2,ayah.eq.255),...``."""
        return ",".join(f"and(surah.eq.{r.surah},ayah.eq.{r.ayah})" for r in refs)
