"""
RAG Engine - Main orchestrator for Quran-grounded question answering.

Coordinates query preprocessing, retrieval and generation. One engine is
built per process and shared by all requests; it holds no per-request
state.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional
from loguru import logger

from .generator import AnswerGenerator, GenerationConfig, no_verses_response
from .models import ChatResponse, ConversationMessage, PairedVerse
from .query_preprocessor import QueryRewriter, expand_short_query
from .reranker import BaseReranker, get_reranker
from .retriever import RetrievalConfig, VerseRetriever
from .streaming import StreamEvent, stream_answer
from ..providers.base import BaseLLMProvider
from ..storage.verse_store import BaseVerseStore


@dataclass
class RAGConfig:
    """Configuration for RAG Engine."""

    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    # Follow-up rewriting
    rewrite_history_messages: int = 4
    rewrite_message_chars: int = 500


@dataclass
class RAGResponse:
    """Complete response from RAG Engine."""

    response: ChatResponse
    context: list[PairedVerse] = field(default_factory=list)
    retrieval_query: str = ""


class QuranRAGEngine:
    """
    Main RAG Engine for Quran Q&A.

    Pipeline:
    1. Follow-up rewriting (fast model, optional)
    2. Short-query expansion
    3. Embedding, vector search, optional rerank, passage expansion
    4. Generation with a conditional verification pass, or streaming

    The user's original message, not the retrieval query, is what the
    answer is generated for.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        store: BaseVerseStore,
        config: Optional[RAGConfig] = None,
        reranker: Optional[BaseReranker] = None,
        embedder: Optional[BaseLLMProvider] = None,
    ):
        """
        Initialize RAG Engine.

        Args:
            provider: Completion provider (generation, streaming, rewrite, rerank)
            store: Verse store
            config: RAG configuration
            reranker: Rerank strategy; defaults to none
            embedder: Embedding provider if different from ``provider``
        """
        self.config = config or RAGConfig()
        self.provider = provider
        self.store = store

        self.rewriter = QueryRewriter(
            provider,
            history_messages=self.config.rewrite_history_messages,
            message_chars=self.config.rewrite_message_chars,
        )
        self.retriever = VerseRetriever(
            embedder or provider,
            store,
            config=self.config.retrieval,
            reranker=reranker,
        )
        self.generator = AnswerGenerator(provider, self.config.generation)

    @classmethod
    async def from_settings(cls, provider_name: Optional[str] = None) -> "QuranRAGEngine":
        """
        Build an engine from application settings.

        Raises:
            ConfigurationError: If a provider or store credential is missing
        """
        from ..config.settings import settings
        from ..providers.factory import get_provider
        from ..storage.verse_store import SupabaseVerseStore

        provider = get_provider(provider_name)
        store = await SupabaseVerseStore.connect()

        r = settings.retrieval
        g = settings.generation
        config = RAGConfig(
            retrieval=RetrievalConfig(
                top_k=r.top_k,
                similarity_threshold=r.similarity_threshold,
                search_lang=r.search_lang,
                embedding_dimensions=provider.config.embedding_dimensions,
                passage_window=r.passage_window,
                rerank_candidates=r.rerank_candidates,
                rerank_top_n=r.rerank_top_n,
            ),
            generation=GenerationConfig(
                temperature=g.temperature,
                verification_temperature=g.verification_temperature,
                max_tokens=g.max_tokens,
                explorer_hint=g.explorer_hint,
            ),
            rewrite_history_messages=g.rewrite_history_messages,
            rewrite_message_chars=g.rewrite_message_chars,
        )

        reranker = get_reranker(r.reranker, provider)
        logger.info(f"RAG Engine ready (provider={provider.name}, reranker={r.reranker})")
        return cls(provider, store, config=config, reranker=reranker)

    async def retrieve_context(
        self,
        message: str,
        history: Optional[list[ConversationMessage]] = None,
        top_k: Optional[int] = None,
    ) -> tuple[str, list[PairedVerse]]:
        """
        Preprocess the message and retrieve verses for it.

        Returns:
            The retrieval query actually embedded, and the paired verses
        """
        rewritten = await self.rewriter.rewrite(message, history)
        query = expand_short_query(rewritten)
        if query != message:
            logger.debug(f"Retrieval query: {query[:100]}")

        context = await self.retriever.retrieve(query, top_k)
        logger.info(f"Retrieved {len(context)} verses")
        return query, context

    async def answer(
        self,
        message: str,
        history: Optional[list[ConversationMessage]] = None,
        top_k: Optional[int] = None,
    ) -> RAGResponse:
        """
        Process a question and generate a verified, cited answer.

        Args:
            message: User's question
            history: Prior conversation turns
            top_k: Override the number of anchor verses

        Returns:
            RAGResponse with the answer and the verses it was grounded on
        """
        logger.info(f"Processing query: {message[:100]}")

        query, context = await self.retrieve_context(message, history, top_k)
        if not context:
            logger.warning("No verses retrieved for query")
            return RAGResponse(response=no_verses_response(), context=[], retrieval_query=query)

        response = await self.generator.generate_verified_answer(message, context, history)
        logger.info(f"Answer generated with {len(response.citations)} citations")

        return RAGResponse(response=response, context=context, retrieval_query=query)

    def stream_events(
        self,
        message: str,
        context: list[PairedVerse],
        history: Optional[list[ConversationMessage]] = None,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream an answer over already-retrieved, non-empty context."""
        gen = self.config.generation
        return stream_answer(
            self.provider,
            message,
            context,
            history,
            max_tokens=gen.max_tokens,
            temperature=gen.temperature,
            is_disconnected=is_disconnected,
        )

    async def answer_stream(
        self,
        message: str,
        history: Optional[list[ConversationMessage]] = None,
        top_k: Optional[int] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Retrieve, then stream the answer as events.

        With no retrieved verses the fixed no-verses answer is sent as one
        ``text`` event followed by ``done``.
        """
        logger.info(f"Processing streaming query: {message[:100]}")

        _, context = await self.retrieve_context(message, history, top_k)
        if not context:
            empty = no_verses_response()
            yield StreamEvent("context", [])
            yield StreamEvent("text", empty.answer_markdown)
            yield StreamEvent("done", {"citations": [], "fullContent": empty.answer_markdown})
            return

        events = self.stream_events(message, context, history)
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()

    async def health_check(self) -> dict:
        """Check health of all components."""
        provider_ok = await self.provider.health_check()
        store_ok = await self.retriever.health_check()

        return {
            "provider": {"name": self.provider.name, "model": self.provider.model, "healthy": provider_ok},
            "verse_store": {"healthy": store_ok},
            "healthy": provider_ok and store_ok,
        }
