"""Core RAG components."""

from .exceptions import (
    HidayahError,
    ConfigurationError,
    EmbeddingError,
    StorageError,
    GenerationError,
)
from .models import ChatResponse, Citation, ConversationMessage, PairedVerse, VerseRef
from .rag_engine import QuranRAGEngine, RAGConfig, RAGResponse
from .retriever import VerseRetriever, RetrievalConfig
from .generator import AnswerGenerator, GenerationConfig
from .streaming import StreamEvent, stream_answer

__all__ = [
    "HidayahError",
    "ConfigurationError",
    "EmbeddingError",
    "StorageError",
    "GenerationError",
    "ChatResponse",
    "Citation",
    "ConversationMessage",
    "PairedVerse",
    "VerseRef",
    "QuranRAGEngine",
    "RAGConfig",
    "RAGResponse",
    "VerseRetriever",
    "RetrievalConfig",
    "AnswerGenerator",
    "GenerationConfig",
    "StreamEvent",
    "stream_answer",
]
