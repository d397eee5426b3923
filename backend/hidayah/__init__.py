"""
Hidayah - Quran-grounded Retrieval-Augmented Generation service

Answers questions from retrieved Quran verses only, with inline (surah:ayah)
citations, a verification pass and a streaming HTTP API.
"""

from .core.rag_engine import QuranRAGEngine
from .config.settings import settings

__version__ = "0.1.0"
__all__ = ["QuranRAGEngine", "settings"]
