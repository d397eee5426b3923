"""Verse corpus access."""

from .verse_store import BaseVerseStore, SupabaseVerseStore, RetrievalResult

__all__ = [
    "BaseVerseStore",
    "SupabaseVerseStore",
    "RetrievalResult",
]
