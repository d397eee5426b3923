"""
Context Manager Module - Render retrieved verses for the LLM prompt.

The rendered block is a stable serialization format: the generation,
verification and streaming prompts all embed it, and changing its shape
changes model behaviour.
"""

from .models import PairedVerse


NO_CONTEXT_TEXT = "No relevant verses found."


def format_verse(verse: PairedVerse, index: int) -> str:
    """Format a single verse as an indexed block."""
    parts = [
        f"[{index}] ({verse.surah}:{verse.ayah})",
        f"Arabic: {verse.arabic}",
        f"English: {verse.english}",
    ]

    if verse.theme:
        parts.append(f"Theme: {verse.theme}")
    if verse.context_summary:
        parts.append(f"Context: {verse.context_summary}")

    parts.append(f"Relevance: {verse.similarity * 100:.1f}%")

    return "\n".join(parts)


def format_context_for_prompt(context: list[PairedVerse]) -> str:
    """
    Format paired verses into the prompt context block.

    Order is preserved exactly as retrieved.

    Args:
        context: Retrieved verses

    Returns:
        Blocks separated by blank lines, or a fixed marker when empty
    """
    if not context:
        return NO_CONTEXT_TEXT

    return "\n\n".join(
        format_verse(verse, i) for i, verse in enumerate(context, 1)
    )
