"""
Citation Parser - Extract ``surah:ayah`` references from free text.

The citation format is produced by an LLM, so the grammar is permissive:
bare ``2:153``, bracketed ``[2:153]``, parenthesised ``(2:153)``, lists
joined by commas or semicolons, and ranges written with a hyphen or an
en-dash (``(1:1-7)``, ``(1:1–7)``). Malformed or out-of-range tokens are
dropped silently; parsing never raises.
"""

import re

from ..core.models import Citation, MAX_AYAH, MAX_SURAH


# Optional opening bracket, surah:ayah, optional range end, optional closing bracket
CITATION_PATTERN = re.compile(
    r"[\[(]?(\d{1,3}):(\d{1,3})(?:\s*[-–]\s*(\d{1,3}))?[\])]?"
)

PARAGRAPH_SPLIT = re.compile(r"\n\s*\n+")


def _is_valid(surah: int, ayah: int) -> bool:
    return 1 <= surah <= MAX_SURAH and 1 <= ayah <= MAX_AYAH


def _expand_match(match: re.Match) -> list[Citation]:
    surah = int(match.group(1))
    start = int(match.group(2))

    if not _is_valid(surah, start):
        return []

    if match.group(3) is None:
        return [Citation(surah, start)]

    end = min(int(match.group(3)), MAX_AYAH)
    if end < start:
        # Reversed range: keep the verse that was clearly intended
        return [Citation(surah, start)]

    return [Citation(surah, ayah) for ayah in range(start, end + 1)]


def parse_citations(text: str) -> list[Citation]:
    """
    Extract every citation from text, expanding ranges.

    Order follows appearance in the text; duplicates are kept.

    Args:
        text: Arbitrary text, typically model output

    Returns:
        List of citations (possibly empty)
    """
    citations: list[Citation] = []
    for match in CITATION_PATTERN.finditer(text or ""):
        citations.extend(_expand_match(match))
    return citations


def paragraph_has_citation(paragraph: str) -> bool:
    """True if the paragraph contains at least one valid citation token."""
    for match in CITATION_PATTERN.finditer(paragraph or ""):
        if _is_valid(int(match.group(1)), int(match.group(2))):
            return True
    return False


def split_into_paragraphs(text: str) -> list[str]:
    """Split on runs of blank lines, trimming and dropping empty blocks."""
    paragraphs = (p.strip() for p in PARAGRAPH_SPLIT.split(text or ""))
    return [p for p in paragraphs if p]


def format_citation(surah: int, ayah: int) -> str:
    return f"({surah}:{ayah})"
