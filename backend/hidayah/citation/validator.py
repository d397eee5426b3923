"""
Citation Validator - Check answer citations against the retrieved context.

Validation is advisory: a citation outside the context is reported so the
caller can attach an uncertainty note, but the answer is never blocked or
rewritten here.
"""

from dataclasses import dataclass, field
from typing import Iterable, TypeVar

from ..core.models import Citation, VerseRef
from .parser import parse_citations


RefT = TypeVar("RefT", bound=VerseRef)


@dataclass
class CitationValidation:
    """Outcome of checking an answer's citations against its context."""

    valid: bool
    invalid_citations: list[Citation] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


def validate_citations_against_context(
    answer_text: str,
    context_refs: Iterable[VerseRef],
) -> CitationValidation:
    """
    Find citations in ``answer_text`` that are not in ``context_refs``.

    Args:
        answer_text: Generated answer markdown
        context_refs: Verses that were supplied to the model

    Returns:
        CitationValidation; ``valid`` iff every citation is in context
    """
    return validate_citation_list(parse_citations(answer_text), context_refs)


def validate_citation_list(
    citations: Iterable[Citation],
    context_refs: Iterable[VerseRef],
) -> CitationValidation:
    """Check an already-parsed citation list against the context."""
    context_keys = {ref.key for ref in context_refs}
    invalid = [c for c in citations if c.key not in context_keys]

    return CitationValidation(valid=not invalid, invalid_citations=invalid)


def dedupe_refs(refs: Iterable[RefT]) -> list[RefT]:
    """Stable de-duplication by ``surah:ayah``, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[RefT] = []
    for ref in refs:
        if ref.key not in seen:
            seen.add(ref.key)
            unique.append(ref)
    return unique


def merge_citations(
    structured: Iterable[Citation],
    extracted: Iterable[Citation],
) -> list[Citation]:
    """
    Union the model's structured citation list with citations re-extracted
    from its text.

    The structured list keeps its order and its entries are not
    de-duplicated among themselves; an extracted citation is appended only
    when its key is not already present.
    """
    merged = list(structured)
    present = {c.key for c in merged}
    for citation in extracted:
        if citation.key not in present:
            present.add(citation.key)
            merged.append(citation)
    return merged
