"""Citation parsing and validation."""

from .parser import (
    parse_citations,
    paragraph_has_citation,
    split_into_paragraphs,
    format_citation,
)
from .validator import (
    CitationValidation,
    validate_citations_against_context,
    validate_citation_list,
    dedupe_refs,
    merge_citations,
)

__all__ = [
    "parse_citations",
    "paragraph_has_citation",
    "split_into_paragraphs",
    "format_citation",
    "CitationValidation",
    "validate_citations_against_context",
    "validate_citation_list",
    "dedupe_refs",
    "merge_citations",
]
