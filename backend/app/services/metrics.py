"""
Writegy Backend - Document Metrics
====================================

What:  Word and character counts for document content.
Who:   DocumentService on create/update and when repairing legacy rows.

Definitions:
    word_count       number of whitespace-delimited tokens
    character_count  length of the content with every whitespace
                     character removed

Both are 0 for None or blank content. The calculation is pure, so calling
it twice on the same text always yields the same pair.
"""

from typing import NamedTuple, Optional


class DocumentMetrics(NamedTuple):
    word_count: int
    character_count: int


EMPTY_METRICS = DocumentMetrics(0, 0)


def calculate_metrics(content: Optional[str]) -> DocumentMetrics:
    """
    Compute word and non-whitespace character counts.

    >>> calculate_metrics("Hello world")
    DocumentMetrics(word_count=2, character_count=10)
    """
    if content is None or not content.strip():
        return EMPTY_METRICS
    tokens = content.split()
    return DocumentMetrics(
        word_count=len(tokens),
        character_count=sum(len(token) for token in tokens),
    )
