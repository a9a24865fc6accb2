"""
Lexical search over the semantic index.

Responsibility: Score index entries against a free-text query by keyword, synonym and
description matches. Pure function of (query, index): no randomness, stable ordering.
"""

import logging
import re
from dataclasses import dataclass

from fitcoach.core.config import (
    DESCRIPTION_WEIGHT,
    KEYWORD_WEIGHT,
    MIN_TOKEN_LENGTH,
    SEARCH_DEFAULT_LIMIT,
    SYNONYM_WEIGHT,
)
from fitcoach.schemas.semantic import SearchIndex
from fitcoach.services.knowledge_store import load_search_index

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


@dataclass(frozen=True)
class SearchResult:
    id: str
    type: str
    score: float
    description: str


def tokenize(query: str) -> list[str]:
    """Lowercase alphanumeric words of at least MIN_TOKEN_LENGTH chars, in query order."""
    cleaned = _NON_ALNUM.sub(" ", (query or "").lower())
    return [w for w in cleaned.split() if len(w) >= MIN_TOKEN_LENGTH]


def search_semantic(
    query: str,
    limit: int = SEARCH_DEFAULT_LIMIT,
    index: SearchIndex | None = None,
) -> list[SearchResult]:
    """
    Rank index entries for a query. Per query token: exact keyword match adds KEYWORD_WEIGHT,
    exact synonym match adds SYNONYM_WEIGHT, substring of the description adds DESCRIPTION_WEIGHT.
    Zero scores are dropped; ties keep index order.
    """
    index = index if index is not None else load_search_index()
    words = tokenize(query)
    logger.info("[search_index:search_semantic] IN  query=%r tokens=%s limit=%d", query, words, limit)
    if not words or limit <= 0:
        return []

    scored: list[SearchResult] = []
    for entry in index.entries:
        keywords = {k.lower() for k in entry.keywords}
        synonyms = {s.lower() for s in entry.synonyms}
        description = entry.description.lower()
        score = 0.0
        for word in words:
            if word in keywords:
                score += KEYWORD_WEIGHT
            if word in synonyms:
                score += SYNONYM_WEIGHT
            if word in description:
                score += DESCRIPTION_WEIGHT
        if score > 0:
            scored.append(SearchResult(id=entry.id, type=entry.type, score=score, description=entry.description))

    # sorted() is stable, so equal scores keep encounter order
    results = sorted(scored, key=lambda r: -r.score)[:limit]
    logger.info(
        "[search_index:search_semantic] OUT matched=%d returned=%s",
        len(scored),
        [(r.id, r.score) for r in results],
    )
    return results
