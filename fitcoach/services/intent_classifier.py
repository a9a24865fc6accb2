"""
Intent classification against the knowledge taxonomy.

Responsibility: Map conversation text to one configured intent category by scoring
keyword/synonym substrings of the category's domains and entities. Falls back to a
configured default category with a fixed low confidence when nothing matches.
"""

import logging
from dataclasses import dataclass, field

from fitcoach.core.config import (
    CONFIDENCE_SCALE,
    DEFAULT_INTENT,
    KEYWORD_WEIGHT,
    LOW_CONFIDENCE,
    SYNONYM_WEIGHT,
)
from fitcoach.schemas.semantic import CompiledSemantic, SearchIndex, SearchIndexEntry
from fitcoach.services.knowledge_store import load_definitions, load_search_index

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntentClassification:
    """
    Winning intent and the ids attached to it. Confidence below 0.5 means the classifier
    could not discriminate; callers should pair it with wider context.
    """

    intent: str
    confidence: float
    domains: list[str] = field(default_factory=list)
    entities: list[str] = field(default_factory=list)
    metrics: list[str] = field(default_factory=list)


def _entry_score(entry: SearchIndexEntry, normalized_query: str) -> float:
    score = 0.0
    for keyword in entry.keywords:
        if keyword and keyword.lower() in normalized_query:
            score += KEYWORD_WEIGHT
    for synonym in entry.synonyms:
        if synonym and synonym.lower() in normalized_query:
            score += SYNONYM_WEIGHT
    return score


def score_intents(
    query: str,
    compiled: CompiledSemantic,
    index: SearchIndex,
) -> dict[str, float]:
    """Score every intent category in artifact order."""
    normalized = (query or "").lower().strip()
    scores: dict[str, float] = {}
    for intent_name, category in compiled.intent_categories.items():
        score = 0.0
        for domain_id in category.domains:
            entry = index.lookup(domain_id, "domain")
            if entry is not None:
                score += _entry_score(entry, normalized)
        for entity_id in category.entities:
            entry = index.lookup(entity_id, "entity")
            if entry is not None:
                score += _entry_score(entry, normalized)
        scores[intent_name] = score
    return scores


def classify_intent(
    query: str,
    default_intent: str = DEFAULT_INTENT,
    compiled: CompiledSemantic | None = None,
    index: SearchIndex | None = None,
) -> IntentClassification:
    """Pick the category with the strictly highest score; all-zero picks default_intent."""
    compiled = compiled if compiled is not None else load_definitions()
    index = index if index is not None else load_search_index()

    scores = score_intents(query, compiled, index)
    best_intent = default_intent
    best_score = 0.0
    for intent_name, score in scores.items():
        if score > best_score:
            best_intent = intent_name
            best_score = score

    confidence = min(best_score / CONFIDENCE_SCALE, 1.0) if best_score > 0 else LOW_CONFIDENCE
    category = compiled.intent_categories.get(best_intent)
    result = IntentClassification(
        intent=best_intent,
        confidence=confidence,
        domains=list(category.domains) if category else [],
        entities=list(category.entities) if category else [],
        metrics=list(category.metrics) if category else [],
    )
    logger.info(
        "[intent_classifier:classify_intent] OUT intent=%s confidence=%.2f scores=%s",
        result.intent,
        result.confidence,
        scores,
    )
    return result
