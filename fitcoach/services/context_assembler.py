"""
Context assembly: select relevant semantic definitions and fit them into a token budget.

Responsibility: Always include mandatory policies, classify intent (or take explicit ids),
then fill fixed domain/entity/metric shares of the remaining budget in candidate order.
An item that does not fit is replaced by its {id, description} summary; when the summary
does not fit either, that share stops. Trimming never raises: summarized and omitted ids
are reported alongside a truthful token estimate.

Token estimates use one formula everywhere: ceil(len(serialized) / CHARS_PER_TOKEN), where
strings are measured as-is and everything else as compact JSON. It is an approximation, not
a tokenizer count.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from fitcoach.core.config import (
    CHARS_PER_TOKEN,
    DOMAIN_BUDGET_SHARE,
    ENTITY_BUDGET_SHARE,
    METRIC_BUDGET_SHARE,
    SEMANTIC_CONTEXT_BUDGET,
)
from fitcoach.schemas.semantic import (
    CompiledSemantic,
    DomainDefinition,
    EntityDefinition,
    MetricDefinition,
    PolicyDefinition,
    SemanticDefinition,
    Summary,
)
from fitcoach.services.intent_classifier import classify_intent
from fitcoach.services.knowledge_store import load_definitions

logger = logging.getLogger(__name__)


@dataclass
class SemanticContext:
    """Per-request selection of definitions. Never cached or shared between requests."""

    domains: dict[str, DomainDefinition | Summary] = field(default_factory=dict)
    entities: dict[str, EntityDefinition | Summary] = field(default_factory=dict)
    metrics: dict[str, MetricDefinition | Summary] = field(default_factory=dict)
    policies: dict[str, PolicyDefinition | Summary] = field(default_factory=dict)
    intent: str | None = None
    confidence: float | None = None
    estimated_tokens: int = 0
    # Cost of always-include policies; may exceed budget on its own
    policy_tokens: int = 0
    budget: int = 0
    summarized: list[str] = field(default_factory=list)
    omitted: list[str] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return bool(self.summarized or self.omitted)

    def ids(self) -> dict[str, list[str]]:
        return {
            "domains": list(self.domains),
            "entities": list(self.entities),
            "metrics": list(self.metrics),
            "policies": list(self.policies),
        }


@dataclass
class _Allocation:
    items: dict[str, Any] = field(default_factory=dict)
    tokens: int = 0
    summarized: list[str] = field(default_factory=list)
    omitted: list[str] = field(default_factory=list)


def _to_jsonable(obj: Any) -> Any:
    if hasattr(obj, "to_document"):
        return obj.to_document()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj


def estimate_tokens(obj: Any) -> int:
    """ceil(serialized length / CHARS_PER_TOKEN)."""
    if isinstance(obj, str):
        text = obj
    else:
        text = json.dumps(_to_jsonable(obj), separators=(",", ":"), ensure_ascii=False, default=str)
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def trim_to_budget(items: dict[str, SemanticDefinition], budget: int) -> _Allocation:
    """Take items in order: full if it fits, else summary if it fits, else stop."""
    allocation = _Allocation()
    item_ids = list(items)
    for position, (item_id, item) in enumerate(items.items()):
        cost = estimate_tokens(item)
        if allocation.tokens + cost <= budget:
            allocation.items[item_id] = item
            allocation.tokens += cost
            continue
        summary = item.summary()
        cost = estimate_tokens(summary)
        if allocation.tokens + cost <= budget:
            allocation.items[item_id] = summary
            allocation.tokens += cost
            allocation.summarized.append(item_id)
            continue
        allocation.omitted.extend(item_ids[position:])
        break
    return allocation


def resolve_budget(compiled: CompiledSemantic, budget: int | None = None) -> int:
    """Explicit budget, else SEMANTIC_CONTEXT_BUDGET env override, else the artifact's value."""
    if budget is None:
        budget = SEMANTIC_CONTEXT_BUDGET
    if budget is None:
        budget = compiled.token_budgets.semantic_context
    return max(int(budget), 0)


def _select(section: dict[str, SemanticDefinition], ids: list[str] | None) -> dict[str, SemanticDefinition]:
    """Known ids in request order; unknown ids are skipped."""
    selected: dict[str, SemanticDefinition] = {}
    for item_id in ids or []:
        item = section.get(item_id)
        if item is not None and item_id not in selected:
            selected[item_id] = item
    return selected


def _build_context(
    compiled: CompiledSemantic,
    domains: dict[str, SemanticDefinition],
    entities: dict[str, SemanticDefinition],
    metrics: dict[str, SemanticDefinition],
    requested_policies: dict[str, SemanticDefinition],
    budget: int,
    intent: str | None,
    confidence: float | None,
) -> SemanticContext:
    mandatory = compiled.always_include_policies()
    policy_tokens = sum(estimate_tokens(p) for p in mandatory.values())
    remaining = max(budget - policy_tokens, 0)

    context = SemanticContext(
        policies=dict(mandatory),
        intent=intent,
        confidence=confidence,
        policy_tokens=policy_tokens,
        budget=budget,
    )

    # Explicitly requested policies are optional: they come out of the remaining budget first.
    optional = {pid: p for pid, p in requested_policies.items() if pid not in mandatory}
    extra = trim_to_budget(optional, remaining)
    context.policies.update(extra.items)
    remaining -= extra.tokens

    domain_budget = math.floor(remaining * DOMAIN_BUDGET_SHARE)
    entity_budget = math.floor(remaining * ENTITY_BUDGET_SHARE)
    metric_budget = math.floor(remaining * METRIC_BUDGET_SHARE)

    allocations = [extra]
    for target, candidates, share in (
        (context.domains, domains, domain_budget),
        (context.entities, entities, entity_budget),
        (context.metrics, metrics, metric_budget),
    ):
        allocation = trim_to_budget(candidates, share)
        target.update(allocation.items)
        allocations.append(allocation)

    for allocation in allocations:
        context.summarized.extend(allocation.summarized)
        context.omitted.extend(allocation.omitted)
    context.estimated_tokens = policy_tokens + sum(a.tokens for a in allocations)

    logger.info(
        "[context_assembler:build] OUT intent=%s budget=%d policy_tokens=%d estimated_tokens=%d "
        "domains=%s entities=%s metrics=%s summarized=%s omitted=%s",
        intent,
        budget,
        policy_tokens,
        context.estimated_tokens,
        list(context.domains),
        list(context.entities),
        list(context.metrics),
        context.summarized,
        context.omitted,
    )
    if policy_tokens > budget:
        logger.warning(
            "[context_assembler:build] mandatory policies (%d tokens) exceed budget %d",
            policy_tokens,
            budget,
        )
    return context


def assemble(query: str, budget: int | None = None) -> SemanticContext:
    """Intent-driven context for a query (main entry point for agent orchestration)."""
    compiled = load_definitions()
    classification = classify_intent(query, compiled=compiled)
    logger.info("[context_assembler:assemble] IN  query=%r intent=%s", query, classification.intent)
    return _build_context(
        compiled,
        domains=_select(compiled.domains, classification.domains),
        entities=_select(compiled.entities, classification.entities),
        metrics=_select(compiled.metrics, classification.metrics),
        requested_policies={},
        budget=resolve_budget(compiled, budget),
        intent=classification.intent,
        confidence=classification.confidence,
    )


def assemble_by_ids(
    domains: list[str] | None = None,
    entities: list[str] | None = None,
    metrics: list[str] | None = None,
    policies: list[str] | None = None,
    budget: int | None = None,
) -> SemanticContext:
    """Context for an explicit selection; skips classification (intent is None)."""
    compiled = load_definitions()
    logger.info(
        "[context_assembler:assemble_by_ids] IN  domains=%s entities=%s metrics=%s policies=%s",
        domains,
        entities,
        metrics,
        policies,
    )
    return _build_context(
        compiled,
        domains=_select(compiled.domains, domains),
        entities=_select(compiled.entities, entities),
        metrics=_select(compiled.metrics, metrics),
        requested_policies=_select(compiled.policies, policies),
        budget=resolve_budget(compiled, budget),
        intent=None,
        confidence=None,
    )


def _heading(item: SemanticDefinition | Summary) -> str:
    return getattr(item, "name", None) or getattr(item, "statement", None) or item.id


def format_semantic_context(context: SemanticContext) -> str:
    """Render a context as markdown for the system prompt. Policies come first."""
    sections: list[str] = []

    if context.policies:
        sections.append("## Policies")
        for policy in context.policies.values():
            sections.append(f"### {_heading(policy)}")
            principles = getattr(policy, "principles", None)
            if principles:
                sections.append("Principles:")
                sections.extend(f"- {p}" for p in principles)
            else:
                sections.append(policy.description)

    if context.domains:
        sections.append("\n## Context: Domains")
        for domain in context.domains.values():
            sections.append(f"### {_heading(domain)}")
            sections.append(domain.description)
            intents = getattr(domain, "intents", None)
            if intents:
                sections.append("User intents:")
                sections.extend(f"- {name}: {intent.description}" for name, intent in intents.items())

    if context.entities:
        sections.append("\n## Context: Entities")
        for entity in context.entities.values():
            sections.append(f"### {_heading(entity)}")
            table = getattr(entity, "table", None)
            if table:
                sections.append(f"Table: {table}")
            sections.append(entity.description)

    if context.metrics:
        sections.append("\n## Context: Metrics")
        for metric in context.metrics.values():
            sections.append(f"### {_heading(metric)}")
            sections.append(metric.description)

    return "\n".join(sections)
