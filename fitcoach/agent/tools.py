"""
Agent tools: definitions and execution for the coaching agent's tool-calling loop.

Tools: search_semantic, get_semantic, get_query_patterns, readonly_query,
get_member_context, get_context_for_query.

Every tool returns a JSON-serialisable dict. Misses, rejections and execution failures come
back as structured values (found/success false, a reason, and valid alternatives where useful)
so the agent can retry with different arguments. Only SemanticLayerUnavailableError escapes:
without its knowledge base the process must not keep serving. No tool mutates state.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from fitcoach.core.config import QUERY_TIMEOUT
from fitcoach.core.errors import SemanticLayerUnavailableError
from fitcoach.core.member_db import fetch_member_snapshot
from fitcoach.schemas.semantic import (
    DEFINITION_TYPES,
    DomainDefinition,
    EntityDefinition,
    MetricDefinition,
    PolicyDefinition,
)
from fitcoach.schemas.tools import (
    GetContextForQueryInput,
    GetMemberContextInput,
    GetQueryPatternsInput,
    GetSemanticInput,
    ReadonlyQueryInput,
    SearchSemanticInput,
)
from fitcoach.services.context_assembler import assemble, format_semantic_context
from fitcoach.services.knowledge_store import (
    get_definition,
    get_domain,
    list_definition_ids,
    load_definitions,
    load_search_index,
)
from fitcoach.services.query_guard import run_readonly_query
from fitcoach.services.search_index import search_semantic

logger = logging.getLogger(__name__)

MAX_FIELDS = 10
MAX_EXAMPLES = 3
MAX_METRIC_DEFINITIONS = 5


def _synonym_samples(count: int = 3) -> list[str]:
    samples: list[str] = []
    for entry in load_search_index().entries:
        for synonym in entry.synonyms:
            if synonym not in samples:
                samples.append(synonym)
            if len(samples) >= count:
                return samples
    return samples


def search_semantic_tool(query: str, limit: int = 5) -> dict[str, Any]:
    """Search the semantic index; suggest alternate phrasings when nothing matches."""
    results = search_semantic(query, limit)
    if not results:
        suggestions = ["Try more specific terms"]
        synonyms = _synonym_samples()
        if synonyms:
            suggestions.append(f"Use synonyms ({', '.join(synonyms)})")
        suggestions.append(f"Check available domains: {', '.join(list_definition_ids('domain'))}")
        return {
            "found": False,
            "message": "No matching semantic definitions found",
            "suggestions": suggestions,
        }
    return {
        "found": True,
        "count": len(results),
        "results": [
            {
                "id": r.id,
                "type": r.type,
                "description": r.description,
                "relevance": round(r.score, 1),
            }
            for r in results
        ],
    }


def get_semantic_tool(id: str, type: str) -> dict[str, Any]:
    """Detailed definition by id and type, trimmed for token efficiency."""
    if type not in DEFINITION_TYPES:
        return {
            "found": False,
            "message": f"Unknown semantic type '{type}'",
            "valid_types": list(DEFINITION_TYPES),
        }
    item = get_definition(id, type)
    if item is None:
        return {
            "found": False,
            "message": f"No {type} found with id '{id}'",
            "available": list_definition_ids(type),
        }

    result: dict[str, Any] = {"found": True, "id": id, "type": type, "description": item.description}
    if isinstance(item, EntityDefinition):
        result["table"] = item.table
        result["fields"] = [
            {"name": f.name, "type": f.type, "description": f.description} for f in item.fields[:MAX_FIELDS]
        ]
        result["examples"] = [e.model_dump() for e in item.examples[:MAX_EXAMPLES]]
    elif isinstance(item, DomainDefinition):
        result["intents"] = [
            {"intent": name, "description": intent.description} for name, intent in item.intents.items()
        ]
        result["query_patterns"] = list(item.query_patterns)
    elif isinstance(item, MetricDefinition):
        result["definitions"] = [
            {"name": name, "description": detail.description, "unit": detail.unit}
            for name, detail in list(item.definitions.items())[:MAX_METRIC_DEFINITIONS]
        ]
    elif isinstance(item, PolicyDefinition):
        result["policy"] = item.statement
        result["always_include"] = item.always_include
        result["principles"] = list(item.principles)
    return result


def get_query_patterns_tool(domain_id: str, pattern_id: str | None = None) -> dict[str, Any]:
    """All SQL patterns for a domain, or one named pattern."""
    domain = get_domain(domain_id)
    if domain is None or not domain.query_patterns:
        return {
            "found": False,
            "message": f"No query patterns found for domain '{domain_id}'",
            "available_domains": [d_id for d_id, d in load_definitions().domains.items() if d.query_patterns],
        }
    patterns = domain.query_patterns
    if pattern_id:
        pattern = patterns.get(pattern_id)
        if pattern is None:
            return {
                "found": False,
                "message": f"No pattern '{pattern_id}' in domain '{domain_id}'",
                "available_patterns": list(patterns),
            }
        return {"found": True, "pattern": pattern_id, "description": pattern.description, "sql": pattern.sql}
    return {
        "found": True,
        "domain": domain_id,
        "patterns": [{"id": p_id, "description": p.description} for p_id, p in patterns.items()],
    }


def _query_timeout(timeout: float | None) -> float:
    # The caller's remaining budget never extends the per-query ceiling
    return QUERY_TIMEOUT if timeout is None else min(timeout, QUERY_TIMEOUT)


def readonly_query_tool(
    query: str,
    params: list[Any] | None = None,
    limit: int = 50,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Guarded SELECT against the member store."""
    return run_readonly_query(query, params, limit, timeout=_query_timeout(timeout)).to_dict()


def get_member_context_tool(member_id: str, timeout: float | None = None) -> dict[str, Any]:
    """Precomputed member snapshot row, returned verbatim."""
    try:
        snapshot = fetch_member_snapshot(member_id, timeout=_query_timeout(timeout))
    except Exception as e:
        logger.warning("[tools] get_member_context failed: %s", e)
        return {"found": False, "error": str(e) or "Failed to fetch member context"}
    if snapshot is None:
        return {
            "found": False,
            "message": "No context snapshot found for this member. Context may need to be refreshed.",
        }
    return {"found": True, "context": snapshot}


def get_context_for_query_tool(query: str) -> dict[str, Any]:
    """Classify, assemble and format context in one call."""
    context = assemble(query)
    return {
        "intent": context.intent,
        "confidence": context.confidence,
        "estimated_tokens": context.estimated_tokens,
        "policy_tokens": context.policy_tokens,
        "budget": context.budget,
        "truncated": context.truncated,
        **context.ids(),
        "formatted_context": format_semantic_context(context),
    }


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[..., dict[str, Any]]
    # Tools that hit the database take the caller's remaining time budget
    accepts_timeout: bool = False

    def to_openai_function(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": schema},
        }


TOOL_SPECS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name="search_semantic",
            description=(
                "Search the semantic knowledge base for context about workouts, members, goals, metrics, etc. "
                "Returns matching domains, entities, metrics and policies with their descriptions. Use this to "
                "find what information is available before querying the database."
            ),
            input_model=SearchSemanticInput,
            handler=search_semantic_tool,
        ),
        ToolSpec(
            name="get_semantic",
            description=(
                "Get the detailed semantic definition by ID and type: fields, table, query pattern ids and "
                "examples. Use after search_semantic to get complete context for one entity or domain."
            ),
            input_model=GetSemanticInput,
            handler=get_semantic_tool,
        ),
        ToolSpec(
            name="get_query_patterns",
            description=(
                "Get SQL query patterns for a domain: pre-written templates for common operations like "
                "fetching recent sessions or calculating volume."
            ),
            input_model=GetQueryPatternsInput,
            handler=get_query_patterns_tool,
        ),
        ToolSpec(
            name="readonly_query",
            description=(
                "Execute a read-only SQL query against the database. Only SELECT queries are allowed. Use $1, $2, "
                "etc. for parameters. Always scope results with WHERE clauses on member_id or circle_id."
            ),
            input_model=ReadonlyQueryInput,
            handler=readonly_query_tool,
            accepts_timeout=True,
        ),
        ToolSpec(
            name="get_member_context",
            description=(
                "Get the pre-computed member context snapshot: current weight, fitness level, active goals, "
                "limitations, personal records and muscle recovery status. Faster than querying tables one by one."
            ),
            input_model=GetMemberContextInput,
            handler=get_member_context_tool,
            accepts_timeout=True,
        ),
        ToolSpec(
            name="get_context_for_query",
            description=(
                "Classify a user query and retrieve all relevant semantic context (domains, entities, metrics, "
                "policies) within the token budget, as ids plus formatted markdown."
            ),
            input_model=GetContextForQueryInput,
            handler=get_context_for_query_tool,
        ),
    )
}

# OpenAI function-calling format: list of tool definitions
AGENT_TOOLS: list[dict[str, Any]] = [spec.to_openai_function() for spec in TOOL_SPECS.values()]


def execute_tool(name: str, arguments: dict[str, Any] | None, timeout: float | None = None) -> dict[str, Any]:
    """
    Execute a tool by name with the given arguments. Returns a structured dict; never raises
    for per-request failures.
    """
    args = arguments or {}
    logger.info("[tools] execute_tool name=%r arguments=%r", name, args)

    spec = TOOL_SPECS.get(name)
    if spec is None:
        return {"success": False, "error": f"Unknown tool: {name}", "available_tools": list(TOOL_SPECS)}

    try:
        params = spec.input_model.model_validate(args)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        logger.info("[tools] execute_tool name=%r invalid arguments: %s", name, problems)
        return {"success": False, "error": f"Invalid arguments for {name}: {problems}"}

    kwargs = params.model_dump()
    if spec.accepts_timeout and timeout is not None:
        kwargs["timeout"] = timeout
    try:
        return spec.handler(**kwargs)
    except SemanticLayerUnavailableError:
        raise
    except Exception as e:
        logger.exception("[tools] execute_tool name=%r failed", name)
        return {"success": False, "error": str(e) or f"{name} failed"}


def execute_tool_message(name: str, arguments: dict[str, Any] | None, timeout: float | None = None) -> str:
    """execute_tool result serialised for a tool message to the LLM."""
    return json.dumps(execute_tool(name, arguments, timeout=timeout), default=str)
