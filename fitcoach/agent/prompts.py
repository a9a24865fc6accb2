"""
Prompt building for the coaching agent.

Responsibility: Turn a conversation into classification text, and wrap a base coaching prompt
with the budgeted semantic context and tool guidance.
"""

import logging
from typing import Any

from fitcoach.services.context_assembler import SemanticContext, assemble, format_semantic_context
from fitcoach.services.knowledge_store import get_always_include_policies

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a knowledgeable, encouraging fitness coach. Give safe, specific advice grounded in the "
    "member's own data. Do not diagnose injuries or medical conditions."
)

TOOL_GUIDANCE = """You have access to tools for:
1. Searching semantic definitions (search_semantic)
2. Getting detailed entity/domain info (get_semantic)
3. Getting SQL templates for a domain (get_query_patterns)
4. Running read-only database queries (readonly_query)
5. Getting pre-computed member context (get_member_context)

Use these tools when you need:
- To understand what data is available
- To fetch user-specific information
- To run analytics or progress queries
- To get examples of SQL patterns

Always use the semantic tools before making assumptions about data structures."""

# intent -> tools worth calling first
SUGGESTED_TOOLS: dict[str, list[str]] = {
    "workout_logging": ["get_member_context", "get_query_patterns"],
    "workout_planning": ["get_member_context", "get_query_patterns"],
    "progress_analytics": ["readonly_query", "get_semantic"],
    "goal_management": ["get_semantic", "get_member_context"],
}


def conversation_excerpt(messages: list[dict[str, Any]], max_user_messages: int = 3) -> str:
    """Join the last few user messages; this is what intent classification sees."""
    user_messages = [
        (m.get("content") or "").strip()
        for m in messages
        if (m.get("role") or "").strip().lower() == "user"
    ]
    recent = [c for c in user_messages if c][-max_user_messages:]
    return " ".join(recent)


def build_semantic_system_prompt(
    base_prompt: str,
    context: SemanticContext,
    member_id: str | None = None,
) -> str:
    formatted = format_semantic_context(context)
    member_line = f"\nThe current member's id is {member_id}. Scope every query to this member.\n" if member_id else ""
    return f"""{base_prompt}

---
## SEMANTIC KNOWLEDGE BASE
The following definitions and patterns are relevant to this conversation.
Use them to understand data structures and generate accurate queries.

{formatted}
---
{member_line}
{TOOL_GUIDANCE}
"""


def get_required_policies() -> str:
    """Markdown block of the always-include (safety and privacy) policies."""
    sections: list[str] = []
    for policy in get_always_include_policies().values():
        sections.append(f"## {policy.statement}")
        sections.extend(f"- {principle}" for principle in policy.principles)
    return "\n".join(sections)


def quick_semantic_lookup(query: str) -> dict[str, Any]:
    """Intent, relevant definitions and suggested tools for a query, without running the agent."""
    context = assemble(query)
    relevant_items: list[dict[str, str]] = []
    for type_name, items in (
        ("domain", context.domains),
        ("entity", context.entities),
        ("metric", context.metrics),
    ):
        relevant_items.extend(
            {"id": item_id, "type": type_name, "description": item.description}
            for item_id, item in items.items()
        )
    suggested = list(SUGGESTED_TOOLS.get(context.intent or "", []))
    logger.info("[prompts:quick_semantic_lookup] OUT intent=%s items=%d tools=%s", context.intent, len(relevant_items), suggested)
    return {
        "intent": context.intent,
        "relevant_items": relevant_items,
        "suggested_tools": suggested,
    }
