"""
MCP-style tool server: exposes the six semantic-layer tools over HTTP so external agents
can call them through the same standardized interface the in-process agent loop uses.
Request bodies are the tool input schemas; responses are the tools' structured results.
"""

import logging
from typing import Any

from fastapi import APIRouter

from fitcoach.agent.tools import TOOL_SPECS, execute_tool
from fitcoach.schemas.tools import (
    GetContextForQueryInput,
    GetMemberContextInput,
    GetQueryPatternsInput,
    GetSemanticInput,
    ReadonlyQueryInput,
    SearchSemanticInput,
)

logger = logging.getLogger(__name__)

# MCP tool schema for discovery / documentation
tools = [
    {
        "name": spec.name,
        "description": spec.description,
        "input_schema": spec.input_model.model_json_schema(),
    }
    for spec in TOOL_SPECS.values()
]

mcp_router = APIRouter(tags=["mcp"])


@mcp_router.get("/tools", summary="List MCP tools")
def mcp_list_tools() -> dict[str, list[dict[str, Any]]]:
    """Tool names, descriptions and JSON input schemas."""
    return {"tools": tools}


@mcp_router.post(
    "/tools/search_semantic",
    summary="MCP tool: search_semantic",
    description="Keyword/synonym search over the semantic knowledge base.",
)
def mcp_search_semantic(body: SearchSemanticInput) -> dict[str, Any]:
    logger.info("MCP tool called: search_semantic")
    return execute_tool("search_semantic", body.model_dump())


@mcp_router.post(
    "/tools/get_semantic",
    summary="MCP tool: get_semantic",
    description="Detailed definition of a domain, entity, metric or policy by id.",
)
def mcp_get_semantic(body: GetSemanticInput) -> dict[str, Any]:
    logger.info("MCP tool called: get_semantic")
    return execute_tool("get_semantic", body.model_dump())


@mcp_router.post(
    "/tools/get_query_patterns",
    summary="MCP tool: get_query_patterns",
    description="SQL templates for a domain, or one named template.",
)
def mcp_get_query_patterns(body: GetQueryPatternsInput) -> dict[str, Any]:
    logger.info("MCP tool called: get_query_patterns")
    return execute_tool("get_query_patterns", body.model_dump())


@mcp_router.post(
    "/tools/readonly_query",
    summary="MCP tool: readonly_query",
    description="Guarded read-only SELECT against the member store. Rejections come back as success=false.",
)
def mcp_readonly_query(body: ReadonlyQueryInput) -> dict[str, Any]:
    logger.info("MCP tool called: readonly_query")
    return execute_tool("readonly_query", body.model_dump())


@mcp_router.post(
    "/tools/get_member_context",
    summary="MCP tool: get_member_context",
    description="Pre-computed member context snapshot.",
)
def mcp_get_member_context(body: GetMemberContextInput) -> dict[str, Any]:
    logger.info("MCP tool called: get_member_context")
    return execute_tool("get_member_context", body.model_dump())


@mcp_router.post(
    "/tools/get_context_for_query",
    summary="MCP tool: get_context_for_query",
    description="Classify a query and return its budgeted semantic context.",
)
def mcp_get_context_for_query(body: GetContextForQueryInput) -> dict[str, Any]:
    logger.info("MCP tool called: get_context_for_query")
    return execute_tool("get_context_for_query", body.model_dump())
