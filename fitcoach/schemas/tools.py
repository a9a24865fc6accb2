"""Input schemas for the agent tools. Also used as request bodies by the MCP tool endpoints."""

from pydantic import BaseModel, Field

from fitcoach.core.config import QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT, SEARCH_DEFAULT_LIMIT
from fitcoach.schemas.semantic import DefinitionType

QueryParam = str | int | float | bool | None


class SearchSemanticInput(BaseModel):
    query: str = Field(..., description="Natural language search query")
    limit: int = Field(SEARCH_DEFAULT_LIMIT, ge=1, le=50, description="Maximum results to return")


class GetSemanticInput(BaseModel):
    id: str = Field(..., description="ID of the semantic item (e.g. 'member', 'workout_session', 'adherence')")
    type: DefinitionType = Field(..., description="Type of the semantic item")


class GetQueryPatternsInput(BaseModel):
    domain_id: str = Field(..., description="Domain ID (e.g. 'workouts', 'analytics')")
    pattern_id: str | None = Field(None, description="Specific pattern ID, or omit to list all")


class ReadonlyQueryInput(BaseModel):
    query: str = Field(..., description="SQL SELECT query")
    params: list[QueryParam] | None = Field(None, description="Values for $1, $2, ... placeholders")
    limit: int = Field(QUERY_DEFAULT_LIMIT, ge=1, le=QUERY_MAX_LIMIT, description="Maximum rows to return")


class GetMemberContextInput(BaseModel):
    member_id: str = Field(..., min_length=1, description="Member UUID")


class GetContextForQueryInput(BaseModel):
    query: str = Field(..., description="The user's natural language query")
