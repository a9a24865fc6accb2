"""
Read-only query guard for agent-issued SQL.

Responsibility: Reject anything that is not a single SELECT, reject statement stacking and
comment markers, bound the result with a LIMIT, then execute and return a structured result.
This is pattern rejection, not a SQL parser; the store connection is read-only as well.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from fitcoach.core.config import QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT, QUERY_TIMEOUT
from fitcoach.core.errors import QueryRejectedError
from fitcoach.core.member_db import execute_readonly

logger = logging.getLogger(__name__)

QueryExecutor = Callable[[str, list[Any] | None, float | None], list[dict[str, Any]]]

NOT_SELECT_ERROR = "Only SELECT queries are allowed"
DANGEROUS_PATTERN_ERROR = "Query contains potentially dangerous patterns"

_DANGEROUS_PATTERNS = (
    re.compile(r";\s*(insert|update|delete|drop|truncate|alter|create)", re.IGNORECASE),
    re.compile(r"--"),
    re.compile(r"/\*"),
)
_LIMIT_CLAUSE = re.compile(r"\blimit\b", re.IGNORECASE)
_TRAILING_SEMICOLON = re.compile(r";?\s*$")


@dataclass
class QueryResult:
    success: bool
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "row_count": self.row_count, "rows": self.rows}
        return {"success": False, "error": self.error}


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return QUERY_DEFAULT_LIMIT
    return max(1, min(int(limit), QUERY_MAX_LIMIT))


def validate_readonly_query(query: str, limit: int = QUERY_DEFAULT_LIMIT) -> str:
    """Return the SQL to execute (LIMIT appended when missing). Raises QueryRejectedError."""
    raw = query or ""
    normalized = raw.strip().lower()
    if not normalized.startswith("select"):
        raise QueryRejectedError(NOT_SELECT_ERROR)
    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(raw):
            raise QueryRejectedError(DANGEROUS_PATTERN_ERROR)
    if _LIMIT_CLAUSE.search(normalized):
        return raw.strip()
    base = _TRAILING_SEMICOLON.sub("", raw.strip())
    return f"{base} LIMIT {limit}"


def run_readonly_query(
    query: str,
    params: list[Any] | None = None,
    limit: int | None = QUERY_DEFAULT_LIMIT,
    *,
    timeout: float | None = QUERY_TIMEOUT,
    executor: QueryExecutor | None = None,
) -> QueryResult:
    """Validate, bound and execute a read-only query. Never raises; failures come back as results."""
    max_rows = clamp_limit(limit)
    logger.info("[query_guard:run_readonly_query] IN  query=%r params=%d limit=%d", query, len(params or []), max_rows)
    try:
        final_query = validate_readonly_query(query, max_rows)
    except QueryRejectedError as e:
        logger.warning("[query_guard:run_readonly_query] rejected: %s query=%r", e.message, query)
        return QueryResult(success=False, error=e.message)

    run = executor or execute_readonly
    try:
        rows = run(final_query, params, timeout)
    except Exception as e:
        logger.warning("[query_guard:run_readonly_query] execution failed: %s", e)
        return QueryResult(success=False, error=str(e) or "Query execution failed")

    result = QueryResult(success=True, rows=list(rows)[:max_rows], row_count=len(rows))
    logger.info("[query_guard:run_readonly_query] OUT row_count=%d returned=%d", result.row_count, len(result.rows))
    return result
