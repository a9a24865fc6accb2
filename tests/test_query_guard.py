"""
Unit tests for the read-only query guard and the member store it runs against.
"""

import sqlite3
from functools import partial
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fitcoach.core.config import QUERY_MAX_LIMIT
from fitcoach.core.errors import QueryRejectedError
from fitcoach.core.member_db import execute_readonly, fetch_member_snapshot, to_sqlite_placeholders
from fitcoach.services.query_guard import (
    DANGEROUS_PATTERN_ERROR,
    NOT_SELECT_ERROR,
    clamp_limit,
    run_readonly_query,
    validate_readonly_query,
)


class TestValidateReadonlyQuery:
    """Tests for validate_readonly_query()."""

    @pytest.mark.parametrize(
        "query",
        [
            "DELETE FROM workout_sessions",
            "update members set name = 'x'",
            "WITH x AS (SELECT 1) SELECT * FROM x",
            "",
            "   ",
        ],
    )
    def test_non_select_rejected(self, query: str) -> None:
        with pytest.raises(QueryRejectedError) as exc_info:
            validate_readonly_query(query)
        assert exc_info.value.message == NOT_SELECT_ERROR

    @pytest.mark.parametrize(
        "query",
        [
            "SELECT 1; DROP TABLE members",
            "select 1;delete from members",
            "SELECT 1;  Insert INTO members VALUES (1)",
            "SELECT * FROM members -- where member_id = 1",
            "SELECT * FROM members /* hidden */",
        ],
    )
    def test_dangerous_patterns_rejected(self, query: str) -> None:
        with pytest.raises(QueryRejectedError) as exc_info:
            validate_readonly_query(query)
        assert exc_info.value.message == DANGEROUS_PATTERN_ERROR

    def test_limit_appended(self) -> None:
        assert validate_readonly_query("  SELECT * FROM members  ", 10) == "SELECT * FROM members LIMIT 10"

    def test_trailing_semicolon_removed_before_limit(self) -> None:
        assert validate_readonly_query("SELECT * FROM members;", 5) == "SELECT * FROM members LIMIT 5"

    def test_existing_limit_kept(self) -> None:
        assert validate_readonly_query("SELECT * FROM members LIMIT 3", 50) == "SELECT * FROM members LIMIT 3"

    def test_limit_word_anywhere_counts(self) -> None:
        # Pattern check, not a parser: a column named "limit" suppresses the append
        query = 'SELECT "limit" FROM plans'
        assert validate_readonly_query(query, 50) == query


class TestClampLimit:
    """Tests for clamp_limit()."""

    @pytest.mark.parametrize(
        "limit, expected",
        [(None, 50), (0, 1), (-3, 1), (1, 1), (50, 50), (10_000, QUERY_MAX_LIMIT)],
    )
    def test_clamped(self, limit: int | None, expected: int) -> None:
        assert clamp_limit(limit) == expected


class TestRunReadonlyQuery:
    """Tests for run_readonly_query() with a fake executor."""

    def test_rejection_is_structured_and_not_executed(self) -> None:
        executor = MagicMock()
        result = run_readonly_query("DROP TABLE members", executor=executor)
        assert result.to_dict() == {"success": False, "error": NOT_SELECT_ERROR}
        executor.assert_not_called()

    def test_executes_bounded_query(self) -> None:
        executor = MagicMock(return_value=[{"id": 1}, {"id": 2}])
        result = run_readonly_query("SELECT id FROM members WHERE member_id = $1", ["m1"], 10, executor=executor, timeout=2.0)
        executor.assert_called_once_with("SELECT id FROM members WHERE member_id = $1 LIMIT 10", ["m1"], 2.0)
        assert result.to_dict() == {"success": True, "row_count": 2, "rows": [{"id": 1}, {"id": 2}]}

    def test_parameterized_select_gets_limit(self) -> None:
        executor = MagicMock(return_value=[{"name": "Sam"}])
        result = run_readonly_query("select name from members where id = $1", ["abc"], executor=executor)
        assert result.success
        assert executor.call_args.args[0] == "select name from members where id = $1 LIMIT 50"

    def test_rows_truncated_to_limit(self) -> None:
        executor = MagicMock(return_value=[{"id": i} for i in range(5)])
        result = run_readonly_query("SELECT id FROM members LIMIT 100", limit=2, executor=executor)
        assert result.rows == [{"id": 0}, {"id": 1}]
        assert result.row_count == 5

    def test_execution_error_is_structured(self) -> None:
        executor = MagicMock(side_effect=sqlite3.OperationalError("no such table: nope"))
        result = run_readonly_query("SELECT * FROM nope", executor=executor)
        assert result.to_dict() == {"success": False, "error": "no such table: nope"}


class TestAgainstSqlite:
    """run_readonly_query() and the member store against a real read-only database."""

    def test_positional_params(self, member_db: Path) -> None:
        result = run_readonly_query(
            "SELECT id FROM workout_sessions WHERE member_id = $1 ORDER BY started_at",
            ["m1"],
            executor=partial(execute_readonly, db_path=member_db),
        )
        assert result.success
        assert [r["id"] for r in result.rows] == ["s1", "s2", "s3"]

    def test_default_executor_uses_member_db(self, member_db: Path) -> None:
        result = run_readonly_query("SELECT COUNT(*) AS n FROM workout_sessions")
        assert result.rows == [{"n": 4}]

    def test_connection_is_read_only(self, member_db: Path) -> None:
        with pytest.raises(sqlite3.OperationalError):
            execute_readonly("DELETE FROM workout_sessions", db_path=member_db)

    def test_timeout_interrupts_query(self, member_db: Path) -> None:
        slow = (
            "SELECT COUNT(*) FROM (WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c "
            "WHERE x < 50000000) SELECT x FROM c)"
        )
        result = run_readonly_query(slow, timeout=0.0)
        assert not result.success
        assert "interrupted" in result.error

    def test_placeholders_outside_literals_rewritten(self) -> None:
        assert to_sqlite_placeholders("SELECT '$1' AS s, $2 AS v") == "SELECT '$1' AS s, ?2 AS v"

    def test_fetch_member_snapshot(self, member_db: Path) -> None:
        snapshot = fetch_member_snapshot("m1")
        assert snapshot["member_id"] == "m1"
        assert snapshot["fitness_level"] == "intermediate"
        assert snapshot["current_weight"] == 82.5
        assert fetch_member_snapshot("nobody") is None
