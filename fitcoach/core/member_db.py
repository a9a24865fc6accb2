"""
Read-only access to the member data store (SQLite).

Opens data/members.db in read-only URI mode; this module never writes. Queries may carry a
timeout, enforced with a progress handler that interrupts the statement once the deadline
passes. The member_context_snapshot table is maintained outside this service.
"""

import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import Any

from fitcoach.core.config import MEMBER_DB_PATH, MEMBER_SNAPSHOT_TABLE

logger = logging.getLogger(__name__)

_PROGRESS_OPCODES = 1000

SNAPSHOT_COLUMNS: tuple[str, ...] = (
    "member_id",
    "current_weight",
    "current_body_fat",
    "fitness_level",
    "training_age",
    "active_limitations",
    "active_goals",
    "personal_records",
    "skills",
    "muscle_recovery_status",
    "weekly_workout_avg",
    "preferred_workout_time",
    "avg_workout_duration",
    "consecutive_training_weeks",
    "needs_deload",
    "last_workout_date",
    "last_updated",
)

# '...' literals are matched first so $N inside strings is left alone
_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\$(\d+)")


def _get_conn(db_path: Path | str | None = None) -> sqlite3.Connection:
    path = Path(db_path) if db_path is not None else MEMBER_DB_PATH
    conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def _set_deadline(conn: sqlite3.Connection, timeout: float | None) -> None:
    if timeout is None:
        return
    deadline = time.monotonic() + max(timeout, 0.0)
    conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_OPCODES)


def to_sqlite_placeholders(sql: str) -> str:
    """Rewrite $1, $2... positional parameters to SQLite's ?1, ?2..."""
    return _PLACEHOLDER.sub(lambda m: f"?{m.group(1)}" if m.group(1) else m.group(0), sql)


def execute_readonly(
    sql: str,
    params: list[Any] | tuple[Any, ...] | None = None,
    timeout: float | None = None,
    db_path: Path | str | None = None,
) -> list[dict[str, Any]]:
    """Run one statement on a read-only connection and return rows as dicts. Raises sqlite3.Error."""
    statement = to_sqlite_placeholders(sql)
    logger.info("[member_db:execute_readonly] IN  sql=%r params=%d timeout=%s", statement, len(params or []), timeout)
    conn = _get_conn(db_path)
    try:
        _set_deadline(conn, timeout)
        cur = conn.execute(statement, tuple(params or ()))
        rows = [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()
    logger.info("[member_db:execute_readonly] OUT rows=%d", len(rows))
    return rows


def fetch_member_snapshot(
    member_id: str,
    timeout: float | None = None,
    db_path: Path | str | None = None,
) -> dict[str, Any] | None:
    """Return the member's precomputed context snapshot row, or None if absent."""
    columns = ", ".join(SNAPSHOT_COLUMNS)
    conn = _get_conn(db_path)
    try:
        _set_deadline(conn, timeout)
        cur = conn.execute(
            f"SELECT {columns} FROM {MEMBER_SNAPSHOT_TABLE} WHERE member_id = ?",
            (member_id,),
        )
        row = cur.fetchone()
    finally:
        conn.close()
    logger.info("[member_db:fetch_member_snapshot] member_id=%s found=%s", member_id, row is not None)
    return dict(row) if row is not None else None
