"""
Shared fixtures: a small compiled knowledge base written to tmp_path, and a read-only member store.
"""

import json
import sqlite3
from pathlib import Path

import pytest

from fitcoach.core.member_db import SNAPSHOT_COLUMNS
from fitcoach.services import knowledge_store as knowledge_store_module
from fitcoach.services.knowledge_store import KnowledgeStore

WORKOUT_FIELDS = [
    {"name": "id", "type": "uuid", "description": "Session id", "required": True},
    {"name": "member_id", "type": "uuid", "description": "Owner of the session", "required": True},
    {"name": "started_at", "type": "timestamp", "description": "When the session began"},
    {"name": "ended_at", "type": "timestamp", "description": "When the session ended"},
    {"name": "duration_minutes", "type": "integer", "description": "Length of the session", "unit": "minutes", "min": 0},
    {"name": "session_type", "type": "enum", "description": "Kind of session", "values": ["strength", "cardio", "mobility"]},
    {"name": "perceived_effort", "type": "integer", "description": "RPE 1-10", "min": 1, "max": 10},
    {"name": "total_volume", "type": "number", "description": "Sum of sets x reps x weight", "unit": "kg"},
    {"name": "notes", "type": "text", "description": "Free-form notes"},
    {"name": "location", "type": "string", "description": "Gym or home"},
    {"name": "mood", "type": "string", "description": "Self-reported mood"},
    {"name": "created_at", "type": "timestamp", "description": "Row creation time"},
]

COMPILED = {
    "version": "1.0.0",
    "compiled_at": "2026-01-15T10:00:00Z",
    "schema_version": 1,
    "token_budgets": {"semantic_context": 2000, "user_state": 500, "policy": 300, "total": 4000},
    "domains": {
        "workouts": {
            "domain": "Workouts",
            "version": "1.0",
            "description": "Logging and planning training sessions",
            "intents": {
                "log_workout": {"description": "Record a completed session", "examples": ["I just did legs"]},
                "plan_workout": {"description": "Plan upcoming sessions"},
            },
            "query_patterns": {
                "recent_sessions": {
                    "description": "Last sessions for a member",
                    "sql": "SELECT * FROM workout_sessions WHERE member_id = $1 ORDER BY started_at DESC LIMIT 10",
                },
                "weekly_volume": {
                    "description": "Volume per week",
                    "sql": "SELECT strftime('%W', started_at) AS week, SUM(total_volume) FROM workout_sessions "
                    "WHERE member_id = $1 GROUP BY week",
                },
            },
        },
        "goals": {
            "domain": "Goals",
            "version": "1.0",
            "description": "Member goals and milestones",
            "intents": {"set_goal": {"description": "Create or change a goal"}},
        },
        "coaching": {
            "domain": "Coaching",
            "version": "1.0",
            "description": "General coaching support and motivation",
        },
    },
    "entities": {
        "workout_session": {
            "entity": "WorkoutSession",
            "version": "1.0",
            "description": "A single training session",
            "table": "workout_sessions",
            "primary_key": "id",
            "fields": WORKOUT_FIELDS,
            "examples": [
                {"question": "What did I do last time?", "sql": "SELECT * FROM workout_sessions LIMIT 1"},
                {"question": "How long was my last session?", "sql": "SELECT duration_minutes FROM workout_sessions"},
                {"question": "How many sessions this week?", "sql": "SELECT COUNT(*) FROM workout_sessions"},
                {"question": "Hardest session?", "sql": "SELECT MAX(perceived_effort) FROM workout_sessions"},
            ],
            "synonyms": {"session": ["workout", "training"]},
            "coaching_notes": "Prefer session-level summaries over per-set detail",
        },
        "member": {
            "entity": "Member",
            "version": "1.0",
            "description": "A person being coached",
            "table": "members",
            "primary_key": "id",
            "fields": [{"name": "id", "type": "uuid", "description": "Member id"}],
        },
        "goal": {
            "entity": "Goal",
            "version": "1.0",
            "description": "A measurable member goal",
            "table": "goals",
            "fields": [{"name": "target_value", "type": "number", "description": "Value to reach"}],
        },
    },
    "metrics": {
        "volume": {
            "metric": "Training volume",
            "version": "1.0",
            "description": "Total weight lifted",
            "definitions": {
                "session_volume": {"description": "Volume in one session", "formula": "sum(sets*reps*weight)", "unit": "kg"},
                "weekly_volume": {"description": "Volume per week", "unit": "kg"},
                "monthly_volume": {"description": "Volume per month", "unit": "kg"},
                "volume_per_muscle": {"description": "Volume by muscle group", "unit": "kg"},
                "relative_volume": {"description": "Volume over bodyweight", "unit": "ratio"},
                "volume_trend": {"description": "Week over week change", "unit": "percent"},
            },
        },
        "adherence": {
            "metric": "Adherence",
            "version": "1.0",
            "description": "How consistently the member trains",
            "definitions": {
                "weekly_adherence": {"description": "Planned vs completed", "target_range": [0.8, 1.0]},
            },
        },
    },
    "policies": {
        "safety": {
            "policy": "Safety first",
            "version": "1.0",
            "description": "Never diagnose injuries",
            "always_include": True,
            "principles": ["Do not diagnose injuries", "Recommend a professional for pain"],
        },
        "privacy": {
            "policy": "Member privacy",
            "version": "1.0",
            "description": "Only discuss the current member's data",
            "always_include": True,
            "principles": ["Scope every query to the current member"],
        },
        "tone": {
            "policy": "Coaching tone",
            "version": "1.0",
            "description": "Encouraging and specific",
            "always_include": False,
            "principles": ["Be encouraging", "Be specific"],
        },
    },
    "intent_categories": {
        "workout_logging": {"domains": ["workouts"], "entities": ["workout_session"], "metrics": ["volume"]},
        "goal_management": {"domains": ["goals"], "entities": ["goal", "member"], "metrics": ["adherence"]},
        "coaching_support": {"domains": ["coaching"], "entities": ["member"], "metrics": []},
    },
}

INDEX_ENTRIES = [
    {
        "id": "workouts",
        "type": "domain",
        "keywords": ["workout", "training", "session"],
        "synonyms": ["lift", "gym"],
        "description": "Logging and planning training sessions",
        "file": "domains/workouts.yaml",
    },
    {
        "id": "goals",
        "type": "domain",
        "keywords": ["goal", "target"],
        "synonyms": ["milestone", "objective"],
        "description": "Member goals and milestones",
        "file": "domains/goals.yaml",
    },
    {
        "id": "coaching",
        "type": "domain",
        "keywords": ["coaching", "motivation"],
        "synonyms": ["encourage"],
        "description": "General coaching support and motivation",
        "file": "domains/coaching.yaml",
    },
    {
        "id": "workout_session",
        "type": "entity",
        "keywords": ["workout", "session", "exercise"],
        "synonyms": ["lifting session"],
        "description": "A single training session",
        "file": "entities/workout_session.yaml",
    },
    {
        "id": "member",
        "type": "entity",
        "keywords": ["member", "profile"],
        "synonyms": ["athlete"],
        "description": "A person being coached",
        "file": "entities/member.yaml",
    },
    {
        "id": "goal",
        "type": "entity",
        "keywords": ["goal"],
        "synonyms": ["milestone"],
        "description": "A measurable member goal",
        "file": "entities/goal.yaml",
    },
    {
        "id": "volume",
        "type": "metric",
        "keywords": ["volume", "tonnage"],
        "synonyms": ["total weight"],
        "description": "Total weight lifted",
        "file": "metrics/volume.yaml",
    },
    {
        "id": "adherence",
        "type": "metric",
        "keywords": ["adherence", "consistency"],
        "synonyms": ["streak"],
        "description": "How consistently the member trains",
        "file": "metrics/adherence.yaml",
    },
    {
        "id": "safety",
        "type": "policy",
        "keywords": ["safety", "injury"],
        "synonyms": ["pain"],
        "description": "Never diagnose injuries",
        "file": "policies/safety.yaml",
    },
]

INDEX = {
    "version": "1.0.0",
    "entries": INDEX_ENTRIES,
    "keyword_map": {"workout": ["workouts", "workout_session"], "goal": ["goals", "goal"]},
}


def write_artifacts(directory: Path, compiled: object = COMPILED, index: object = INDEX) -> tuple[Path, Path]:
    directory.mkdir(parents=True, exist_ok=True)
    compiled_path = directory / "semantic.compiled.json"
    index_path = directory / "semantic.index.json"
    compiled_path.write_text(json.dumps(compiled), encoding="utf-8")
    index_path.write_text(json.dumps(index), encoding="utf-8")
    return compiled_path, index_path


@pytest.fixture
def semantic_artifacts(tmp_path: Path) -> tuple[Path, Path]:
    return write_artifacts(tmp_path / ".semantic-build")


@pytest.fixture(autouse=True)
def knowledge_store(semantic_artifacts: tuple[Path, Path], monkeypatch: pytest.MonkeyPatch) -> KnowledgeStore:
    """Process-wide store pointed at the fixture artifacts for the duration of a test."""
    store = KnowledgeStore(*semantic_artifacts)
    monkeypatch.setattr(knowledge_store_module, "_store", store)
    return store


@pytest.fixture
def member_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """SQLite member store with sessions and one snapshot row; module default path points at it."""
    db_path = tmp_path / "members.db"
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            "CREATE TABLE workout_sessions (id TEXT PRIMARY KEY, member_id TEXT, started_at TEXT, total_volume REAL)"
        )
        conn.executemany(
            "INSERT INTO workout_sessions VALUES (?, ?, ?, ?)",
            [
                ("s1", "m1", "2026-01-10T08:00:00", 5200.0),
                ("s2", "m1", "2026-01-12T08:00:00", 6100.5),
                ("s3", "m1", "2026-01-14T08:00:00", 4800.0),
                ("s4", "m2", "2026-01-11T18:30:00", 3000.0),
            ],
        )
        conn.execute(f"CREATE TABLE member_context_snapshot ({', '.join(SNAPSHOT_COLUMNS)})")
        values = {column: None for column in SNAPSHOT_COLUMNS}
        values.update(
            {
                "member_id": "m1",
                "current_weight": 82.5,
                "fitness_level": "intermediate",
                "training_age": 3,
                "active_goals": '[{"title": "Squat 140kg"}]',
                "needs_deload": 0,
                "last_workout_date": "2026-01-14",
            }
        )
        conn.execute(
            f"INSERT INTO member_context_snapshot ({', '.join(values)}) VALUES ({', '.join('?' for _ in values)})",
            tuple(values.values()),
        )
        conn.commit()
    finally:
        conn.close()
    monkeypatch.setattr("fitcoach.core.member_db.MEMBER_DB_PATH", db_path)
    return db_path
