"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


def _env_int(name: str, default: int | None) -> int | None:
    """Integer env var; falls back to default when unset or not a number."""
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("[config] %s=%r is not an integer, using default %r", name, value, default)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("[config] %s=%r is not a number, using default %r", name, value, default)
        return default


# Compiled semantic layer artifacts (produced by the upstream compile step)
SEMANTIC_BUILD_DIR: Path = Path(
    os.getenv("SEMANTIC_BUILD_DIR", "").strip() or PROJECT_ROOT / ".semantic-build"
)
SEMANTIC_COMPILED_PATH: Path = Path(
    os.getenv("SEMANTIC_COMPILED_PATH", "").strip() or SEMANTIC_BUILD_DIR / "semantic.compiled.json"
)
SEMANTIC_INDEX_PATH: Path = Path(
    os.getenv("SEMANTIC_INDEX_PATH", "").strip() or SEMANTIC_BUILD_DIR / "semantic.index.json"
)

# Member data store (opened read-only)
MEMBER_DB_PATH: Path = Path(
    os.getenv("MEMBER_DB_PATH", "").strip() or PROJECT_ROOT / "data" / "members.db"
)
MEMBER_SNAPSHOT_TABLE: str = "member_context_snapshot"

# Token budget. When unset, the artifact's token_budgets.semantic_context is used.
SEMANTIC_CONTEXT_BUDGET: int | None = _env_int("SEMANTIC_CONTEXT_BUDGET", None)
CHARS_PER_TOKEN: int = 4

# Context assembly split of the budget left after mandatory policies
DOMAIN_BUDGET_SHARE: float = _env_float("DOMAIN_BUDGET_SHARE", 0.4)
ENTITY_BUDGET_SHARE: float = _env_float("ENTITY_BUDGET_SHARE", 0.4)
METRIC_BUDGET_SHARE: float = _env_float("METRIC_BUDGET_SHARE", 0.2)

# Lexical search scoring (tuning these affects ranking)
KEYWORD_WEIGHT: float = _env_float("KEYWORD_WEIGHT", 1.0)
SYNONYM_WEIGHT: float = _env_float("SYNONYM_WEIGHT", 2.0)
DESCRIPTION_WEIGHT: float = _env_float("DESCRIPTION_WEIGHT", 0.5)
MIN_TOKEN_LENGTH: int = 3
SEARCH_DEFAULT_LIMIT: int = 5

# Intent classification
DEFAULT_INTENT: str = os.getenv("DEFAULT_INTENT", "").strip() or "coaching_support"
LOW_CONFIDENCE: float = 0.3
CONFIDENCE_SCALE: float = 10.0

# Read-only query guard
QUERY_DEFAULT_LIMIT: int = 50
QUERY_MAX_LIMIT: int = _env_int("QUERY_MAX_LIMIT", 500)
QUERY_TIMEOUT: float = _env_float("QUERY_TIMEOUT", 10.0)

# Agent loop
MAX_AGENT_STEPS: int = _env_int("MAX_AGENT_STEPS", 5)
AGENT_MAX_TOKENS: int = _env_int("AGENT_MAX_TOKENS", 1024)
AGENT_TIMEOUT: float = _env_float("AGENT_TIMEOUT", 60.0)
LLM_API_TIMEOUT: float = 60.0

# OpenAI (agent LLM)
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
