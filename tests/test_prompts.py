"""
Unit tests for prompt building and quick lookups.
"""

from fitcoach.agent.prompts import (
    build_semantic_system_prompt,
    conversation_excerpt,
    get_required_policies,
    quick_semantic_lookup,
)
from fitcoach.services.context_assembler import assemble


class TestConversationExcerpt:
    """Tests for conversation_excerpt()."""

    def test_last_three_user_messages(self) -> None:
        messages = [
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "two"},
            {"role": "user", "content": "three"},
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": "four"},
        ]
        assert conversation_excerpt(messages) == "two three four"

    def test_blank_messages_skipped(self) -> None:
        messages = [{"role": "user", "content": "  "}, {"role": "user", "content": None}]
        assert conversation_excerpt(messages) == ""


class TestSystemPrompt:
    """Tests for build_semantic_system_prompt()."""

    def test_wraps_base_prompt_with_context(self) -> None:
        prompt = build_semantic_system_prompt("BASE", assemble("log my workout", budget=2000), member_id="m1")
        assert prompt.startswith("BASE")
        assert "## SEMANTIC KNOWLEDGE BASE" in prompt
        assert "## Policies" in prompt
        assert "The current member's id is m1." in prompt
        assert "readonly_query" in prompt

    def test_member_line_omitted_without_member(self) -> None:
        prompt = build_semantic_system_prompt("BASE", assemble("hello", budget=2000))
        assert "current member's id" not in prompt


def test_required_policies_markdown() -> None:
    text = get_required_policies()
    assert text.splitlines()[0] == "## Safety first"
    assert "- Scope every query to the current member" in text
    assert "Coaching tone" not in text


def test_quick_semantic_lookup_suggests_tools() -> None:
    result = quick_semantic_lookup("log my workout")
    assert result["intent"] == "workout_logging"
    assert {"id": "workouts", "type": "domain", "description": "Logging and planning training sessions"} in result[
        "relevant_items"
    ]
    assert result["suggested_tools"] == ["get_member_context", "get_query_patterns"]


def test_quick_semantic_lookup_fallback_has_no_suggestions() -> None:
    assert quick_semantic_lookup("hello")["suggested_tools"] == []
