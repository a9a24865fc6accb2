"""
Agent LLM: OpenAI chat completions with function calling.
"""

import json
import logging
from typing import Any

from openai import OpenAI

from fitcoach.core.config import LLM_API_TIMEOUT, OPENAI_API_KEY, OPENAI_LLM_MODEL

logger = logging.getLogger(__name__)


def _client(timeout: float | None = None) -> OpenAI:
    return OpenAI(api_key=OPENAI_API_KEY, timeout=timeout or LLM_API_TIMEOUT)


def _parse_tool_calls(raw_tool_calls: list[Any]) -> list[dict[str, Any]]:
    tool_calls = []
    for tc in raw_tool_calls:
        fid = getattr(tc, "id", None) or ""
        fn = getattr(tc, "function", None)
        if not fn:
            continue
        fname = getattr(fn, "name", None) or ""
        fargs = getattr(fn, "arguments", None) or "{}"
        try:
            args = json.loads(fargs) if isinstance(fargs, str) else fargs
        except json.JSONDecodeError:
            logger.warning("[llm:chat_with_tools] undecodable arguments for %s: %r", fname, fargs)
            args = {}
        tool_calls.append({"id": fid, "name": fname, "arguments": args})
    return tool_calls


def chat_with_tools(
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None,
    max_tokens: int = 512,
    timeout: float | None = None,
) -> tuple[str | None, list[dict[str, Any]] | None]:
    """
    Call OpenAI chat with tools. Returns (content, tool_calls).
    If tool_calls is non-empty, the caller executes them and calls again with the tool results;
    content without tool_calls is the final answer. Returns (None, None) without OPENAI_API_KEY.
    """
    if not OPENAI_API_KEY:
        logger.warning("[llm] chat_with_tools requires OPENAI_API_KEY")
        return None, None
    logger.info("[llm:chat_with_tools] IN  messages=%d tools=%d max_tokens=%d", len(messages), len(tools or []), max_tokens)
    request: dict[str, Any] = {
        "model": OPENAI_LLM_MODEL,
        "messages": messages,
        "max_tokens": max_tokens,
    }
    if tools:
        request["tools"] = tools
    response = _client(timeout).chat.completions.create(**request)
    msg = response.choices[0].message if response.choices else None
    if not msg:
        return None, None
    content = (getattr(msg, "content", None) or "").strip() or None
    tool_calls = _parse_tool_calls(getattr(msg, "tool_calls", None) or [])
    if tool_calls:
        logger.info("[llm:chat_with_tools] OUT tool_calls=%s", [t["name"] for t in tool_calls])
    if content:
        logger.info("[llm:chat_with_tools] OUT content_len=%d", len(content))
    return content, tool_calls if tool_calls else None
