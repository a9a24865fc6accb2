"""
LangGraph coaching agent: load_context → call_model → (run_tools → call_model)* → finalize.

The semantic context for the conversation is assembled once, up front, and injected into the
system prompt. The model may then call tools until it answers, the step limit is reached, or the
time budget runs out; whatever answer exists at that point is returned. Tools that hit the
database get the time left in the budget as their timeout.
"""

import json
import logging
import time
from typing import Any, Literal, TypedDict

from langgraph.graph import END, StateGraph

from fitcoach.agent.llm import chat_with_tools
from fitcoach.agent.prompts import DEFAULT_SYSTEM_PROMPT, build_semantic_system_prompt, conversation_excerpt
from fitcoach.agent.tools import AGENT_TOOLS, execute_tool_message
from fitcoach.core.config import AGENT_MAX_TOKENS, AGENT_TIMEOUT, MAX_AGENT_STEPS
from fitcoach.core.errors import SemanticLayerUnavailableError
from fitcoach.services.context_assembler import assemble

logger = logging.getLogger(__name__)

NO_ANSWER = "I couldn't complete the request (tool-calling requires OpenAI and OPENAI_API_KEY)."
STEP_LIMIT_ANSWER = "I ran out of steps before finishing. Please ask again with a narrower question."
TIMEOUT_ANSWER = "I ran out of time before finishing. Please try again."


class AgentState(TypedDict):
    conversation: list  # list of {"role": "user"|"assistant", "content": str}
    base_prompt: str
    member_id: str | None
    enable_tools: bool
    max_steps: int
    deadline: float  # time.monotonic() value
    messages: list  # OpenAI chat messages, system prompt first
    intent: str | None
    estimated_tokens: int
    steps: int
    pending_tool_calls: list
    last_tools: list
    tools_used: list
    answer: str
    stop_reason: str


def _remaining(state: AgentState) -> float:
    return state["deadline"] - time.monotonic()


def _chat_messages(conversation: list) -> list[dict[str, Any]]:
    messages = []
    for m in conversation:
        role = (m.get("role") or "user").strip().lower()
        content = (m.get("content") or "").strip()
        if role in ("user", "assistant") and content:
            messages.append({"role": role, "content": content})
    return messages


def _load_context(state: AgentState) -> dict:
    """Node 1: classify the recent conversation and build the system prompt."""
    excerpt = conversation_excerpt(state["conversation"])
    logger.info("[graph:load_context] IN  excerpt=%r", excerpt)
    context = assemble(excerpt)
    system_prompt = build_semantic_system_prompt(state["base_prompt"], context, state.get("member_id"))
    messages = [{"role": "system", "content": system_prompt}] + _chat_messages(state["conversation"])
    logger.info(
        "[graph:load_context] OUT intent=%s confidence=%s estimated_tokens=%d prompt_len=%d",
        context.intent,
        context.confidence,
        context.estimated_tokens,
        len(system_prompt),
    )
    return {"messages": messages, "intent": context.intent, "estimated_tokens": context.estimated_tokens}


def _call_model(state: AgentState) -> dict:
    """Node 2: one model step. Tool calls are queued; plain content is the answer."""
    steps = state["steps"] + 1
    tools = AGENT_TOOLS if state["enable_tools"] else None
    logger.info("[graph:call_model] IN  step=%d/%d messages=%d", steps, state["max_steps"], len(state["messages"]))
    content, tool_calls = chat_with_tools(
        state["messages"],
        tools,
        max_tokens=AGENT_MAX_TOKENS,
        timeout=max(_remaining(state), 1.0),
    )
    if not tool_calls:
        logger.info("[graph:call_model] OUT step=%d answer_len=%d", steps, len(content or ""))
        return {"steps": steps, "answer": content or "", "pending_tool_calls": [], "stop_reason": "answer"}

    assistant_msg: dict[str, Any] = {
        "role": "assistant",
        "content": content or "",
        "tool_calls": [
            {
                "id": tc["id"],
                "type": "function",
                "function": {"name": tc["name"], "arguments": json.dumps(tc.get("arguments") or {})},
            }
            for tc in tool_calls
        ],
    }
    logger.info("[graph:call_model] OUT step=%d tool_calls=%s", steps, [tc["name"] for tc in tool_calls])
    return {
        "steps": steps,
        "messages": state["messages"] + [assistant_msg],
        "pending_tool_calls": tool_calls,
        "answer": content or "",
    }


def _run_tools(state: AgentState) -> dict:
    """Node 3: execute queued tool calls and append their results."""
    messages = list(state["messages"])
    names: list[str] = []
    for tc in state["pending_tool_calls"]:
        name = tc.get("name", "")
        result = execute_tool_message(name, tc.get("arguments") or {}, timeout=max(_remaining(state), 0.0))
        names.append(name)
        messages.append({"role": "tool", "tool_call_id": tc.get("id", ""), "content": result})
    logger.info("[graph:run_tools] OUT tools=%s", names)
    return {
        "messages": messages,
        "pending_tool_calls": [],
        "last_tools": names,
        "tools_used": state["tools_used"] + names,
    }


def _finalize(state: AgentState) -> dict:
    """Node 4: make sure there is an answer, whatever stopped the loop."""
    if state.get("stop_reason") == "answer":
        reason = "answer"
    elif not state["pending_tool_calls"] and state["steps"] >= state["max_steps"]:
        reason = "step_limit"
    else:
        reason = "timeout"
    answer = (state.get("answer") or "").strip()
    if not answer:
        answer = {"step_limit": STEP_LIMIT_ANSWER, "timeout": TIMEOUT_ANSWER}.get(reason, NO_ANSWER)
    logger.info("[graph:finalize] OUT reason=%s steps=%d answer_len=%d", reason, state["steps"], len(answer))
    return {"answer": answer, "stop_reason": reason, "pending_tool_calls": []}


def _route_after_model(state: AgentState) -> Literal["run_tools", "finalize"]:
    if not state["pending_tool_calls"]:
        return "finalize"
    if _remaining(state) <= 0:
        logger.info("[graph:route_after_model] time budget exhausted -> finalize")
        return "finalize"
    return "run_tools"


def _route_after_tools(state: AgentState) -> Literal["call_model", "finalize"]:
    if state["steps"] >= state["max_steps"]:
        logger.info("[graph:route_after_tools] step limit %d reached -> finalize", state["max_steps"])
        return "finalize"
    if _remaining(state) <= 0:
        logger.info("[graph:route_after_tools] time budget exhausted -> finalize")
        return "finalize"
    return "call_model"


def build_graph():
    """
    Build and compile the agent graph.
    load_context → call_model → (run_tools → call_model)* → finalize → END.
    """
    graph = StateGraph(AgentState)

    graph.add_node("load_context", _load_context)
    graph.add_node("call_model", _call_model)
    graph.add_node("run_tools", _run_tools)
    graph.add_node("finalize", _finalize)

    graph.set_entry_point("load_context")
    graph.add_edge("load_context", "call_model")
    graph.add_conditional_edges("call_model", _route_after_model)
    graph.add_conditional_edges("run_tools", _route_after_tools)
    graph.add_edge("finalize", END)

    return graph.compile()


def _initial_state(
    messages: list,
    system_prompt: str | None,
    member_id: str | None,
    max_steps: int,
    enable_tools: bool,
    timeout: float,
) -> AgentState:
    return {
        "conversation": list(messages or []),
        "base_prompt": system_prompt or DEFAULT_SYSTEM_PROMPT,
        "member_id": member_id,
        "enable_tools": enable_tools,
        "max_steps": max(int(max_steps), 1),
        "deadline": time.monotonic() + timeout,
        "messages": [],
        "intent": None,
        "estimated_tokens": 0,
        "steps": 0,
        "pending_tool_calls": [],
        "last_tools": [],
        "tools_used": [],
        "answer": "",
        "stop_reason": "",
    }


def _graph_config(max_steps: int) -> dict:
    # load_context + finalize, plus call_model/run_tools per step
    return {"recursion_limit": 2 * max(int(max_steps), 1) + 4}


def run_coach_agent(
    messages: list,
    system_prompt: str | None = None,
    member_id: str | None = None,
    max_steps: int = MAX_AGENT_STEPS,
    enable_tools: bool = True,
    timeout: float = AGENT_TIMEOUT,
) -> dict:
    """
    Run the agent synchronously. Returns answer, steps, tools_used, intent, estimated_tokens.
    messages: list of {"role": "user"|"assistant", "content": str}; the last user turns drive classification.
    SemanticLayerUnavailableError propagates; everything else a tool hits comes back to the model as data.
    """
    if not conversation_excerpt(messages or []):
        raise ValueError("at least one user message is required")
    logger.info("[run_coach_agent] START messages=%d member_id=%s max_steps=%d", len(messages), member_id, max_steps)
    initial = _initial_state(messages, system_prompt, member_id, max_steps, enable_tools, timeout)
    final = build_graph().invoke(initial, _graph_config(max_steps))
    answer = (final.get("answer") or "").strip()
    logger.info(
        "[run_coach_agent] END steps=%d tools_used=%s reason=%s answer_len=%d",
        final.get("steps") or 0,
        final.get("tools_used"),
        final.get("stop_reason"),
        len(answer),
    )
    return {
        "answer": answer,
        "steps": final.get("steps") or 0,
        "tools_used": list(final.get("tools_used") or []),
        "intent": final.get("intent"),
        "estimated_tokens": final.get("estimated_tokens") or 0,
    }


def run_coach_agent_stream(
    messages: list,
    system_prompt: str | None = None,
    member_id: str | None = None,
    max_steps: int = MAX_AGENT_STEPS,
    enable_tools: bool = True,
    timeout: float = AGENT_TIMEOUT,
):
    """
    Run the agent and yield events as the graph progresses.
    Yields: {"event": "context", "intent": str|None, "estimated_tokens": int};
            {"event": "tool", "name": str} for each tool call;
            {"event": "answer", "content": str};
            {"event": "done", "answer": str, "steps": int, "tools_used": list}; or {"event": "error", "message": str}.
    """
    if not conversation_excerpt(messages or []):
        yield {"event": "error", "message": "at least one user message is required"}
        return
    logger.info("[run_coach_agent_stream] START messages=%d member_id=%s", len(messages), member_id)
    initial = _initial_state(messages, system_prompt, member_id, max_steps, enable_tools, timeout)
    steps = 0
    tools_used: list[str] = []
    try:
        for event in build_graph().stream(initial, _graph_config(max_steps)):
            # event: {node_name: state_update}
            for node_name, state_update in event.items():
                if node_name == "load_context":
                    yield {
                        "event": "context",
                        "intent": state_update.get("intent"),
                        "estimated_tokens": state_update.get("estimated_tokens", 0),
                    }
                elif node_name == "call_model":
                    steps = state_update.get("steps", steps)
                    if state_update.get("stop_reason") == "answer":
                        yield {"event": "answer", "content": state_update.get("answer", "")}
                elif node_name == "run_tools":
                    for name in state_update.get("last_tools", []):
                        tools_used.append(name)
                        yield {"event": "tool", "name": name}
                elif node_name == "finalize":
                    yield {
                        "event": "done",
                        "answer": state_update.get("answer", ""),
                        "steps": steps,
                        "tools_used": list(tools_used),
                    }
    except SemanticLayerUnavailableError:
        raise
    except Exception as e:
        logger.exception("[run_coach_agent_stream] Agent stream failed")
        yield {"event": "error", "message": str(e)}
    logger.info("[run_coach_agent_stream] END")
