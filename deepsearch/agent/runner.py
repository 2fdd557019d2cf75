"""
Agent loop: stream the model's answer, running searchWeb between steps.

Messages come in the chat UI format ({role, content, parts}); the assembled
assistant reply goes out in the same format so it can be stored as-is.
"""

import json
import logging
import threading
import uuid
from typing import Any

from deepsearch.agent.llm import chat_with_tools_stream
from deepsearch.agent.tools import AGENT_TOOLS, execute_tool
from deepsearch.core.config import AGENT_MAX_TOKENS, MAX_STEPS
from deepsearch.core.errors import SearchAbortedError
from deepsearch.services.chat_store import message_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an AI assistant with access to a web search tool. For every user query, "
    "always use the searchWeb tool to find up-to-date information. Always cite your sources "
    "with inline markdown links, e.g. [source](url), for any factual statements or answers you provide."
)


def _tool_invocation_part(call_id: str, name: str, args: dict, result: Any) -> dict[str, Any]:
    return {
        "type": "tool-invocation",
        "toolInvocation": {
            "state": "result",
            "toolCallId": call_id,
            "toolName": name,
            "args": args,
            "result": result,
        },
    }


def _assistant_turns(parts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Split one stored assistant message into assistant/tool chat-completions messages."""
    out: list[dict[str, Any]] = []
    text: list[str] = []
    calls: list[dict[str, Any]] = []

    def flush() -> None:
        if calls:
            out.append({
                "role": "assistant",
                "content": "".join(text) or None,
                "tool_calls": [
                    {
                        "id": inv["toolCallId"],
                        "type": "function",
                        "function": {"name": inv["toolName"], "arguments": json.dumps(inv.get("args") or {})},
                    }
                    for inv in calls
                ],
            })
            for inv in calls:
                out.append({
                    "role": "tool",
                    "tool_call_id": inv["toolCallId"],
                    "content": json.dumps(inv.get("result")),
                })
        elif "".join(text):
            out.append({"role": "assistant", "content": "".join(text)})
        text.clear()
        calls.clear()

    for part in parts:
        kind = part.get("type")
        if kind == "text":
            if calls:
                flush()
            text.append(part.get("text") or "")
        elif kind == "tool-invocation":
            inv = part.get("toolInvocation") or {}
            # Calls that never produced a result cannot be replayed to the API
            if inv.get("state") == "result" and inv.get("toolCallId"):
                calls.append(inv)
    flush()
    return out


def to_openai_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert chat UI messages to chat-completions messages (tool invocations included)."""
    out: list[dict[str, Any]] = []
    for m in messages:
        role = (m.get("role") or "").strip().lower()
        if role == "assistant" and any(
            p.get("type") == "tool-invocation" for p in (m.get("parts") or []) if isinstance(p, dict)
        ):
            out.extend(_assistant_turns(m.get("parts") or []))
            continue
        if role not in ("system", "user", "assistant"):
            continue
        content = message_text(m).strip()
        if content:
            out.append({"role": role, "content": content})
    return out


def _assistant_message(parts: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "id": uuid.uuid4().hex,
        "role": "assistant",
        "content": "".join(p["text"] for p in parts if p.get("type") == "text"),
        "parts": parts,
    }


def run_chat_stream(messages: list[dict[str, Any]], abort: threading.Event | None = None):
    """
    Run the model with the searchWeb tool for up to MAX_STEPS steps and yield events:
      {"event": "text_delta", "content": str}
      {"event": "tool_call", "id": str, "name": str, "arguments": dict}
      {"event": "tool_result", "id": str, "name": str, "result": Any}
      {"event": "done", "message": dict}  (assistant message with parts)
      {"event": "error", "message": str}
    The stream ends without a done event once abort is set.
    """
    logger.info("[run_chat_stream] START messages=%d", len(messages))
    convo: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_PROMPT}]
    convo.extend(to_openai_messages(messages))
    parts: list[dict[str, Any]] = []

    try:
        for step in range(MAX_STEPS):
            if abort is not None and abort.is_set():
                logger.info("[run_chat_stream] aborted before step=%d", step + 1)
                return
            step_text: list[str] = []
            tool_calls: list[dict[str, Any]] | None = None
            for item in chat_with_tools_stream(convo, AGENT_TOOLS, max_tokens=AGENT_MAX_TOKENS):
                if item[0] == "content_delta":
                    step_text.append(item[1])
                    yield {"event": "text_delta", "content": item[1]}
                elif item[0] == "content_done":
                    break
                elif item[0] == "tool_calls":
                    tool_calls = item[1]
                    break

            text = "".join(step_text)
            if text:
                parts.append({"type": "text", "text": text})
            if not tool_calls:
                logger.info("[run_chat_stream] END steps=%d parts=%d", step + 1, len(parts))
                yield {"event": "done", "message": _assistant_message(parts)}
                return

            convo.append({
                "role": "assistant",
                "content": text or None,
                "tool_calls": [
                    {
                        "id": tc["id"],
                        "type": "function",
                        "function": {"name": tc["name"], "arguments": json.dumps(tc.get("arguments") or {})},
                    }
                    for tc in tool_calls
                ],
            })
            for tc in tool_calls:
                call_id, name, args = tc["id"], tc["name"], tc.get("arguments") or {}
                yield {"event": "tool_call", "id": call_id, "name": name, "arguments": args}
                result = execute_tool(name, args, abort=abort)
                parts.append(_tool_invocation_part(call_id, name, args, result))
                convo.append({"role": "tool", "tool_call_id": call_id, "content": json.dumps(result)})
                yield {"event": "tool_result", "id": call_id, "name": name, "result": result}

        logger.info("[run_chat_stream] END max steps reached parts=%d", len(parts))
        yield {"event": "done", "message": _assistant_message(parts)}
    except SearchAbortedError as e:
        logger.info("[run_chat_stream] stopped: %s", e)
    except Exception as e:
        logger.exception("[run_chat_stream] Agent stream failed")
        yield {"event": "error", "message": str(e)}
