"""
Agent LLM: OpenAI chat completions with tools, streamed.
"""

import json
import logging
from typing import Any

from openai import OpenAI

from deepsearch.core.config import LLM_API_TIMEOUT, OPENAI_API_KEY, OPENAI_LLM_MODEL
from deepsearch.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


def _client() -> OpenAI:
    if not OPENAI_API_KEY:
        raise ServiceUnavailableError("OPENAI_API_KEY must be set in .env")
    return OpenAI(api_key=OPENAI_API_KEY, timeout=LLM_API_TIMEOUT)


def _parse_arguments(raw: str) -> dict[str, Any]:
    try:
        args = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        logger.warning("[llm] could not decode tool arguments %r", raw[:200])
        return {}
    return args if isinstance(args, dict) else {}


def _merge_tool_call_delta(pending: dict[int, dict[str, Any]], delta: Any) -> None:
    """Fold one streamed tool-call fragment into the call at its index."""
    call = pending.setdefault(getattr(delta, "index", 0) or 0, {"id": "", "name": "", "arguments": ""})
    if getattr(delta, "id", None):
        call["id"] = delta.id
    fn = getattr(delta, "function", None)
    if fn is None:
        return
    if getattr(fn, "name", None):
        call["name"] = fn.name
    if getattr(fn, "arguments", None):
        call["arguments"] += fn.arguments


def chat_with_tools_stream(
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]],
    max_tokens: int = 1024,
):
    """
    Call OpenAI chat with tools and stream the response. Yields:
    - ('content_delta', str) for each text token;
    - ('content_done',) when the answer is complete (no tool_calls);
    - ('tool_calls', list[dict], content_str) when the model called tools (content_str may be empty).

    Raises ServiceUnavailableError when OPENAI_API_KEY is not configured.
    """
    client = _client()
    logger.info("[llm:chat_with_tools_stream] IN  messages=%d model=%s", len(messages), OPENAI_LLM_MODEL)
    stream = client.chat.completions.create(
        model=OPENAI_LLM_MODEL,
        messages=messages,
        tools=tools,
        max_tokens=max_tokens,
        stream=True,
    )
    text: list[str] = []
    pending: dict[int, dict[str, Any]] = {}
    for chunk in stream:
        if not chunk.choices:
            continue
        delta = chunk.choices[0].delta
        if getattr(delta, "content", None):
            text.append(delta.content)
            yield ("content_delta", delta.content)
        for tc in getattr(delta, "tool_calls", None) or []:
            _merge_tool_call_delta(pending, tc)

    content = "".join(text)
    if not pending:
        logger.info("[llm:chat_with_tools_stream] OUT content_done len=%d", len(content))
        yield ("content_done",)
        return
    calls = [
        {"id": c["id"], "name": c["name"], "arguments": _parse_arguments(c["arguments"])}
        for _, c in sorted(pending.items())
    ]
    logger.info("[llm:chat_with_tools_stream] OUT tool_calls=%s", [c["name"] for c in calls])
    yield ("tool_calls", calls, content)
