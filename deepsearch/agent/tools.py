"""
Agent tools: definitions and execution for tool-calling mode.

Tools: searchWeb (Serper web search).
"""

import logging
import threading
from typing import Any

import httpx

from deepsearch.core.config import SEARCH_RESULT_COUNT
from deepsearch.core.errors import ServiceUnavailableError
from deepsearch.services.search import search_serper

logger = logging.getLogger(__name__)

SEARCH_WEB = "searchWeb"

# OpenAI function-calling format: list of tool definitions
AGENT_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": SEARCH_WEB,
            "description": "Search the web for up-to-date information. Returns results with title, link, and snippet.",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The query to search the web for",
                    }
                },
                "required": ["query"],
            },
        },
    },
]


def _search_web_impl(query: str, abort: threading.Event | None = None) -> list[dict[str, str]] | dict[str, str]:
    """Run the Serper search and keep only title, link and snippet of organic results."""
    q = (query or "").strip()
    if not q:
        return {"error": "query is required."}
    try:
        results = search_serper({"q": q, "num": SEARCH_RESULT_COUNT}, abort)
    except (httpx.HTTPError, ServiceUnavailableError) as e:
        logger.warning("[tools] searchWeb failed: %s", e)
        return {"error": f"Web search failed: {e}"}
    return [
        {
            "title": r.get("title", ""),
            "link": r.get("link", ""),
            "snippet": r.get("snippet", ""),
        }
        for r in results.get("organic") or []
    ]


def execute_tool(name: str, arguments: dict[str, Any], abort: threading.Event | None = None) -> Any:
    """
    Execute a tool by name with the given arguments. Returns a JSON-serializable
    result for the LLM. Search failures, including a missing SERPER_API_KEY, come back
    as {"error": ...}; SearchAbortedError propagates to the caller.
    """
    args = arguments or {}
    logger.info("[tools] execute_tool name=%r arguments=%r", name, args)

    if name == SEARCH_WEB:
        return _search_web_impl(args.get("query") or "", abort)

    return {"error": f"Unknown tool: {name}"}
