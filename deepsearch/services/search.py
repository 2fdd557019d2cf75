"""
Web search client: Serper (Google results) over HTTP.

Responsibility: Send {q, num} to the Serper API and return the parsed JSON.
Ranking is entirely Serper's; this module only forwards the query.
"""

import logging
import threading
from typing import Any, TypedDict

import httpx

from deepsearch.core.config import SEARCH_API_TIMEOUT, SERPER_API_KEY, SERPER_URL
from deepsearch.core.errors import SearchAbortedError, ServiceUnavailableError

logger = logging.getLogger(__name__)


class SearchQuery(TypedDict):
    q: str
    num: int


def _check_abort(abort: threading.Event | None, query: str) -> None:
    if abort is not None and abort.is_set():
        logger.info("[search:search_serper] aborted query=%r", query)
        raise SearchAbortedError(f"Search aborted: {query!r}")


def search_serper(body: SearchQuery, abort: threading.Event | None = None) -> dict[str, Any]:
    """
    Query Serper and return its JSON response (keys include "organic").

    Raises:
        ServiceUnavailableError: If SERPER_API_KEY is not configured.
        SearchAbortedError: If abort is set before the request or before returning.
        httpx.HTTPError: On transport errors or non-2xx responses.
    """
    if not SERPER_API_KEY:
        raise ServiceUnavailableError("SERPER_API_KEY must be set in .env")

    query = body.get("q", "")
    logger.info("[search:search_serper] IN  q=%r num=%s", query, body.get("num"))
    _check_abort(abort, query)

    headers = {
        "X-API-KEY": SERPER_API_KEY,
        "Content-Type": "application/json",
    }
    with httpx.Client(timeout=SEARCH_API_TIMEOUT) as client:
        response = client.post(SERPER_URL, json=dict(body), headers=headers)
    response.raise_for_status()
    _check_abort(abort, query)

    data = response.json()
    logger.info("[search:search_serper] OUT organic=%d", len(data.get("organic") or []))
    return data
