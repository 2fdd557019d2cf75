"""
API route aggregator: register endpoints; request checks are delegated to handlers.
"""

import json
import logging
import threading
from typing import Any

from anyio import to_thread
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from deepsearch.agent.runner import run_chat_stream
from deepsearch.api.handlers import chat_detail, chat_summaries, prepare_chat_request
from deepsearch.core.auth import get_current_user
from deepsearch.core.database import SessionLocal, get_db
from deepsearch.models.user import User
from deepsearch.schemas.chat import ChatDetail, ChatRequest, ChatSummary
from deepsearch.services.chat_store import title_from_messages, upsert_chat

logger = logging.getLogger(__name__)
router = APIRouter()

STREAM_ERROR_MESSAGE = "Oops, an error occurred!"


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Deepsearch chat backend running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chats ---

@router.get(
    "/api/chats",
    response_model=list[ChatSummary],
    tags=["chats"],
    summary="List the caller's chats",
)
def list_chats(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[ChatSummary]:
    return chat_summaries(db, user)


@router.get(
    "/api/chats/{chat_id}",
    response_model=ChatDetail,
    tags=["chats"],
    summary="Get one chat with its messages",
    description="404 if the chat does not exist or belongs to another user.",
)
def get_chat_by_id(
    chat_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChatDetail:
    return chat_detail(db, user, chat_id)


# --- Chat (SSE) ---

def _sse(event: str, payload: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


def _persist_reply(user_id: str, chat_id: str, messages: list[dict[str, Any]]) -> None:
    """Overwrite the stored message set with the final conversation."""
    with SessionLocal() as db:
        upsert_chat(
            db,
            user_id=user_id,
            chat_id=chat_id,
            title=title_from_messages(messages),
            messages=messages,
        )


_END_OF_STREAM = object()


async def _sse_generator(user_id: str, chat_id: str, messages: list[dict[str, Any]], is_new_chat: bool):
    """
    Yield Server-Sent Events for the streamed model response, then persist the final messages.

    The agent runs in a worker thread, one event per hop. A client disconnect cancels the
    pending hop without waiting for the thread, so the abort flag is already set while a
    search is still in flight.
    """
    abort = threading.Event()
    events = run_chat_stream(messages, abort=abort)
    if is_new_chat:
        yield _sse("new_chat_created", {"chatId": chat_id})
    try:
        while True:
            evt = await to_thread.run_sync(next, events, _END_OF_STREAM, abandon_on_cancel=True)
            if evt is _END_OF_STREAM:
                break
            event_type = evt.get("event", "")
            if event_type == "text_delta":
                yield _sse("text_delta", {"content": evt.get("content", "")})
            elif event_type == "tool_call":
                yield _sse("tool_call", {"id": evt["id"], "name": evt["name"], "arguments": evt["arguments"]})
            elif event_type == "tool_result":
                yield _sse("tool_result", {"id": evt["id"], "name": evt["name"], "result": evt["result"]})
            elif event_type == "done":
                reply = evt["message"]
                final_messages = [*messages, reply]
                await to_thread.run_sync(_persist_reply, user_id, chat_id, final_messages)
                logger.info("[api:chat] persisted chat_id=%s messages=%d", chat_id, len(final_messages))
                yield _sse("done", {"chatId": chat_id, "message": reply})
            elif event_type == "error":
                logger.error("[api:chat] agent error chat_id=%s: %s", chat_id, evt.get("message", ""))
                yield _sse("error", {"message": STREAM_ERROR_MESSAGE})
    except Exception:
        logger.exception("SSE stream failed")
        yield _sse("error", {"message": STREAM_ERROR_MESSAGE})
    finally:
        abort.set()


@router.post(
    "/api/chat",
    tags=["chat"],
    summary="Chat with the web-search agent (SSE stream)",
    description=(
        "Body: {messages, chatId, isNewChat?}. 401 unauthenticated or unknown user, 429 over the daily quota, "
        "400 without messages, 404 for a missing or foreign chat. Events: new_chat_created, text_delta, "
        "tool_call, tool_result, done, error."
    ),
)
def post_chat(
    body: ChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StreamingResponse:
    messages = prepare_chat_request(db, user, body)
    logger.info("[api:post_chat] IN  user_id=%s chat_id=%s messages=%d", user.id, body.chat_id, len(messages))
    return StreamingResponse(
        _sse_generator(user.id, body.chat_id, messages, body.is_new_chat),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
