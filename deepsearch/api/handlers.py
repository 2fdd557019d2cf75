"""
API handlers: call services and map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Quota enforcement, chat
resolution and exception-to-HTTP mapping live here so services stay free of
FastAPI/HTTP types.
"""

import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from deepsearch.core.config import DAILY_REQUEST_LIMIT
from deepsearch.core.errors import ChatOwnershipError
from deepsearch.models.chat import Chat
from deepsearch.models.user import User
from deepsearch.schemas.chat import ChatDetail, ChatMessage, ChatRequest, ChatSummary
from deepsearch.services.chat_store import get_chat, get_chats, message_text, title_from_messages, upsert_chat
from deepsearch.services.rate_limit import count_requests_today, is_over_limit, record_request

logger = logging.getLogger(__name__)


def resolve_chat(db: Session, user: User, chat_id: str, messages: list[dict[str, Any]], is_new_chat: bool) -> Chat:
    """
    Create the chat (storing the incoming messages) or load an existing one.
    Maps missing, foreign-owned, or conflicting chat ids to 404.
    """
    if is_new_chat:
        try:
            return upsert_chat(
                db,
                user_id=user.id,
                chat_id=chat_id,
                title=title_from_messages(messages),
                messages=messages,
            )
        except ChatOwnershipError as e:
            db.rollback()
            logger.warning("[handlers:resolve_chat] chat_id=%s owned by another user", chat_id)
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found") from e

    chat = get_chat(db, user_id=user.id, chat_id=chat_id)
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


def prepare_chat_request(db: Session, user: User, body: ChatRequest) -> list[dict[str, Any]]:
    """
    Run the pre-stream checks for POST /api/chat in order: quota (429), messages (400),
    chat ownership (404). Returns the messages as plain dicts.
    """
    logger.info(
        "[handlers:prepare_chat_request] IN  user_id=%s chat_id=%s is_new_chat=%s messages=%d",
        user.id, body.chat_id, body.is_new_chat, len(body.messages),
    )
    if not user.is_admin:
        count = count_requests_today(db, user.id)
        if is_over_limit(count, DAILY_REQUEST_LIMIT):
            logger.info("[handlers:prepare_chat_request] user_id=%s over limit count=%d", user.id, count)
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests")
    if not body.messages:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No messages provided")
    record_request(db, user.id)

    messages = [m.model_dump(exclude_none=True) for m in body.messages]
    resolve_chat(db, user, body.chat_id, messages, body.is_new_chat)
    return messages


def chat_summaries(db: Session, user: User) -> list[ChatSummary]:
    """Return the caller's chats, most recently updated first."""
    return [ChatSummary.model_validate(c) for c in get_chats(db, user_id=user.id)]


def chat_detail(db: Session, user: User, chat_id: str) -> ChatDetail:
    """Return the caller's chat with ordered messages; 404 if missing or not owned."""
    chat = get_chat(db, user_id=user.id, chat_id=chat_id)
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return ChatDetail(
        id=chat.id,
        title=chat.title,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
        messages=[
            ChatMessage(id=m.id, role=m.role, content=message_text({"parts": m.parts}), parts=m.parts or [])
            for m in chat.messages
        ],
    )
