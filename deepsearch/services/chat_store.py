"""
Chat persistence: create/resume chats and overwrite their message sets.

Responsibility: All reads and writes of the chats/messages tables. Called by the
API layer; no HTTP here. Messages are UI-format dicts ({role, parts, ...}).
"""

import logging
import re
import uuid
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from deepsearch.core.config import DEFAULT_CHAT_TITLE, MAX_TITLE_LENGTH
from deepsearch.core.database import utcnow
from deepsearch.core.errors import ChatOwnershipError
from deepsearch.models.chat import Chat, Message

logger = logging.getLogger(__name__)


def message_text(message: dict[str, Any]) -> str:
    """Concatenate the text parts of a message (falls back to its content)."""
    parts = message.get("parts") or []
    texts = [p.get("text") or "" for p in parts if isinstance(p, dict) and p.get("type") == "text"]
    if texts:
        return "".join(texts)
    return message.get("content") or ""


def title_from_messages(messages: list[dict[str, Any]]) -> str:
    """Title for a chat: the text of the latest user message, collapsed and truncated."""
    for message in reversed(messages):
        if message.get("role") != "user":
            continue
        text = re.sub(r"\s+", " ", message_text(message)).strip()
        if text:
            return text[:MAX_TITLE_LENGTH]
    return DEFAULT_CHAT_TITLE


def upsert_chat(
    db: Session,
    *,
    user_id: str,
    chat_id: str,
    title: str,
    messages: list[dict[str, Any]],
) -> Chat:
    """
    Create the chat or replace its messages with the given list.

    Raises:
        ChatOwnershipError: If chat_id already belongs to a different user.
    """
    logger.info(
        "[chat_store:upsert_chat] IN  chat_id=%s user_id=%s messages=%d",
        chat_id, user_id, len(messages),
    )
    chat = db.scalar(select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id))

    if chat is None:
        existing = db.get(Chat, chat_id)
        if existing is not None and existing.user_id != user_id:
            raise ChatOwnershipError(chat_id)
        chat = Chat(id=chat_id, title=title, user_id=user_id)
        db.add(chat)
        db.flush()
        logger.info("[chat_store:upsert_chat] created chat_id=%s", chat_id)
    else:
        if chat.title != title:
            chat.title = title
        db.execute(delete(Message).where(Message.chat_id == chat_id))
        chat.updated_at = utcnow()

    for i, msg in enumerate(messages):
        db.add(
            Message(
                id=uuid.uuid4().hex,
                chat_id=chat_id,
                role=msg.get("role") or "user",
                parts=list(msg.get("parts") or []),
                order=i,
            )
        )

    db.commit()
    # Drop the cached collection so the next read sees the new message set
    db.expire(chat, ["messages"])
    logger.info("[chat_store:upsert_chat] OUT chat_id=%s stored=%d", chat_id, len(messages))
    return chat


def get_chat(db: Session, *, user_id: str, chat_id: str) -> Chat | None:
    """Return the user's chat with messages in order, or None if missing or not owned."""
    stmt = (
        select(Chat)
        .where(Chat.id == chat_id, Chat.user_id == user_id)
        .options(selectinload(Chat.messages))
    )
    return db.scalar(stmt)


def get_chats(db: Session, *, user_id: str) -> list[Chat]:
    """Return the user's chats, most recently updated first."""
    stmt = select(Chat).where(Chat.user_id == user_id).order_by(Chat.updated_at.desc())
    return list(db.scalars(stmt))
