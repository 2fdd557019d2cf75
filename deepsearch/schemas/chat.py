"""Schemas for the chat endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """One chat UI message. A message with content but no parts gets a single text part."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(None, description="Client-side message id (not persisted).")
    role: str = Field(..., description="'system', 'user', 'assistant' or 'data'.")
    content: str = Field("", description="Plain text of the message.")
    parts: list[dict[str, Any]] = Field(default_factory=list, description="Text and tool-invocation parts.")

    @model_validator(mode="after")
    def _fill_parts(self) -> "ChatMessage":
        if not self.parts and self.content:
            self.parts = [{"type": "text", "text": self.content}]
        return self


class ChatRequest(BaseModel):
    """Request body for POST /api/chat."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(default_factory=list, description="Full message history, latest last.")
    chat_id: str = Field(..., alias="chatId", min_length=1, max_length=255, description="Chat to create or resume.")
    is_new_chat: bool = Field(False, alias="isNewChat", description="Create the chat instead of resuming it.")


class ChatSummary(BaseModel):
    """Chat list entry for GET /api/chats."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    title: str
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")


class ChatDetail(ChatSummary):
    """Chat with its ordered messages for GET /api/chats/{chat_id}."""

    messages: list[ChatMessage] = Field(default_factory=list)
