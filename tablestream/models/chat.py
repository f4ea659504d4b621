"""Pydantic models for ephemeral chat messages broadcast on table and lobby streams."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ChatSender(BaseModel):
    wallet_address: str = Field(alias="walletAddress")
    twitter_handle: str = Field(alias="twitterHandle")
    twitter_avatar_url: str | None = Field(default=None, alias="twitterAvatarUrl")

    model_config = {"frozen": True, "populate_by_name": True}


class ChatMessage(BaseModel):
    """A chat line. Never persisted server side, so it carries no sequence id.

    ``table_id`` is ``None`` for lobby chat. ``message_id`` is a server
    generated string such as ``chat_1733140000000_7``.
    """

    kind: Literal["chat_message"] = "chat_message"
    table_id: int | None = Field(default=None, alias="tableId")
    message: str = Field(max_length=500)
    sender: ChatSender
    timestamp: datetime
    message_id: str = Field(alias="messageId")

    model_config = {"frozen": True, "populate_by_name": True, "extra": "allow"}
