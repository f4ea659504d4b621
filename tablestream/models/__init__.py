from .event import (
    EPHEMERAL_KINDS,
    GAME_KINDS,
    ConnectionState,
    StreamEvent,
    StreamStatus,
)
from .chat import ChatMessage, ChatSender

__all__ = [
    "EPHEMERAL_KINDS",
    "GAME_KINDS",
    "ConnectionState",
    "StreamEvent",
    "StreamStatus",
    "ChatMessage",
    "ChatSender",
]
