"""Pydantic models for events delivered over the table and lobby push streams."""

from __future__ import annotations

from enum import Enum
from typing import Any

import orjson
from pydantic import BaseModel, Field

# Kinds with no ordering identity: delivered as soon as parsed, never buffered.
EPHEMERAL_KINDS: frozenset[str] = frozenset({"chat_message"})

# Ordered game kinds emitted by the server. Anything else still needs an id.
GAME_KINDS: frozenset[str] = frozenset(
    {
        "hand_start",
        "hand_action",
        "hand_end",
        "community_cards",
        "join_table",
        "leave_table",
        "create_table",
        "deposit",
        "withdraw",
        "bet",
        "withdrawal_executed",
    }
)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class StreamEvent(BaseModel):
    """A single parsed event from a table stream.

    ``sequence_id`` is assigned by the server and strictly increasing per
    table. ``0`` marks an event with no ordering identity (chat).
    """

    sequence_id: int = Field(ge=0)
    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def is_ordered(self) -> bool:
        return self.sequence_id > 0

    def to_json(self) -> str:
        return orjson.dumps(self.model_dump()).decode()


class StreamStatus(BaseModel):
    """Point-in-time view of a table stream for the rendering layer."""

    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    last_processed_event_id: int = 0
    queue_size: int = 0
    is_processing: bool = False

    model_config = {"frozen": True}
