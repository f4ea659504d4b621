"""Parses raw stream messages and routes them by event kind.

Ephemeral kinds go straight to the handler through the queue's fast path.
Every other kind needs a positive integer sequence id in the transport's
id slot and is buffered for ordered delivery.
"""

from __future__ import annotations

import time
from typing import Any

import orjson
import structlog

from tablestream.ingestion.ordering import OrderingQueue
from tablestream.ingestion.sse import SSEMessage
from tablestream.models import EPHEMERAL_KINDS, GAME_KINDS, StreamEvent

logger = structlog.get_logger(__name__)


def parse_sequence_id(raw: str) -> int | None:
    """Return the id as a positive int, or None if it is missing or invalid."""
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    value = int(raw)
    return value if value > 0 else None


def parse_envelope(data: str) -> dict[str, Any] | None:
    """Decode a ``{kind, ...}`` JSON body. None if it is not a valid envelope."""
    try:
        body = orjson.loads(data)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(body, dict) or not isinstance(body.get("kind"), str):
        return None
    return body


class EventDispatcher:
    """Turns transport messages into StreamEvents and feeds the ordering queue."""

    def __init__(
        self,
        queue: OrderingQueue,
        *,
        table_id: int | None = None,
        ephemeral_kinds: frozenset[str] = EPHEMERAL_KINDS,
        stats_interval: float = 60.0,
    ) -> None:
        self._queue = queue
        self._ephemeral_kinds = ephemeral_kinds
        self._stats_interval = stats_interval
        self._log = logger.bind(table_id=table_id)

        # Stats
        self._msg_counts: dict[str, int] = {}
        self._malformed = 0
        self._last_stats_time = time.monotonic()

    @property
    def queue(self) -> OrderingQueue:
        return self._queue

    def parse(self, message: SSEMessage) -> StreamEvent | None:
        """Build a StreamEvent, or log and return None for malformed input."""
        body = parse_envelope(message.data)
        if body is None:
            self._malformed += 1
            self._log.error("invalid_event_body", raw=message.data[:200])
            return None

        kind = body["kind"]
        if kind in self._ephemeral_kinds:
            return StreamEvent(sequence_id=0, kind=kind, payload=body)

        sequence_id = parse_sequence_id(message.id)
        if sequence_id is None:
            self._malformed += 1
            self._log.warning("event_missing_sequence_id", kind=kind, event_id=message.id)
            return None

        if kind not in GAME_KINDS:
            self._log.debug("unknown_event_kind", kind=kind, sequence_id=sequence_id)
        return StreamEvent(sequence_id=sequence_id, kind=kind, payload=body)

    async def dispatch(self, message: SSEMessage) -> StreamEvent | None:
        event = self.parse(message)
        if event is not None:
            self._log.debug("event_received", sequence_id=event.sequence_id, kind=event.kind)
            self._msg_counts[event.kind] = self._msg_counts.get(event.kind, 0) + 1
            await self._queue.enqueue(event)

        now = time.monotonic()
        if now - self._last_stats_time >= self._stats_interval:
            self._log_stats()
            self._last_stats_time = now
        return event

    __call__ = dispatch

    def get_counts(self) -> dict[str, int]:
        counts = dict(self._msg_counts)
        counts["malformed"] = self._malformed
        return counts

    def _log_stats(self) -> None:
        self._log.info(
            "stream_stats",
            total_messages=sum(self._msg_counts.values()),
            by_kind=dict(self._msg_counts),
            malformed=self._malformed,
            queue_size=self._queue.size,
            last_processed_id=self._queue.last_processed_id,
        )
        self._msg_counts.clear()
        self._malformed = 0
