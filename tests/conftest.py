"""Shared test fixtures for the tablestream test suite."""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Any

import orjson
import pytest

from tablestream.config import StreamConfig
from tablestream.ingestion.sse import SSEMessage

# Session item: block until the connection task is cancelled.
HOLD = object()


async def settle(rounds: int = 20) -> None:
    """Let scheduled tasks run without advancing time."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def game_msg(sequence_id: int | str, kind: str = "hand_action", **payload: Any) -> SSEMessage:
    body = {"kind": kind, **payload}
    return SSEMessage(data=orjson.dumps(body).decode(), id=str(sequence_id))


def chat_body(message: str = "nice hand", message_id: str = "chat_1733140000000_1") -> dict:
    return {
        "kind": "chat_message",
        "tableId": 7,
        "message": message,
        "sender": {
            "walletAddress": "0x71C7656EC7ab88b098defB751B7401B5f6d8976F",
            "twitterHandle": "river_rat",
            "twitterAvatarUrl": None,
        },
        "timestamp": "2025-12-02T18:40:00.000Z",
        "messageId": message_id,
    }


def chat_msg(message: str = "nice hand", event_id: str = "") -> SSEMessage:
    return SSEMessage(data=orjson.dumps(chat_body(message)).decode(), id=event_id)


class FakeTransport:
    """Scripted push channel.

    Each call to ``stream()`` consumes one session. A session is either an
    exception (raised on open) or a list of items: SSEMessages are yielded,
    exceptions are raised mid-stream, ``HOLD`` blocks forever and an
    ``asyncio.Event`` blocks until set. When a list runs out the server has
    closed the stream. With no sessions left the stream holds open.
    """

    def __init__(self, *sessions: Any) -> None:
        self.sessions: deque[Any] = deque(sessions)
        self.opened: list[dict[str, Any]] = []
        self.active = 0
        self.max_active = 0
        self.closed = 0

    def add_session(self, session: Any) -> None:
        self.sessions.append(session)

    @property
    def last_params(self) -> dict[str, Any]:
        return self.opened[-1]["params"]

    @asynccontextmanager
    async def stream(self, url: str, params: dict[str, Any]):
        self.opened.append({"url": url, "params": dict(params)})
        session = self.sessions.popleft() if self.sessions else [HOLD]
        if isinstance(session, BaseException):
            raise session

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            yield self._iterate(session)
        finally:
            self.active -= 1
            self.closed += 1

    async def _iterate(self, items: list[Any]):
        for item in items:
            if item is HOLD:
                await asyncio.Event().wait()
            elif isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item

    async def close(self) -> None:
        pass


class FakeTimer:
    def __init__(self, delay: float, callback: Any, args: tuple) -> None:
        self.delay = delay
        self.callback = callback
        self.args = args
        self.fired = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def fire(self) -> None:
        assert not self._cancelled, "timer was cancelled"
        self.fired = True
        self.callback(*self.args)


class ManualTimers:
    """Stands in for ``loop.call_later`` so reconnect delays can be fired by hand."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Any, *args: Any, context: Any = None) -> FakeTimer:
        timer = FakeTimer(delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.fired and not t.cancelled()]

    def fire_next(self) -> None:
        pending = self.pending
        assert pending, "no pending timer"
        pending[0].fire()


@pytest.fixture
async def timers(monkeypatch: pytest.MonkeyPatch) -> ManualTimers:
    manual = ManualTimers()
    monkeypatch.setattr(asyncio.get_running_loop(), "call_later", manual.call_later)
    return manual


@pytest.fixture
def stream_config() -> StreamConfig:
    return StreamConfig(
        BACKEND_URL="http://poker.test",
        STREAM_RECONNECT_INITIAL_DELAY=1.0,
        STREAM_RECONNECT_MAX_DELAY=300.0,
    )
