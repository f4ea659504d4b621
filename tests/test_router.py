"""Unit tests for message parsing and kind-based dispatch."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from tablestream.ingestion.router import EventDispatcher, parse_envelope, parse_sequence_id
from tablestream.ingestion.sse import SSEMessage
from tablestream.models import StreamEvent

from conftest import chat_msg, game_msg


@pytest.fixture
def mock_queue() -> MagicMock:
    queue = MagicMock()
    queue.enqueue = AsyncMock()
    queue.size = 0
    queue.last_processed_id = 0
    return queue


@pytest.fixture
def dispatcher(mock_queue: MagicMock) -> EventDispatcher:
    return EventDispatcher(mock_queue, table_id=7)


class TestParseHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("12", 12), (" 3 ", 3), ("0", None), ("-4", None), ("", None), ("1.5", None), ("abc", None)],
    )
    def test_parse_sequence_id(self, raw: str, expected: int | None) -> None:
        assert parse_sequence_id(raw) == expected

    def test_parse_envelope(self) -> None:
        assert parse_envelope('{"kind":"hand_end","pot":40}') == {"kind": "hand_end", "pot": 40}
        assert parse_envelope("not json") is None
        assert parse_envelope("[1, 2]") is None
        assert parse_envelope('{"pot":40}') is None
        assert parse_envelope('{"kind":5}') is None


class TestDispatch:
    async def test_game_event_enqueued_with_sequence_id(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock
    ) -> None:
        event = await dispatcher.dispatch(game_msg(42, kind="hand_start", handId=3))
        assert event == StreamEvent(
            sequence_id=42, kind="hand_start", payload={"kind": "hand_start", "handId": 3}
        )
        mock_queue.enqueue.assert_awaited_once_with(event)

    async def test_chat_bypasses_id_requirement(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock
    ) -> None:
        event = await dispatcher.dispatch(chat_msg())
        assert event is not None
        assert event.sequence_id == 0
        assert event.kind == "chat_message"
        mock_queue.enqueue.assert_awaited_once()

    async def test_chat_ignores_stale_transport_id(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock
    ) -> None:
        event = await dispatcher.dispatch(chat_msg(event_id="88"))
        assert event is not None
        assert event.sequence_id == 0

    @pytest.mark.parametrize("bad_id", ["", "0", "-1", "abc"])
    async def test_game_event_without_valid_id_dropped(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock, bad_id: str
    ) -> None:
        assert await dispatcher.dispatch(game_msg(bad_id)) is None
        mock_queue.enqueue.assert_not_called()
        assert dispatcher.get_counts()["malformed"] == 1

    async def test_unparseable_body_dropped(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock
    ) -> None:
        assert await dispatcher.dispatch(SSEMessage(data="{oops", id="5")) is None
        mock_queue.enqueue.assert_not_called()

    async def test_malformed_message_does_not_affect_others(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock
    ) -> None:
        await dispatcher.dispatch(game_msg(1))
        await dispatcher.dispatch(SSEMessage(data="garbage", id="2"))
        await dispatcher.dispatch(game_msg(3))
        ids = [call.args[0].sequence_id for call in mock_queue.enqueue.await_args_list]
        assert ids == [1, 3]

    async def test_unknown_kind_still_ordered(
        self, dispatcher: EventDispatcher, mock_queue: MagicMock
    ) -> None:
        event = await dispatcher.dispatch(game_msg(9, kind="seat_swap"))
        assert event is not None
        assert event.sequence_id == 9
        mock_queue.enqueue.assert_awaited_once()

    async def test_counts_by_kind(self, dispatcher: EventDispatcher) -> None:
        await dispatcher.dispatch(game_msg(1, kind="hand_start"))
        await dispatcher.dispatch(game_msg(2))
        await dispatcher.dispatch(game_msg(3))
        await dispatcher.dispatch(chat_msg())
        assert dispatcher.get_counts() == {
            "hand_start": 1,
            "hand_action": 2,
            "chat_message": 1,
            "malformed": 0,
        }

    async def test_stats_logged_and_reset(self, mock_queue: MagicMock) -> None:
        dispatcher = EventDispatcher(mock_queue, stats_interval=0)
        await dispatcher.dispatch(game_msg(1))
        assert dispatcher.get_counts() == {"malformed": 0}
