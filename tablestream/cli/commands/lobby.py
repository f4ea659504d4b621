"""tablestream lobby -- Follow lobby chat."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from tablestream.cli.display import console, chat_line, format_connection_state
from tablestream.models import ChatMessage


async def _lobby_async(backend_url: str | None) -> None:
    from tablestream.config import get_config
    from tablestream.ingestion.lobby_stream import LobbyEventStream

    config = get_config()
    if backend_url:
        config.stream.backend_url = backend_url

    def on_chat_message(chat: ChatMessage) -> None:
        console.print(chat_line(chat))

    console.print(f"[header]Lobby:[/header] {config.stream.lobby_events_url}")
    console.print()

    async with LobbyEventStream(on_chat_message, config=config.stream) as lobby:
        last_state = None
        while True:
            await asyncio.sleep(1)
            if lobby.connection_state is not last_state:
                last_state = lobby.connection_state
                console.print(format_connection_state(last_state))


def lobby(
    backend_url: Optional[str] = typer.Option(
        None, "--backend-url", help="Override BACKEND_URL"
    ),
) -> None:
    """Follow the lobby chat stream."""
    try:
        asyncio.run(_lobby_async(backend_url))
    except KeyboardInterrupt:
        console.print("\n[muted]Lobby stopped.[/muted]")
