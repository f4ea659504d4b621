"""tablestream tail <table_id> -- Follow a table's ordered event stream.

Prints every event as it is released by the ordering queue and a status
summary at a fixed interval. Resume from a known point with --last-event-id.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from tablestream.cli.display import console, event_panel, status_table
from tablestream.models import StreamEvent


# ---------------------------------------------------------------------------
# Core tail logic
# ---------------------------------------------------------------------------

async def _tail_async(
    table_id: int,
    last_event_id: int | None,
    backend_url: str | None,
    status_interval: float,
) -> None:
    from tablestream.config import get_config
    from tablestream.ingestion.table_stream import TableEventStream

    config = get_config()
    if backend_url:
        config.stream.backend_url = backend_url

    async def on_event(event: StreamEvent) -> None:
        console.print(event_panel(event))

    console.print(f"[header]Table:[/header] {table_id}")
    console.print(f"[muted]{config.stream.table_events_url(table_id)}[/muted]")
    console.print("[header]--- live tail (Ctrl+C to stop) ---[/header]")
    console.print()

    async with TableEventStream(
        table_id,
        on_event,
        last_event_id=last_event_id,
        config=config.stream,
    ) as stream:
        while True:
            await asyncio.sleep(status_interval)
            console.print(status_table(stream.status, stream.cursor))


# ---------------------------------------------------------------------------
# Main command
# ---------------------------------------------------------------------------

def tail(
    table_id: int = typer.Argument(..., help="Table id to follow"),
    last_event_id: Optional[int] = typer.Option(
        None, "--last-event-id", "-c", help="Resume after this sequence id"
    ),
    backend_url: Optional[str] = typer.Option(
        None, "--backend-url", help="Override BACKEND_URL"
    ),
    status_interval: float = typer.Option(
        30.0, "--status-interval", help="Seconds between status summaries"
    ),
) -> None:
    """Follow a table stream: print events in sequence order as they arrive."""
    try:
        asyncio.run(_tail_async(table_id, last_event_id, backend_url, status_interval))
    except KeyboardInterrupt:
        console.print("\n[muted]Tail stopped.[/muted]")
