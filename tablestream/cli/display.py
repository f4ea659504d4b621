"""Rich console formatting helpers for the tablestream CLI."""

from __future__ import annotations

import orjson
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from tablestream.models import ChatMessage, ConnectionState, StreamEvent, StreamStatus

# Shared theme for consistent styling across all CLI output.
TABLESTREAM_THEME = Theme(
    {
        "state.disconnected": "dim white",
        "state.connecting": "bold yellow",
        "state.connected": "bold green",
        "state.error": "bold red",
        "kind.hand": "bold cyan",
        "kind.chat": "magenta",
        "kind.other": "white",
        "header": "bold cyan",
        "muted": "dim",
    }
)

console = Console(theme=TABLESTREAM_THEME)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_connection_state(state: ConnectionState) -> Text:
    return Text(state.value.upper(), style=f"state.{state.value}")


def _kind_style(kind: str) -> str:
    if kind == "chat_message":
        return "kind.chat"
    if kind.startswith("hand_") or kind == "community_cards":
        return "kind.hand"
    return "kind.other"


def event_panel(event: StreamEvent) -> Panel:
    """Create a rich Panel for one table event."""
    formatted = orjson.dumps(event.payload, option=orjson.OPT_INDENT_2).decode()
    syntax = Syntax(formatted, "json", theme="monokai", word_wrap=True)
    seq = f"#{event.sequence_id}" if event.is_ordered else "--"
    title = Text.assemble((seq, "muted"), " ", (event.kind, _kind_style(event.kind)))
    return Panel(syntax, title=title, title_align="left", expand=False, border_style="dim")


def chat_line(chat: ChatMessage) -> Text:
    ts = chat.timestamp.strftime("%H:%M:%S")
    return Text.assemble(
        (f"[{ts}] ", "muted"),
        (f"@{chat.sender.twitter_handle}", "kind.chat"),
        ": ",
        chat.message,
    )


def status_table(status: StreamStatus, cursor: int) -> Table:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("Field", style="muted")
    table.add_column("Value")
    table.add_row("connection", format_connection_state(status.connection_state))
    table.add_row("last processed", str(status.last_processed_event_id))
    table.add_row("cursor", str(cursor))
    table.add_row("queued", str(status.queue_size))
    table.add_row("processing", "yes" if status.is_processing else "no")
    return table
