"""tablestream CLI entry point.

Usage:
    python -m tablestream.cli.main [COMMAND] [OPTIONS]

Or via the installed console script:
    tablestream [COMMAND] [OPTIONS]
"""

from __future__ import annotations

import logging
import sys

import structlog
import typer

from tablestream.cli.commands import lobby, tail
from tablestream.config import LoggingConfig

app = typer.Typer(
    name="tablestream",
    help="tablestream -- ordered poker table event stream client",
    no_args_is_help=True,
    add_completion=False,
    pretty_exceptions_enable=True,
)


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog. Logs go to stderr so they do not mix with CLI output."""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.log_level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


@app.callback()
def main() -> None:
    configure_logging(LoggingConfig())


# Register sub-commands from each module.
app.command(name="tail", help="Follow a table's ordered event stream")(tail.tail)
app.command(name="lobby", help="Follow lobby chat")(lobby.lobby)


if __name__ == "__main__":
    app()
