"""Central configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class StreamConfig(BaseSettings):
    backend_url: str = Field(default="http://localhost:3000", alias="BACKEND_URL")
    reconnect_initial_delay: float = Field(default=1.0, alias="STREAM_RECONNECT_INITIAL_DELAY")
    reconnect_max_delay: float = Field(default=300.0, alias="STREAM_RECONNECT_MAX_DELAY")
    connect_timeout: float = Field(default=10.0, alias="STREAM_CONNECT_TIMEOUT")
    stats_interval: int = Field(default=60, alias="STREAM_STATS_INTERVAL")

    def table_events_url(self, table_id: int) -> str:
        return f"{self.backend_url.rstrip('/')}/api/tables/{table_id}/events"

    @property
    def lobby_events_url(self) -> str:
        return f"{self.backend_url.rstrip('/')}/lobby/events"


class LoggingConfig(BaseSettings):
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


class AppConfig:
    """Aggregated application configuration."""

    def __init__(self) -> None:
        self.stream = StreamConfig()
        self.logging = LoggingConfig()


def get_config() -> AppConfig:
    """Create and return the application configuration."""
    return AppConfig()
