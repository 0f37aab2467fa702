"""Engine configuration.

Settings are loaded from environment variables prefixed with
`DURABLE_TASKS_` and from a local `.env` file (if present).
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from durable_tasks.logging import configure_logging


class EngineSettings(BaseSettings):
    """Settings for the task engine and its default adapters."""

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )
    json_logs: bool = Field(
        default=True,
        description="Emit structured JSON log lines instead of plain text",
    )

    background_delay_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Default wait between wake-ups of a suspended task",
    )
    execution_timeout_seconds: float = Field(
        default=86400.0,
        gt=0,
        description="Default time a task may run before it times out",
    )
    deletion_delay_seconds: float = Field(
        default=7776000.0,
        gt=0,
        description="Default time after creation at which a task may be deleted",
    )

    storage_backend: Literal["memory", "json"] = Field(
        default="memory",
        description="Storage adapter to use",
    )
    storage_path: Path = Field(
        default=Path(".tasks/tasks.json"),
        description="File used by the json storage adapter",
    )

    executor: Literal["inline", "threaded"] = Field(
        default="inline",
        description="Executor adapter to use",
    )
    max_workers: int = Field(
        default=4,
        gt=0,
        description="Worker threads for the threaded executor",
    )

    model_config = SettingsConfigDict(
        env_prefix="DURABLE_TASKS_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def background_delay(self) -> timedelta:
        return timedelta(seconds=self.background_delay_seconds)

    @property
    def execution_timeout(self) -> timedelta:
        return timedelta(seconds=self.execution_timeout_seconds)

    @property
    def deletion_delay(self) -> timedelta:
        return timedelta(seconds=self.deletion_delay_seconds)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.log_level, structured=self.json_logs)
