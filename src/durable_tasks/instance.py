"""Persisted task instances.

A `TaskInstance` is the full snapshot of one running workflow. Storage
adapters persist `to_snapshot()` and rebuild instances with `from_snapshot()`;
nothing else about a running task lives outside this record.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TaskStatus(str, Enum):
    ACTIVE = "active"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


class TaskInstance(BaseModel):
    """State model for one execution of a task type."""

    model_config = ConfigDict(validate_assignment=True)

    id: str | None = None
    type: str
    status: TaskStatus = TaskStatus.ACTIVE
    current_state: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    parent_task_id: str | None = None

    exception_class: str | None = None
    exception_message: str | None = None
    exception_backtrace: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    wake_at: datetime | None = None
    timeout_at: datetime | None = None
    delete_at: datetime | None = None

    results: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.ACTIVE

    @property
    def is_waiting(self) -> bool:
        return self.status == TaskStatus.WAITING

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == TaskStatus.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def in_state(self, state: str) -> bool:
        return self.current_state == state

    def timeout_expired(self, now: datetime | None = None) -> bool:
        if self.timeout_at is None:
            return False
        return self.timeout_at < (now or utc_now())

    def to_snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> TaskInstance:
        return cls.model_validate(data)

    def __str__(self) -> str:
        return f"{self.type}#{self.id or 'new'} ({self.status.value} in {self.current_state})"
