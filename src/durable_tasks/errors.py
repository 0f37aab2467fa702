"""Error kinds raised by the task engine.

Every error carries the instance it relates to (when there is one) so that
callers can inspect the failed task after catching the exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from durable_tasks.instance import TaskInstance


class TaskError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, task: TaskInstance | None = None) -> None:
        super().__init__(message)
        self.task = task


class Failure(TaskError):
    """Raised by `fail_with` inside a handler body."""


class Timeout(TaskError):
    """The execution timeout elapsed and no timeout callback was declared."""


class NoDecision(TaskError):
    """None of the conditions of a multi-branch decision matched."""


class InvalidState(TaskError):
    pass


class CannotWaitInForeground(TaskError):
    """A wait handler was reached by an instance that cannot suspend."""


class ValidationError(TaskError):
    pass


class MissingInputs(ValidationError):
    def __init__(self, missing: list[str] | tuple[str, ...], task: TaskInstance | None = None):
        self.missing = tuple(missing)
        super().__init__(f"Missing inputs: {', '.join(self.missing)}", task)


class ConfigurationError(TaskError):
    """A task type was declared incorrectly."""


class UnknownTaskType(TaskError):
    pass
