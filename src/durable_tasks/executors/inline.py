"""Inline executor: everything runs in the caller's thread."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from durable_tasks.executors.base import ExecutorAdapter

if TYPE_CHECKING:
    from durable_tasks.instance import TaskInstance

logger = logging.getLogger(__name__)


class InlineExecutor(ExecutorAdapter):
    """Synchronous executor, for tests and simple single-process apps.

    `later` does not run anything: the task is already persisted as waiting
    with its `wake_at`, so the next scheduler sweep picks it up.
    """

    def call(self, task: TaskInstance) -> TaskInstance:
        return self.engine.run(task)

    def later(self, task: TaskInstance) -> TaskInstance:
        logger.debug(
            "Task left for the next sweep",
            extra={"task_id": task.id, "task_type": task.type, "wake_at": str(task.wake_at)},
        )
        return task

    def wake(self, task: TaskInstance) -> TaskInstance:
        return self.engine.resume(task)
