"""One-shot scheduler sweep.

A sweep wakes every task whose `wake_at` has passed and deletes every task
whose `delete_at` has passed. Running sweeps periodically (cron, a job
queue, a loop in a worker process) is left to the host application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from durable_tasks.definition import TaskDefinition
from durable_tasks.engine import Engine
from durable_tasks.instance import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SweepResult:
    woken: int = 0
    failed: int = 0
    deleted: int = 0


class Scheduler:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def wake_sleeping(self, task_type: str | TaskDefinition | None = None) -> tuple[int, int]:
        """Wake every sleeping task.

        A task that fails while waking is already recorded as failed on the
        instance; the sweep logs it and carries on with the rest.

        Returns:
            (woken, failed) counts.
        """
        woken = failed = 0
        for task in self.engine.storage.sleeping_tasks(task_type):
            try:
                self.engine.wake_up(task)
                woken += 1
            except Exception:
                failed += 1
                logger.exception(
                    "Failed to wake task", extra={"task_id": task.id, "task_type": task.type}
                )
        return woken, failed

    def delete_expired(
        self,
        task_type: str | TaskDefinition | None = None,
        *,
        before: datetime | None = None,
    ) -> int:
        return self.engine.storage.delete_old(task_type, before=before or utc_now())

    def run_once(self, task_type: str | TaskDefinition | None = None) -> SweepResult:
        woken, failed = self.wake_sleeping(task_type)
        deleted = self.delete_expired(task_type)
        result = SweepResult(woken=woken, failed=failed, deleted=deleted)
        logger.info(
            "Sweep finished",
            extra={"woken": result.woken, "failed": result.failed, "deleted": result.deleted},
        )
        return result
