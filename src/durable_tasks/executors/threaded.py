"""Thread-pool executor for background execution inside one process."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from typing import TYPE_CHECKING

from durable_tasks.executors.base import ExecutorAdapter
from durable_tasks.instance import utc_now

if TYPE_CHECKING:
    from durable_tasks.instance import TaskInstance

logger = logging.getLogger(__name__)


class ThreadedExecutor(ExecutorAdapter):
    """Runs `later` and `wake` on a worker pool.

    At most one background execution per task id is in flight at any time;
    a submission for an id that is already running is skipped. Workers
    reload the task from storage before resuming it, so they always work on
    the last checkpoint. `call` runs in the caller's thread.
    """

    def __init__(self, max_workers: int = 4) -> None:
        super().__init__()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="durable-tasks")
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._futures: set[Future[None]] = set()

    def call(self, task: TaskInstance) -> TaskInstance:
        return self.engine.run(task)

    def later(self, task: TaskInstance) -> TaskInstance:
        if task.wake_at is not None and task.wake_at > utc_now():
            logger.debug(
                "Delayed task left for the next sweep",
                extra={"task_id": task.id, "wake_at": str(task.wake_at)},
            )
            return task
        self._submit(task)
        return task

    def wake(self, task: TaskInstance) -> TaskInstance:
        self._submit(task)
        return task

    def drain(self, timeout: float | None = None) -> None:
        """Block until every submitted execution has finished."""
        with self._lock:
            pending = list(self._futures)
        wait_for_futures(pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def _submit(self, task: TaskInstance) -> None:
        if task.id is None:
            raise ValueError("Only persisted tasks can run in the background")
        with self._lock:
            if task.id in self._in_flight:
                logger.info("Task already running; skipping", extra={"task_id": task.id})
                return
            self._in_flight.add(task.id)
            future = self._pool.submit(self._run, task.id)
            self._futures.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future[None]) -> None:
        with self._lock:
            self._futures.discard(future)

    def _run(self, task_id: str) -> None:
        try:
            task = self.engine.find(task_id)
            if task is None:
                logger.warning("Task vanished before it could run", extra={"task_id": task_id})
                return
            self.engine.resume(task)
        except Exception:
            # Failure is already recorded on the task.
            logger.exception("Background task failed", extra={"task_id": task_id})
        finally:
            with self._lock:
                self._in_flight.discard(task_id)
