"""In-memory storage adapter (testing/dev and single-process apps)."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from durable_tasks.instance import TaskInstance, utc_now
from durable_tasks.storage.base import (
    StorageAdapter,
    is_expired,
    is_sleeping,
    of_type,
    type_name_of,
)

if TYPE_CHECKING:
    from durable_tasks.definition import TaskDefinition

logger = logging.getLogger(__name__)


class MemoryStorage(StorageAdapter):
    """Snapshot table guarded by a single lock.

    Snapshots are stored rather than live instances, so callers can never
    mutate stored state without going through `save`.
    """

    def __init__(self) -> None:
        self._store: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, task: TaskInstance) -> TaskInstance:
        with self._lock:
            if task.id is None:
                task.id = str(uuid.uuid4())
            task.updated_at = utc_now()
            self._store[task.id] = task.to_snapshot()
            return task

    def find(self, task_id: str) -> TaskInstance | None:
        with self._lock:
            data = self._store.get(task_id)
            return None if data is None else TaskInstance.from_snapshot(copy.deepcopy(data))

    def sleeping_tasks(
        self, task_type: str | TaskDefinition | None = None
    ) -> list[TaskInstance]:
        with self._lock:
            now = utc_now()
            tasks = of_type(self._restore_all(), type_name_of(task_type))
            return [task for task in tasks if is_sleeping(task, now)]

    def sub_tasks_of(self, task: TaskInstance) -> list[TaskInstance]:
        with self._lock:
            if task.id is None:
                return []
            return [t for t in self._restore_all() if t.parent_task_id == task.id]

    def delete_old(
        self, task_type: str | TaskDefinition | None = None, *, before: datetime
    ) -> int:
        with self._lock:
            tasks = of_type(self._restore_all(), type_name_of(task_type))
            expired = [task.id for task in tasks if is_expired(task, before)]
            for task_id in expired:
                del self._store[task_id]
        if expired:
            logger.info("Deleted expired tasks", extra={"count": len(expired)})
        return len(expired)

    def _restore_all(self) -> list[TaskInstance]:
        return [TaskInstance.from_snapshot(copy.deepcopy(data)) for data in self._store.values()]
