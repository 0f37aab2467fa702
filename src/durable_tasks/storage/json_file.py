"""JSON-file backed storage adapter.

All snapshots live in one JSON object keyed by task id. The file is read and
rewritten under a single lock on every operation, which keeps the adapter
simple and makes the persisted snapshot format directly inspectable. Writes go
to a temporary file that then replaces the store, so a crash mid-write leaves
the previous contents intact. It is meant for local, single-process use;
anything bigger should use a real database behind the same contract.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime
from pathlib import Path
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


class JsonFileStorage(StorageAdapter):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(
                "Task store is not valid JSON; treating as empty",
                extra={"path": str(self.path)},
            )
            return {}
        if not isinstance(raw, dict):
            logger.warning(
                "Task store has unexpected shape; treating as empty",
                extra={"path": str(self.path)},
            )
            return {}
        return raw

    def _save_unlocked(self, snapshots: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        tmp.write_text(
            json.dumps(snapshots, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )
        os.replace(tmp, self.path)

    def _restore_all_unlocked(self) -> list[TaskInstance]:
        return [TaskInstance.from_snapshot(data) for data in self._load_unlocked().values()]

    def save(self, task: TaskInstance) -> TaskInstance:
        with self._lock:
            snapshots = self._load_unlocked()
            if task.id is None:
                task.id = str(uuid.uuid4())
            task.updated_at = utc_now()
            snapshots[task.id] = task.to_snapshot()
            self._save_unlocked(snapshots)
            return task

    def find(self, task_id: str) -> TaskInstance | None:
        with self._lock:
            data = self._load_unlocked().get(task_id)
            return None if data is None else TaskInstance.from_snapshot(data)

    def sleeping_tasks(
        self, task_type: str | TaskDefinition | None = None
    ) -> list[TaskInstance]:
        with self._lock:
            now = utc_now()
            tasks = of_type(self._restore_all_unlocked(), type_name_of(task_type))
            return [task for task in tasks if is_sleeping(task, now)]

    def sub_tasks_of(self, task: TaskInstance) -> list[TaskInstance]:
        with self._lock:
            if task.id is None:
                return []
            return [t for t in self._restore_all_unlocked() if t.parent_task_id == task.id]

    def delete_old(
        self, task_type: str | TaskDefinition | None = None, *, before: datetime
    ) -> int:
        with self._lock:
            snapshots = self._load_unlocked()
            tasks = of_type(
                (TaskInstance.from_snapshot(data) for data in snapshots.values()),
                type_name_of(task_type),
            )
            expired = [task.id for task in tasks if is_expired(task, before)]
            for task_id in expired:
                del snapshots[task_id]
            if expired:
                self._save_unlocked(snapshots)
        if expired:
            logger.info(
                "Deleted expired tasks", extra={"count": len(expired), "path": str(self.path)}
            )
        return len(expired)
