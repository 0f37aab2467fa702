"""Storage adapter contract.

A storage adapter is one of the two points where the engine leaves its own
process: every checkpoint and every query goes through it. Adapters persist
full `TaskInstance` snapshots and always hand back fresh instances.
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from durable_tasks.instance import TaskInstance, TaskStatus

if TYPE_CHECKING:
    from durable_tasks.definition import TaskDefinition


def qualified_name(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


def resolve_qualified_name(name: str) -> Any:
    module_name, _, qualname = name.partition(":")
    obj: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        obj = getattr(obj, part)
    return obj


def type_name_of(task_type: str | TaskDefinition | None) -> str | None:
    if task_type is None or isinstance(task_type, str):
        return task_type
    return task_type.name


class StorageAdapter(ABC):
    """Base interface for storage adapters."""

    @abstractmethod
    def save(self, task: TaskInstance) -> TaskInstance:
        """Persist a full snapshot, assigning an id if the task has none.

        Also sets `updated_at` to now.
        """

    @abstractmethod
    def find(self, task_id: str) -> TaskInstance | None: ...

    @abstractmethod
    def sleeping_tasks(
        self, task_type: str | TaskDefinition | None = None
    ) -> list[TaskInstance]:
        """Waiting tasks whose `wake_at` has passed, optionally of one type."""

    @abstractmethod
    def sub_tasks_of(self, task: TaskInstance) -> list[TaskInstance]: ...

    @abstractmethod
    def delete_old(
        self, task_type: str | TaskDefinition | None = None, *, before: datetime
    ) -> int:
        """Delete tasks whose `delete_at` is at or before `before`.

        Returns:
            Number of tasks deleted.
        """

    def serialise_model_ref(self, model: Any) -> dict[str, Any]:
        """Convert a domain object into a portable `{id, type}` reference.

        Works for any object with an `id` attribute.
        """
        return {"id": model.id, "type": qualified_name(type(model))}

    def deserialise_model_ref(self, ref: dict[str, Any], type_name: str) -> Any:
        """Load the domain object behind a reference.

        The default implementation imports the class named by `type_name` and
        calls its `find(id)` classmethod. Override for other lookup schemes.
        """
        model_class = resolve_qualified_name(type_name)
        finder = getattr(model_class, "find", None)
        if finder is None:
            raise TypeError(f"{type_name} has no find() to load model references with")
        return finder(ref["id"])


# Predicates shared by the snapshot-based adapters.


def is_sleeping(task: TaskInstance, now: datetime) -> bool:
    return task.status == TaskStatus.WAITING and task.wake_at is not None and task.wake_at <= now


def is_expired(task: TaskInstance, before: datetime) -> bool:
    return task.delete_at is not None and task.delete_at <= before


def of_type(tasks: Iterable[TaskInstance], type_name: str | None) -> list[TaskInstance]:
    return [task for task in tasks if type_name is None or task.type == type_name]
