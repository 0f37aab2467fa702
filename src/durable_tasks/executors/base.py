"""Executor adapter contract.

The executor decides *where* and *when* the execution loop runs. The engine
attaches itself on construction; executors call back into
`Engine.run` (synchronous execution) and `Engine.resume` (timeout check,
then execution) to do the actual work.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from durable_tasks.engine import Engine
    from durable_tasks.instance import TaskInstance


class ExecutorAdapter(ABC):
    """Base interface for executor adapters."""

    def __init__(self) -> None:
        self._engine: Engine | None = None

    def attach(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to an engine")
        return self._engine

    @abstractmethod
    def call(self, task: TaskInstance) -> TaskInstance:
        """Run the task until it completes, fails or suspends."""

    @abstractmethod
    def later(self, task: TaskInstance) -> TaskInstance:
        """Schedule the task for background execution and return immediately."""

    @abstractmethod
    def wake(self, task: TaskInstance) -> TaskInstance:
        """Resume a waiting task (timeout check first, then execution)."""
