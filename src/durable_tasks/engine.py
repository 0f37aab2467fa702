"""The task engine: instance creation and the execution loop.

The loop resolves the handler for the current state, runs it against a
fresh `DataCarrier`, flushes the carrier and checkpoints the instance through
the storage adapter before moving on. A crash therefore loses at most the
step that was in flight; every earlier transition is already persisted.

Suspension is not a paused call stack. A wait handler that finds nothing to
do leaves the instance `waiting` with a `wake_at`, the loop returns, and a
later `wake_up` (usually from a scheduler sweep) starts a brand-new run from
the persisted state.

Error policy: every error raised while running a task is recorded on the
instance (`status=failed` plus the exception fields), checkpointed, and then
re-raised to the caller, whichever path started the run.
"""

from __future__ import annotations

import logging
import threading
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from pydantic import TypeAdapter

from durable_tasks.carrier import DataCarrier
from durable_tasks.config import EngineSettings
from durable_tasks.definition import TaskDefinition, TaskRegistry, as_timedelta, default_registry
from durable_tasks.errors import InvalidState, Timeout, UnknownTaskType
from durable_tasks.executors.base import ExecutorAdapter
from durable_tasks.instance import TaskInstance, TaskStatus, utc_now
from durable_tasks.storage.base import StorageAdapter

logger = logging.getLogger(__name__)

TaskType = TaskDefinition | str

_JSON_VALUE: TypeAdapter[Any] = TypeAdapter(Any)


class Engine:
    """Drives task instances through their state machines."""

    def __init__(
        self,
        storage: StorageAdapter,
        executor: ExecutorAdapter,
        registry: TaskRegistry | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self.storage = storage
        self.executor = executor
        self.registry = registry or default_registry
        self.settings = settings or EngineSettings()
        self._foreground: set[str] = set()
        self._lock = threading.Lock()
        executor.attach(self)

    # Definitions and timing

    def definition_for(self, task_or_type: TaskInstance | TaskType) -> TaskDefinition:
        if isinstance(task_or_type, TaskInstance):
            return self.registry.get(task_or_type.type)
        if isinstance(task_or_type, TaskDefinition):
            registered = self.registry.get(task_or_type.name)
            if registered is not task_or_type:
                raise UnknownTaskType(f"{task_or_type.name} is not registered with this engine")
            return registered
        return self.registry.get(task_or_type)

    def background_delay_for(self, definition: TaskDefinition) -> timedelta:
        if definition.background_delay is not None:
            return definition.background_delay
        return self.settings.background_delay

    def execution_timeout_for(self, definition: TaskDefinition) -> timedelta:
        if definition.execution_timeout is not None:
            return definition.execution_timeout
        return self.settings.execution_timeout

    def deletion_delay_for(self, definition: TaskDefinition) -> timedelta:
        if definition.deletion_delay is not None:
            return definition.deletion_delay
        return self.settings.deletion_delay

    # Creation

    def new_instance(
        self,
        task_type: TaskType,
        *,
        current_state: str | None = None,
        status: TaskStatus = TaskStatus.ACTIVE,
        parent_task_id: str | None = None,
        wake_at: datetime | None = None,
        timeout_at: datetime | None = None,
        **attributes: Any,
    ) -> TaskInstance:
        """Construct (but neither persist nor run) an instance.

        Raises:
            InvalidState: `current_state` is not a declared state.
            ValidationError: The attributes do not match the declaration.
        """
        definition = self.definition_for(task_type)
        state = current_state or definition.initial_state
        if not definition.has_state(state):
            raise InvalidState(f"{definition.name} has no state {state!r}")

        values = definition.schema.initial_values(attributes, self.storage.serialise_model_ref)
        now = utc_now()
        return TaskInstance(
            type=definition.name,
            status=status,
            current_state=state,
            attributes=values,
            parent_task_id=parent_task_id,
            created_at=now,
            updated_at=now,
            wake_at=wake_at,
            timeout_at=timeout_at or now + self.execution_timeout_for(definition),
            delete_at=now + self.deletion_delay_for(definition),
        )

    def build(
        self,
        task_type: TaskType,
        *,
        background: bool = False,
        parent_task_id: str | None = None,
        **attributes: Any,
    ) -> TaskInstance:
        """Create, persist and synchronously run an instance.

        Foreground instances (the default) fail with `CannotWaitInForeground`
        when they reach a wait handler; pass `background=True` to let the
        instance suspend instead.
        """
        task = self.new_instance(task_type, parent_task_id=parent_task_id, **attributes)
        self.storage.save(task)
        logger.debug(
            "Task created",
            extra={"task_id": task.id, "task_type": task.type, "background": background},
        )
        if background:
            return self.executor.call(task)
        with self.foreground(task):
            return self.executor.call(task)

    def call(
        self, task_type: TaskType, *, parent_task_id: str | None = None, **attributes: Any
    ) -> TaskInstance:
        """Run a new foreground instance to completion."""
        return self.build(task_type, parent_task_id=parent_task_id, **attributes)

    def start(
        self,
        task_type: TaskType,
        *,
        parent_task_id: str | None = None,
        delay: timedelta | float | None = None,
        **attributes: Any,
    ) -> TaskInstance:
        """Persist a new waiting instance and hand it to the executor."""
        wake_at = utc_now()
        if delay is not None:
            wake_at += as_timedelta(delay)
        task = self.new_instance(
            task_type,
            status=TaskStatus.WAITING,
            parent_task_id=parent_task_id,
            wake_at=wake_at,
            **attributes,
        )
        self.storage.save(task)
        logger.info(
            "Task started",
            extra={
                "task_id": task.id,
                "task_type": task.type,
                "parent_task_id": parent_task_id,
                "wake_at": wake_at.isoformat(),
            },
        )
        return self.executor.later(task)

    later = start

    # Foreground tracking

    @contextmanager
    def foreground(self, task: TaskInstance) -> Iterator[TaskInstance]:
        """Mark a persisted task as foreground for the duration of the block.

        Foreground tasks may not suspend. Anything not marked (tasks started
        with `start`, woken by a sweep or restored from storage) runs in the
        background.
        """
        if task.id is None:
            raise ValueError("Only persisted tasks can run in the foreground")
        with self._lock:
            self._foreground.add(task.id)
        try:
            yield task
        finally:
            with self._lock:
                self._foreground.discard(task.id)

    def is_foreground(self, task: TaskInstance) -> bool:
        with self._lock:
            return task.id is not None and task.id in self._foreground

    # Execution

    def run(self, task: TaskInstance) -> TaskInstance:
        """The execution loop.

        Runs handlers while the instance is active and each step moves it to
        a different state.
        """
        if task.is_terminal:
            return task

        definition = self.definition_for(task)
        previous_state: str | None = None
        try:
            while task.is_active and task.current_state != previous_state:
                previous_state = task.current_state
                handler = definition.handler_for(task.current_state)
                carrier = DataCarrier(self, definition, task)
                handler.handle(task, carrier)
                carrier.flush()

                if (
                    not handler.immediate
                    and task.is_active
                    and task.current_state == previous_state
                ):
                    self._suspend(task, definition)

                self.storage.save(task)
                logger.debug(
                    "Step finished",
                    extra={
                        "task_id": task.id,
                        "task_type": task.type,
                        "from_state": previous_state,
                        "to_state": task.current_state,
                        "status": task.status.value,
                    },
                )
        except Exception as ex:
            self._record_failure(task, ex)
            raise

        if task.is_completed:
            logger.info(
                "Task completed",
                extra={"task_id": task.id, "task_type": task.type, "state": task.current_state},
            )
        return task

    def resume(self, task: TaskInstance) -> TaskInstance:
        """Timeout check, then re-enter the loop from the current state.

        Finished instances are returned untouched.
        """
        if task.is_terminal:
            logger.debug("Ignoring wake-up of finished task", extra={"task_id": task.id})
            return task

        definition = self.definition_for(task)
        if task.timeout_expired():
            return self._handle_timeout(task, definition)

        task.status = TaskStatus.ACTIVE
        task.wake_at = None
        return self.executor.call(task)

    def wake_up(self, task: TaskInstance) -> TaskInstance:
        return self.executor.wake(task)

    def interact(self, task: TaskInstance, name: str, *args: Any, **kwargs: Any) -> TaskInstance:
        """Invoke the interaction `name`, then wake the task if it was waiting.

        Raises:
            InvalidState: The interaction is not legal in the current state,
                does not exist, or the task has already finished.
        """
        definition = self.definition_for(task)
        handler = definition.interaction_handler_for(name)
        if task.is_terminal:
            raise InvalidState(f"{task} has already finished", task)

        carrier = DataCarrier(self, definition, task)
        handler.handle(task, carrier, *args, **kwargs)
        carrier.flush()
        self.storage.save(task)
        logger.debug("Interaction handled", extra={"task_id": task.id, "interaction": name})

        if task.is_waiting:
            return self.wake_up(task)
        return task

    # Queries

    def find(self, task_id: str) -> TaskInstance | None:
        return self.storage.find(task_id)

    def sub_tasks_of(self, task: TaskInstance) -> list[TaskInstance]:
        return self.storage.sub_tasks_of(task)

    def active_sub_tasks(self, task: TaskInstance) -> list[TaskInstance]:
        return [t for t in self.sub_tasks_of(task) if t.is_active or t.is_waiting]

    def completed_sub_tasks(self, task: TaskInstance) -> list[TaskInstance]:
        return [t for t in self.sub_tasks_of(task) if t.is_completed]

    def failed_sub_tasks(self, task: TaskInstance) -> list[TaskInstance]:
        return [t for t in self.sub_tasks_of(task) if t.is_failed]

    def dump_result(self, value: Any) -> Any:
        """Convert a result value to its stored form (domain objects become references)."""
        if value is None or isinstance(value, str | int | float | bool):
            return value
        if isinstance(value, list | tuple):
            return [self.dump_result(item) for item in value]
        if isinstance(value, dict):
            return {str(key): self.dump_result(item) for key, item in value.items()}
        if hasattr(value, "id"):
            return self.storage.serialise_model_ref(value)
        return _JSON_VALUE.dump_python(value, mode="json")

    # Internals

    def _suspend(self, task: TaskInstance, definition: TaskDefinition) -> None:
        task.status = TaskStatus.WAITING
        task.wake_at = utc_now() + self.background_delay_for(definition)
        logger.info(
            "Task waiting",
            extra={
                "task_id": task.id,
                "task_type": task.type,
                "state": task.current_state,
                "wake_at": task.wake_at.isoformat(),
            },
        )

    def _handle_timeout(self, task: TaskInstance, definition: TaskDefinition) -> TaskInstance:
        logger.warning(
            "Task timed out",
            extra={"task_id": task.id, "task_type": task.type, "state": task.current_state},
        )
        if definition.on_timeout is None:
            error = Timeout("Timeout expired", task)
            self._record_failure(task, error)
            raise error

        state_before = task.current_state
        carrier = DataCarrier(self, definition, task)
        try:
            definition.on_timeout(carrier)
            carrier.flush()
        except Exception as ex:
            self._record_failure(task, ex)
            raise

        if not task.is_terminal and task.current_state != state_before:
            task.status = TaskStatus.ACTIVE
            task.wake_at = None
            return self.executor.call(task)
        self.storage.save(task)
        return task

    def _record_failure(self, task: TaskInstance, ex: BaseException) -> None:
        task.status = TaskStatus.FAILED
        task.exception_class = type(ex).__name__
        task.exception_message = str(ex)
        task.exception_backtrace = "".join(traceback.format_exception(ex))
        self.storage.save(task)
        logger.warning(
            "Task failed",
            extra={
                "task_id": task.id,
                "task_type": task.type,
                "state": task.current_state,
                "exception_class": task.exception_class,
            },
        )
