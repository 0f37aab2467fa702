"""The per-invocation view handed to handler bodies."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from durable_tasks.attributes import AttributeSpec, ModelSpec
from durable_tasks.errors import Failure, InvalidState, MissingInputs
from durable_tasks.instance import TaskStatus

if TYPE_CHECKING:
    from durable_tasks.definition import TaskDefinition
    from durable_tasks.engine import Engine, TaskType
    from durable_tasks.instance import TaskInstance


class DataCarrier:
    """Typed access to one instance's attributes plus the control operations.

    Attribute changes are made on a private copy and only reach the instance
    when `flush()` is called, which the engine does after the handler body
    returns successfully. Values read once are kept for the rest of the
    invocation, so in-place edits (`task.items.append(...)`) are flushed too.
    Control operations (`go_to`, `complete`, ...) act on the instance
    straight away.
    """

    def __init__(self, engine: Engine, definition: TaskDefinition, task: TaskInstance) -> None:
        object.__setattr__(self, "_engine", engine)
        object.__setattr__(self, "_definition", definition)
        object.__setattr__(self, "_task", task)
        object.__setattr__(self, "_values", copy.deepcopy(task.attributes))
        object.__setattr__(self, "_loaded", {})
        object.__setattr__(self, "_models", {})

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        spec = self._definition.schema.get(name)
        if spec is None:
            raise AttributeError(f"{self._definition.name} has no attribute {name!r}")
        if isinstance(spec, ModelSpec):
            return self._load_model(spec)
        if name not in self._loaded:
            self._loaded[name] = spec.load(self._values.get(name))
        return self._loaded[name]

    def __setattr__(self, name: str, value: Any) -> None:
        spec = self._definition.schema.get(name)
        if spec is None:
            raise AttributeError(f"{self._definition.name} has no attribute {name!r}")
        if isinstance(spec, ModelSpec):
            self._values[name] = spec.dump(value, self._engine.storage.serialise_model_ref)
            self._models[name] = value
        else:
            self._values[name] = spec.dump(value)
            self._loaded[name] = spec.load(self._values[name])

    @property
    def state(self) -> str:
        return self._task.current_state

    @property
    def task_id(self) -> str | None:
        return self._task.id

    @property
    def in_foreground(self) -> bool:
        return self._engine.is_foreground(self._task)

    def flush(self) -> None:
        for name, value in self._loaded.items():
            self._values[name] = self._definition.schema.get(name).dump(value)
        self._task.attributes = copy.deepcopy(self._values)

    # Control operations

    def go_to(self, state: str) -> None:
        if not self._definition.has_state(state):
            raise InvalidState(f"{self._definition.name} has no state {state!r}", self._task)
        self._task.current_state = state

    def fail_with(self, message: str) -> None:
        raise Failure(message, self._task)

    def complete(self, **results: Any) -> None:
        self._task.results = {
            key: self._engine.dump_result(value) for key, value in results.items()
        }
        self._task.status = TaskStatus.COMPLETED

    def call(self, task_type: TaskType, **attributes: Any) -> dict[str, Any]:
        """Run a child task to completion and return its results."""
        child = self._engine.call(task_type, parent_task_id=self._task.id, **attributes)
        return child.results

    def start(self, task_type: TaskType, **attributes: Any) -> TaskInstance:
        return self._engine.start(task_type, parent_task_id=self._task.id, **attributes)

    def inputs(self, *names: str) -> None:
        missing = [name for name in names if self._is_unset(name)]
        if missing:
            raise MissingInputs(missing, self._task)

    def _is_unset(self, name: str) -> bool:
        spec = self._definition.schema.get(name)
        if spec is None:
            return True
        if isinstance(spec, AttributeSpec):
            return getattr(self, name) in (None, "")
        return self._values.get(name) in (None, [])

    def _load_model(self, spec: ModelSpec) -> Any:
        if spec.name in self._models:
            return self._models[spec.name]
        raw = self._values.get(spec.name)
        storage = self._engine.storage
        if raw is None:
            value: Any = [] if spec.many else None
        elif spec.many:
            value = [storage.deserialise_model_ref(ref, ref["type"]) for ref in raw]
        else:
            value = storage.deserialise_model_ref(raw, raw["type"])
        self._models[spec.name] = value
        return value

    def __repr__(self) -> str:
        return f"<DataCarrier {self._task} {self._values!r}>"
