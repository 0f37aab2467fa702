"""Task type declaration.

A task type is described once, at import time, with a `TaskBuilder`:

    greeter = TaskBuilder("greeter")
    greeter.attribute("name", str, required=True)
    greeter.attribute("salutation", str, default="Hello")
    greeter.attribute("greeting", str)
    greeter.starts_with("generate_greeting")

    @greeter.action("generate_greeting")
    def generate_greeting(task):
        task.greeting = f"{task.salutation} {task.name}!"
    greeter.go_to("done")

    greeter.result("done")
    Greeter = greeter.register()

`register()` checks that the declaration is well formed, freezes every
handler and stores the resulting immutable `TaskDefinition` in a registry
keyed by type name.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from durable_tasks.attributes import AttributeSchema, AttributeSpec, ModelSpec, Spec
from durable_tasks.errors import ConfigurationError, InvalidState, UnknownTaskType
from durable_tasks.handlers import (
    ActionHandler,
    Callback,
    DecisionHandler,
    Handler,
    InteractionHandler,
    ResultHandler,
    WaitHandler,
)

if TYPE_CHECKING:
    from durable_tasks.carrier import DataCarrier

logger = logging.getLogger(__name__)

Duration = timedelta | int | float
HandlerT = TypeVar("HandlerT", bound=Handler)


def as_timedelta(value: Duration) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """Immutable configuration of one task type.

    Durations left as None fall back to the engine's settings.
    """

    name: str
    initial_state: str
    state_handlers: Mapping[str, Handler]
    interaction_handlers: Mapping[str, InteractionHandler] = field(
        default_factory=lambda: MappingProxyType({})
    )
    schema: AttributeSchema = field(default_factory=AttributeSchema)
    background_delay: timedelta | None = None
    execution_timeout: timedelta | None = None
    deletion_delay: timedelta | None = None
    on_timeout: Callback | None = None

    def handler_for(self, state: str) -> Handler:
        handler = self.state_handlers.get(state)
        if handler is None:
            raise InvalidState(f"No handler for state: {state} in {self.name}")
        return handler

    def has_state(self, state: str) -> bool:
        return state in self.state_handlers

    def interaction_handler_for(self, name: str) -> InteractionHandler:
        handler = self.interaction_handlers.get(name)
        if handler is None:
            raise InvalidState(f"{self.name} has no interaction {name!r}")
        return handler

    def diagram(self) -> dict[str, Any]:
        """Read-only shape of the state machine, for exporters."""
        return {
            "name": self.name,
            "initial_state": self.initial_state,
            "states": {
                state: {"kind": handler.kind, "targets": list(handler.targets())}
                for state, handler in self.state_handlers.items()
            },
            "interactions": {
                name: {"legal_states": list(handler.legal_states)}
                for name, handler in self.interaction_handlers.items()
            },
        }


class TaskBuilder:
    """One-shot builder for a `TaskDefinition`."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._initial_state: str | None = None
        self._specs: list[Spec] = []
        self._state_handlers: dict[str, Handler] = {}
        self._interaction_handlers: dict[str, InteractionHandler] = {}
        self._last_action: ActionHandler | None = None
        self._background_delay: timedelta | None = None
        self._execution_timeout: timedelta | None = None
        self._deletion_delay: timedelta | None = None
        self._on_timeout: Callback | None = None
        self._built: TaskDefinition | None = None

    # Attributes

    def attribute(
        self, name: str, type_: Any = str, *, default: Any = None, required: bool = False
    ) -> TaskBuilder:
        self._ensure_open()
        self._specs.append(AttributeSpec(name, type_, default=default, required=required))
        return self

    def model(
        self, name: str, model_class: type | None = None, *, required: bool = False
    ) -> TaskBuilder:
        self._ensure_open()
        self._specs.append(ModelSpec(name, model_class, many=False, required=required))
        return self

    def models(self, name: str, model_class: type | None = None) -> TaskBuilder:
        self._ensure_open()
        self._specs.append(ModelSpec(name, model_class, many=True))
        return self

    # States

    def starts_with(self, state: str) -> TaskBuilder:
        self._ensure_open()
        self._initial_state = state
        return self

    def action(self, name: str, callback: Callback | None = None, *, then: str | None = None):
        """Declare an action.

        With a callback, registers it and returns the `ActionHandler` (so
        `.then(state)` can be chained). Without one, returns a decorator that
        registers the decorated function and hands it back unchanged.
        """
        if callback is not None:
            return self._add_action(name, callback, then)

        def decorator(fn: Callback) -> Callback:
            self._add_action(name, fn, then)
            return fn

        return decorator

    def go_to(self, state: str) -> TaskBuilder:
        """Bind `state` as the successor of the most recently declared action."""
        self._ensure_open()
        if self._last_action is None:
            raise ConfigurationError(f"{self.name}: go_to({state!r}) with no action declared yet")
        self._last_action.then(state)
        return self

    def decision(self, name: str) -> DecisionHandler:
        return self._add_state(DecisionHandler(name))

    def wait_until(self, name: str) -> WaitHandler:
        return self._add_state(WaitHandler(name))

    def result(
        self, name: str, callback: Callable[[DataCarrier, dict[str, Any]], Any] | None = None
    ) -> ResultHandler:
        return self._add_state(ResultHandler(name, callback))

    def interaction(self, name: str, callback: Callable[..., Any] | None = None):
        """Declare an interaction; usable directly or as a decorator.

        Both forms return the `InteractionHandler` so `.when(...)` can follow.
        """
        if callback is not None:
            return self._add_interaction(name, callback)

        def decorator(fn: Callable[..., Any]) -> InteractionHandler:
            return self._add_interaction(name, fn)

        return decorator

    # Timing

    def delay(self, value: Duration) -> TaskBuilder:
        self._ensure_open()
        self._background_delay = as_timedelta(value)
        return self

    def timeout(self, value: Duration) -> TaskBuilder:
        self._ensure_open()
        self._execution_timeout = as_timedelta(value)
        return self

    def delete_after(self, value: Duration) -> TaskBuilder:
        self._ensure_open()
        self._deletion_delay = as_timedelta(value)
        return self

    def on_timeout(self, callback: Callback) -> Callback:
        self._ensure_open()
        self._on_timeout = callback
        return callback

    # Finalisation

    def build(self) -> TaskDefinition:
        if self._built is not None:
            return self._built

        if self._initial_state is None:
            raise ConfigurationError(f"{self.name}: no initial state declared (starts_with)")
        schema = AttributeSchema(self._specs)
        declared = set(self._state_handlers)
        if self._initial_state not in declared:
            raise ConfigurationError(
                f"{self.name}: initial state {self._initial_state!r} is not declared"
            )
        for handler in [*self._state_handlers.values(), *self._interaction_handlers.values()]:
            unknown = [t for t in handler.targets() if t not in declared]
            if unknown:
                raise ConfigurationError(
                    f"{self.name}: {handler.kind} {handler.name!r} refers to "
                    f"undeclared states {', '.join(unknown)}"
                )
            handler.freeze()

        self._built = TaskDefinition(
            name=self.name,
            initial_state=self._initial_state,
            state_handlers=MappingProxyType(dict(self._state_handlers)),
            interaction_handlers=MappingProxyType(dict(self._interaction_handlers)),
            schema=schema,
            background_delay=self._background_delay,
            execution_timeout=self._execution_timeout,
            deletion_delay=self._deletion_delay,
            on_timeout=self._on_timeout,
        )
        return self._built

    def register(self, registry: TaskRegistry | None = None) -> TaskDefinition:
        definition = self.build()
        (registry or default_registry).register(definition)
        return definition

    def _ensure_open(self) -> None:
        if self._built is not None:
            raise ConfigurationError(f"{self.name} is already built")

    def _add_state(self, handler: HandlerT) -> HandlerT:
        self._ensure_open()
        if handler.name in self._state_handlers:
            raise ConfigurationError(f"{self.name}: state {handler.name!r} is declared twice")
        self._state_handlers[handler.name] = handler
        return handler

    def _add_action(self, name: str, callback: Callback, then: str | None) -> ActionHandler:
        handler = self._add_state(ActionHandler(name, callback, then))
        self._last_action = handler
        return handler

    def _add_interaction(self, name: str, callback: Callable[..., Any]) -> InteractionHandler:
        self._ensure_open()
        if name in self._interaction_handlers:
            raise ConfigurationError(f"{self.name}: interaction {name!r} is declared twice")
        handler = InteractionHandler(name, callback)
        self._interaction_handlers[name] = handler
        return handler


class TaskRegistry:
    """Process-wide lookup of task definitions by type name."""

    def __init__(self) -> None:
        self._definitions: dict[str, TaskDefinition] = {}
        self._lock = threading.Lock()

    def register(self, definition: TaskDefinition) -> TaskDefinition:
        with self._lock:
            existing = self._definitions.get(definition.name)
            if existing is not None and existing is not definition:
                raise ConfigurationError(f"Task type {definition.name!r} is already registered")
            self._definitions[definition.name] = definition
        logger.debug("Task type registered", extra={"task_type": definition.name})
        return definition

    def get(self, name: str) -> TaskDefinition:
        definition = self._definitions.get(name)
        if definition is None:
            raise UnknownTaskType(f"Unknown task type: {name}")
        return definition

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def names(self) -> list[str]:
        return sorted(self._definitions)


default_registry = TaskRegistry()
