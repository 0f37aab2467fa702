"""State handlers.

Each state of a task type is governed by exactly one handler. Handlers are
configured while the task type is being declared and frozen when the type is
registered; after that they are shared, read-only, by every instance.

Handler bodies (callbacks, conditions, callable targets) receive the
`DataCarrier` for the current invocation, never the instance itself.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from durable_tasks.errors import (
    CannotWaitInForeground,
    ConfigurationError,
    InvalidState,
    NoDecision,
)

if TYPE_CHECKING:
    from durable_tasks.carrier import DataCarrier
    from durable_tasks.instance import TaskInstance

logger = logging.getLogger(__name__)

Callback = Callable[["DataCarrier"], Any]
Condition = Callable[["DataCarrier"], Any]
Target = str | Callable[["DataCarrier"], Any]


class _NoMatch(Enum):
    NO_MATCH = "no_match"


NO_MATCH: Final = _NoMatch.NO_MATCH


class Handler(ABC):
    """Common contract for all handler kinds."""

    kind: str = "handler"
    immediate: bool = True

    def __init__(self, name: str) -> None:
        self.name = name
        self._frozen = False

    @abstractmethod
    def handle(self, task: TaskInstance, carrier: DataCarrier) -> None: ...

    def targets(self) -> tuple[str, ...]:
        """State names this handler can statically transition to."""
        return ()

    def freeze(self) -> None:
        self._frozen = True

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise ConfigurationError(f"{self.kind} {self.name!r} is already registered")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class ActionHandler(Handler):
    """Runs a callback, then moves to the declared successor state.

    A transition made inside the callback (`go_to`, `fail_with`, `complete`)
    always takes precedence over the declared successor.
    """

    kind = "action"

    def __init__(
        self, name: str, callback: Callback | None = None, next_state: str | None = None
    ) -> None:
        super().__init__(name)
        self.callback = callback
        self.next_state = next_state

    def then(self, next_state: str) -> ActionHandler:
        self._ensure_mutable()
        self.next_state = next_state
        return self

    def targets(self) -> tuple[str, ...]:
        return (self.next_state,) if self.next_state else ()

    def handle(self, task: TaskInstance, carrier: DataCarrier) -> None:
        state_before = task.current_state
        if self.callback is not None:
            self.callback(carrier)
        if self.next_state is None:
            return
        if task.is_active and task.current_state == state_before:
            carrier.go_to(self.next_state)


class DecisionHandler(Handler):
    """Chooses the next state by evaluating conditions in declaration order.

    Two styles are supported and cannot be mixed:

    * a single `condition` with `if_true` / `if_false` targets
    * several `condition(..., go_to=...)` pairs, first match wins
    """

    kind = "decision"

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._conditions: list[Condition] = []
        self._destinations: list[Target] = []
        self._labels: dict[int, str] = {}
        self._true_target: Target | None = None
        self._false_target: Target | None = None

    def condition(
        self, condition: Condition, go_to: Target | None = None, label: str | None = None
    ) -> DecisionHandler:
        self._ensure_mutable()
        self._conditions.append(condition)
        if label:
            self._labels[len(self._conditions) - 1] = label
        if go_to is not None:
            self._destinations.append(go_to)
        return self

    def go_to(self, target: Target) -> DecisionHandler:
        self._ensure_mutable()
        self._destinations.append(target)
        return self

    def if_true(self, target: Target) -> DecisionHandler:
        self._ensure_mutable()
        self._true_target = target
        return self

    def if_false(self, target: Target) -> DecisionHandler:
        self._ensure_mutable()
        self._false_target = target
        return self

    @property
    def condition_labels(self) -> dict[int, str]:
        return dict(self._labels)

    @property
    def _is_boolean(self) -> bool:
        return self._true_target is not None or self._false_target is not None

    def freeze(self) -> None:
        if not self._conditions:
            raise ConfigurationError(f"{self.kind} {self.name!r} has no conditions")
        if self._is_boolean:
            if len(self._conditions) != 1 or self._destinations:
                raise ConfigurationError(
                    f"{self.kind} {self.name!r} mixes if_true/if_false with multiple branches"
                )
        elif len(self._destinations) != len(self._conditions):
            raise ConfigurationError(
                f"{self.kind} {self.name!r} needs exactly one go_to per condition"
            )
        self._conditions = tuple(self._conditions)  # type: ignore[assignment]
        self._destinations = tuple(self._destinations)  # type: ignore[assignment]
        super().freeze()

    def targets(self) -> tuple[str, ...]:
        candidates = [*self._destinations, self._true_target, self._false_target]
        return tuple(t for t in candidates if isinstance(t, str))

    def evaluate(self, carrier: DataCarrier) -> Target | _NoMatch:
        """Return the target of the first matching branch, or `NO_MATCH`."""
        if self._is_boolean:
            target = self._true_target if self._conditions[0](carrier) else self._false_target
            return NO_MATCH if target is None else target

        for condition, destination in zip(self._conditions, self._destinations, strict=True):
            if condition(carrier):
                return destination
        return NO_MATCH

    def handle(self, task: TaskInstance, carrier: DataCarrier) -> None:
        target = self.evaluate(carrier)
        if target is NO_MATCH:
            raise NoDecision(f"No conditions matched in {self.name}", task)
        _follow(target, carrier)


class WaitHandler(DecisionHandler):
    """Like a decision, but suspends the instance when nothing matches."""

    kind = "wait"
    immediate = False

    def handle(self, task: TaskInstance, carrier: DataCarrier) -> None:
        if carrier.in_foreground:
            raise CannotWaitInForeground(f"{task.type} cannot wait in the foreground", task)
        target = self.evaluate(carrier)
        if target is NO_MATCH:
            logger.debug("Still waiting", extra={"task_id": task.id, "state": self.name})
            return
        _follow(target, carrier)


class ResultHandler(Handler):
    """Terminal state: collects results and completes the instance."""

    kind = "result"

    def __init__(
        self, name: str, callback: Callable[[DataCarrier, dict[str, Any]], Any] | None = None
    ) -> None:
        super().__init__(name)
        self.callback = callback

    def handle(self, task: TaskInstance, carrier: DataCarrier) -> None:
        results: dict[str, Any] = {}
        if self.callback is not None:
            self.callback(carrier, results)
        carrier.complete(**results)


class InteractionHandler(Handler):
    """An externally triggered operation, optionally restricted to some states."""

    kind = "interaction"

    def __init__(self, name: str, callback: Callable[..., Any]) -> None:
        super().__init__(name)
        self.callback = callback
        self.legal_states: tuple[str, ...] = ()

    def when(self, *states: str) -> InteractionHandler:
        self._ensure_mutable()
        self.legal_states = tuple(states)
        return self

    def targets(self) -> tuple[str, ...]:
        return self.legal_states

    def is_legal_in(self, state: str) -> bool:
        return not self.legal_states or state in self.legal_states

    def handle(self, task: TaskInstance, carrier: DataCarrier, *args: Any, **kwargs: Any) -> None:
        if not self.is_legal_in(task.current_state):
            raise InvalidState(
                f"{task.type}#{self.name} cannot be called in {task.current_state}", task
            )
        self.callback(carrier, *args, **kwargs)


def _follow(target: Target, carrier: DataCarrier) -> None:
    if callable(target):
        target(carrier)
    else:
        carrier.go_to(target)
