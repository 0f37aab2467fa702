"""Helpers for unit-testing individual states of a task type."""

from __future__ import annotations

from typing import Any

from durable_tasks.carrier import DataCarrier
from durable_tasks.engine import Engine, TaskType
from durable_tasks.instance import TaskInstance


def run_state(engine: Engine, task_type: TaskType, state: str, **attributes: Any) -> TaskInstance:
    """Run the handler for `state` once against a fresh, unsaved instance.

    Nothing is persisted and the loop does not continue past the handler, so
    the returned instance shows exactly what that one state did:

        task = run_state(engine, ReportGenerator, "check_day", day="Saturday")
        assert task.in_state("weekend_report")
    """
    definition = engine.definition_for(task_type)
    task = engine.new_instance(definition, current_state=state, **attributes)
    carrier = DataCarrier(engine, definition, task)
    definition.handler_for(state).handle(task, carrier)
    carrier.flush()
    return task
