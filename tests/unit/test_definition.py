"""Unit tests for the task builder and registry."""

from __future__ import annotations

from datetime import timedelta

import pytest

from durable_tasks.definition import TaskBuilder, TaskDefinition, TaskRegistry
from durable_tasks.errors import ConfigurationError, InvalidState, UnknownTaskType
from durable_tasks.handlers import ActionHandler


def _simple(name: str = "simple") -> TaskBuilder:
    builder = TaskBuilder(name)
    builder.starts_with("work")
    builder.action("work", lambda task: None, then="done")
    builder.result("done")
    return builder


def test_build_produces_read_only_definition() -> None:
    definition = _simple().build()

    assert definition.name == "simple"
    assert definition.initial_state == "work"
    assert isinstance(definition.handler_for("work"), ActionHandler)
    with pytest.raises(TypeError):
        definition.state_handlers["extra"] = ActionHandler("extra")  # type: ignore[index]


def test_build_is_idempotent() -> None:
    builder = _simple()

    assert builder.build() is builder.build()


def test_builder_is_closed_after_build() -> None:
    builder = _simple()
    builder.build()

    with pytest.raises(ConfigurationError, match="already built"):
        builder.attribute("late")


def test_decorated_action_is_returned_unchanged() -> None:
    builder = TaskBuilder("decorated")

    @builder.action("work")
    def work(task) -> None:
        pass

    assert callable(work)
    assert not isinstance(work, ActionHandler)


def test_positional_go_to_binds_to_last_action() -> None:
    builder = TaskBuilder("positional")
    builder.starts_with("first")
    builder.action("first", lambda task: None)
    builder.go_to("second")
    builder.action("second", lambda task: None)
    builder.go_to("done")
    builder.result("done")

    definition = builder.build()

    assert definition.handler_for("first").targets() == ("second",)
    assert definition.handler_for("second").targets() == ("done",)


def test_positional_go_to_without_action_is_rejected() -> None:
    builder = TaskBuilder("orphan")

    with pytest.raises(ConfigurationError, match="no action declared"):
        builder.go_to("done")


def test_initial_state_is_required() -> None:
    builder = TaskBuilder("headless")
    builder.result("done")

    with pytest.raises(ConfigurationError, match="no initial state"):
        builder.build()


def test_initial_state_must_be_declared() -> None:
    builder = TaskBuilder("missing_start")
    builder.starts_with("begin")
    builder.result("done")

    with pytest.raises(ConfigurationError, match="not declared"):
        builder.build()


def test_targets_must_be_declared() -> None:
    builder = TaskBuilder("dangling")
    builder.starts_with("work")
    builder.action("work", lambda task: None, then="nowhere")

    with pytest.raises(ConfigurationError, match="nowhere"):
        builder.build()


def test_interaction_states_must_be_declared() -> None:
    builder = _simple("guarded")
    builder.interaction("poke", lambda task: None).when("sleeping")

    with pytest.raises(ConfigurationError, match="sleeping"):
        builder.build()


def test_duplicate_states_are_rejected() -> None:
    builder = TaskBuilder("twice")
    builder.result("done")

    with pytest.raises(ConfigurationError, match="declared twice"):
        builder.result("done")


def test_unknown_state_lookup() -> None:
    definition = _simple().build()

    with pytest.raises(InvalidState):
        definition.handler_for("elsewhere")
    assert not definition.has_state("elsewhere")


def test_timings_accept_seconds_or_timedelta() -> None:
    builder = _simple()
    builder.delay(30).timeout(timedelta(hours=1)).delete_after(86400)

    definition = builder.build()

    assert definition.background_delay == timedelta(seconds=30)
    assert definition.execution_timeout == timedelta(hours=1)
    assert definition.deletion_delay == timedelta(days=1)


def test_timings_default_to_none() -> None:
    definition = _simple().build()

    assert definition.background_delay is None
    assert definition.execution_timeout is None
    assert definition.deletion_delay is None
    assert definition.on_timeout is None


def test_diagram_describes_the_state_machine() -> None:
    builder = _simple("diagrammed")
    builder.interaction("poke", lambda task: None).when("work")

    diagram = builder.build().diagram()

    assert diagram == {
        "name": "diagrammed",
        "initial_state": "work",
        "states": {
            "work": {"kind": "action", "targets": ["done"]},
            "done": {"kind": "result", "targets": []},
        },
        "interactions": {"poke": {"legal_states": ["work"]}},
    }


def test_registry_lookup(registry: TaskRegistry) -> None:
    definition = _simple().register(registry)

    assert registry.get("simple") is definition
    assert "simple" in registry
    assert registry.names() == ["simple"]


def test_registering_twice_is_allowed_for_the_same_definition(registry: TaskRegistry) -> None:
    builder = _simple()

    assert builder.register(registry) is builder.register(registry)


def test_registry_rejects_a_different_definition_with_the_same_name(
    registry: TaskRegistry,
) -> None:
    _simple().register(registry)

    with pytest.raises(ConfigurationError, match="already registered"):
        _simple().register(registry)


def test_registry_rejects_unknown_names(registry: TaskRegistry) -> None:
    with pytest.raises(UnknownTaskType):
        registry.get("nothing")


def test_definitions_are_frozen() -> None:
    definition: TaskDefinition = _simple().build()

    with pytest.raises(AttributeError):
        definition.name = "renamed"  # type: ignore[misc]


def test_attribute_declarations_chain() -> None:
    builder = _simple("chained")

    returned = builder.attribute("title").model("owner").models("watchers")
    definition = builder.build()

    assert returned is builder
    assert definition.schema.names == ("title", "owner", "watchers")
    assert definition.handler_for("done").kind == "result"
