"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from durable_tasks.config import EngineSettings
from durable_tasks.definition import TaskBuilder, TaskDefinition, TaskRegistry
from durable_tasks.engine import Engine
from durable_tasks.executors import InlineExecutor
from durable_tasks.storage import JsonFileStorage, MemoryStorage, StorageAdapter


@pytest.fixture
def settings() -> EngineSettings:
    """Provide settings that ignore the environment's .env file."""
    return EngineSettings(_env_file=None)


@pytest.fixture
def registry() -> TaskRegistry:
    """Provide an empty registry so task type names never clash between tests."""
    return TaskRegistry()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def json_storage(tmp_path: Path) -> JsonFileStorage:
    return JsonFileStorage(tmp_path / "tasks" / "tasks.json")


@pytest.fixture(params=["memory", "json"])
def storage(request: pytest.FixtureRequest, tmp_path: Path) -> StorageAdapter:
    """Provide each storage backend in turn."""
    if request.param == "memory":
        return MemoryStorage()
    return JsonFileStorage(tmp_path / "tasks.json")


@pytest.fixture
def engine(
    storage: StorageAdapter, registry: TaskRegistry, settings: EngineSettings
) -> Engine:
    """Provide an inline engine over each storage backend."""
    return Engine(storage, InlineExecutor(), registry=registry, settings=settings)


@pytest.fixture
def greeter(registry: TaskRegistry) -> TaskDefinition:
    """A single action followed by a result."""
    builder = TaskBuilder("greeter")
    builder.attribute("name", str, required=True)
    builder.attribute("salutation", str, default="Hello")
    builder.attribute("greeting", str)
    builder.starts_with("generate_greeting")

    @builder.action("generate_greeting")
    def generate_greeting(task) -> None:
        task.greeting = f"{task.salutation} {task.name}!"

    builder.go_to("done")
    builder.result("done", lambda task, results: results.update(greeting=task.greeting))
    return builder.register(registry)
