"""Unit tests for configuration and the adapter factory."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from durable_tasks.config import EngineSettings
from durable_tasks.executors import InlineExecutor, ThreadedExecutor
from durable_tasks.factory import AdapterFactory, create_engine
from durable_tasks.storage import JsonFileStorage, MemoryStorage


def test_settings_defaults(settings: EngineSettings) -> None:
    """Test engine settings default values."""
    assert settings.log_level == "INFO"
    assert settings.json_logs is True
    assert settings.background_delay == timedelta(minutes=1)
    assert settings.execution_timeout == timedelta(days=1)
    assert settings.deletion_delay == timedelta(days=90)
    assert settings.storage_backend == "memory"
    assert settings.executor == "inline"
    assert settings.max_workers == 4


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test settings are read from DURABLE_TASKS_* variables."""
    monkeypatch.setenv("DURABLE_TASKS_STORAGE_BACKEND", "json")
    monkeypatch.setenv("DURABLE_TASKS_STORAGE_PATH", str(tmp_path / "t.json"))
    monkeypatch.setenv("DURABLE_TASKS_BACKGROUND_DELAY_SECONDS", "5")
    monkeypatch.setenv("DURABLE_TASKS_EXECUTOR", "threaded")

    settings = EngineSettings(_env_file=None)

    assert settings.storage_backend == "json"
    assert settings.storage_path == tmp_path / "t.json"
    assert settings.background_delay == timedelta(seconds=5)
    assert settings.executor == "threaded"


def test_settings_reject_unknown_backend() -> None:
    with pytest.raises(ValueError):
        EngineSettings(_env_file=None, storage_backend="redis")


def test_factory_creates_storage(settings: EngineSettings, tmp_path: Path) -> None:
    assert isinstance(AdapterFactory.create_storage(settings), MemoryStorage)

    json_settings = EngineSettings(
        _env_file=None, storage_backend="json", storage_path=tmp_path / "t.json"
    )
    storage = AdapterFactory.create_storage(json_settings)
    assert isinstance(storage, JsonFileStorage)
    assert storage.path == tmp_path / "t.json"


def test_factory_creates_executor(settings: EngineSettings) -> None:
    assert isinstance(AdapterFactory.create_executor(settings), InlineExecutor)

    threaded = AdapterFactory.create_executor(
        EngineSettings(_env_file=None, executor="threaded", max_workers=1)
    )
    assert isinstance(threaded, ThreadedExecutor)
    threaded.shutdown()


def test_factory_rejects_unsupported_values(settings: EngineSettings) -> None:
    with pytest.raises(ValueError, match="Unsupported storage backend"):
        AdapterFactory.create_storage(settings.model_copy(update={"storage_backend": "redis"}))
    with pytest.raises(ValueError, match="Unsupported executor"):
        AdapterFactory.create_executor(settings.model_copy(update={"executor": "celery"}))


def test_create_engine_wires_adapters(settings: EngineSettings) -> None:
    engine = create_engine(settings)

    assert isinstance(engine.storage, MemoryStorage)
    assert isinstance(engine.executor, InlineExecutor)
    assert engine.executor.engine is engine
    assert engine.settings is settings
