"""Durable Tasks.

A durable state-machine task engine:
- task types declared once with `TaskBuilder` (actions, decisions, waits,
  results, interactions)
- an execution loop that checkpoints every transition
- pluggable storage and executor adapters
"""

__version__ = "0.1.0"

from durable_tasks.carrier import DataCarrier
from durable_tasks.config import EngineSettings
from durable_tasks.definition import TaskBuilder, TaskDefinition, TaskRegistry, default_registry
from durable_tasks.engine import Engine
from durable_tasks.errors import (
    CannotWaitInForeground,
    ConfigurationError,
    Failure,
    InvalidState,
    MissingInputs,
    NoDecision,
    TaskError,
    Timeout,
    UnknownTaskType,
    ValidationError,
)
from durable_tasks.executors import ExecutorAdapter, InlineExecutor, ThreadedExecutor
from durable_tasks.factory import AdapterFactory, create_engine
from durable_tasks.instance import TaskInstance, TaskStatus
from durable_tasks.scheduler import Scheduler, SweepResult
from durable_tasks.storage import JsonFileStorage, MemoryStorage, StorageAdapter

__all__ = [
    "__version__",
    "AdapterFactory",
    "CannotWaitInForeground",
    "ConfigurationError",
    "DataCarrier",
    "Engine",
    "EngineSettings",
    "ExecutorAdapter",
    "Failure",
    "InlineExecutor",
    "InvalidState",
    "JsonFileStorage",
    "MemoryStorage",
    "MissingInputs",
    "NoDecision",
    "Scheduler",
    "StorageAdapter",
    "SweepResult",
    "TaskBuilder",
    "TaskDefinition",
    "TaskError",
    "TaskInstance",
    "TaskRegistry",
    "TaskStatus",
    "ThreadedExecutor",
    "Timeout",
    "UnknownTaskType",
    "ValidationError",
    "create_engine",
    "default_registry",
]
