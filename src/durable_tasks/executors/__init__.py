"""Executor adapters."""

from durable_tasks.executors.base import ExecutorAdapter
from durable_tasks.executors.inline import InlineExecutor
from durable_tasks.executors.threaded import ThreadedExecutor

__all__ = [
    "ExecutorAdapter",
    "InlineExecutor",
    "ThreadedExecutor",
]
