"""Storage adapters."""

from durable_tasks.storage.base import StorageAdapter
from durable_tasks.storage.json_file import JsonFileStorage
from durable_tasks.storage.memory import MemoryStorage

__all__ = [
    "JsonFileStorage",
    "MemoryStorage",
    "StorageAdapter",
]
