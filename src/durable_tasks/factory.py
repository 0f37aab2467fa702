"""Factory for creating adapters and engines from settings."""

import logging

from durable_tasks.config import EngineSettings
from durable_tasks.definition import TaskRegistry
from durable_tasks.engine import Engine
from durable_tasks.executors import ExecutorAdapter, InlineExecutor, ThreadedExecutor
from durable_tasks.storage import JsonFileStorage, MemoryStorage, StorageAdapter

logger = logging.getLogger(__name__)


class AdapterFactory:
    """Factory for creating storage and executor adapter instances."""

    @staticmethod
    def create_storage(settings: EngineSettings) -> StorageAdapter:
        """Create a storage adapter based on configuration.

        Args:
            settings: Engine settings naming the backend.

        Returns:
            Configured storage adapter.

        Raises:
            ValueError: If the backend is not supported.
        """
        logger.info(f"Creating storage adapter: {settings.storage_backend}")

        if settings.storage_backend == "memory":
            return MemoryStorage()
        elif settings.storage_backend == "json":
            return JsonFileStorage(settings.storage_path)
        else:
            raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")

    @staticmethod
    def create_executor(settings: EngineSettings) -> ExecutorAdapter:
        """Create an executor adapter based on configuration.

        Raises:
            ValueError: If the executor is not supported.
        """
        logger.info(f"Creating executor adapter: {settings.executor}")

        if settings.executor == "inline":
            return InlineExecutor()
        elif settings.executor == "threaded":
            return ThreadedExecutor(max_workers=settings.max_workers)
        else:
            raise ValueError(f"Unsupported executor: {settings.executor}")


def create_engine(
    settings: EngineSettings | None = None, registry: TaskRegistry | None = None
) -> Engine:
    """Build an engine wired to the adapters named in `settings`."""
    settings = settings or EngineSettings()
    return Engine(
        storage=AdapterFactory.create_storage(settings),
        executor=AdapterFactory.create_executor(settings),
        registry=registry,
        settings=settings,
    )
