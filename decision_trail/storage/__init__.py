"""Storage adapters for execution documents."""

from decision_trail.config.settings import Settings
from decision_trail.storage.base import StorageAdapter, list_recent_executions, matches
from decision_trail.storage.files import JsonFileStorage
from decision_trail.storage.memory import InMemoryStorage
from decision_trail.storage.sql import SQLStorage


def create_storage(settings: Settings) -> StorageAdapter:
    """Build the adapter selected by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return InMemoryStorage()
    if settings.storage_backend == "files":
        return JsonFileStorage(settings.executions_dir)
    return SQLStorage(settings.database_url)


__all__ = [
    "StorageAdapter",
    "InMemoryStorage",
    "SQLStorage",
    "JsonFileStorage",
    "create_storage",
    "list_recent_executions",
    "matches",
]
