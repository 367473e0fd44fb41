"""Storage subsystem -- whole-document task stores."""

from polyplex.storage.base import TaskStore, heal
from polyplex.storage.json_store import JsonFileStore
from polyplex.storage.memory_store import MemoryStore

__all__ = [
    "JsonFileStore",
    "MemoryStore",
    "TaskStore",
    "heal",
]
