"""
Storage - durable memory stores and the store registry.
"""

from glimpse.storage.atomic import write_json_atomic, read_json
from glimpse.storage.memory_store import MemoryStore
from glimpse.storage.database_manager import DatabaseManager

__all__ = [
    "write_json_atomic",
    "read_json",
    "MemoryStore",
    "DatabaseManager",
]
