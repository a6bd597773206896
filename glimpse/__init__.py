"""Glimpse - searchable memory of screen activity."""

from glimpse.storage.memory_store import MemoryStore
from glimpse.storage.database_manager import DatabaseManager
from glimpse.indexing.embedding_worker import EmbeddingWorker
from glimpse.retrieval.retriever import Retriever

__version__ = "1.0.0"

__all__ = ["MemoryStore", "DatabaseManager", "EmbeddingWorker", "Retriever"]
