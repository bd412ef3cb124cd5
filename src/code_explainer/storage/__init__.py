"""
Storage — persistence boundary for ingested documents and chunks.

Public surface
--------------
- :class:`ChunkStoreBase` — abstract backend (subclass for other databases).
- :class:`InMemoryChunkStore` — dict-backed store for tests.
- :class:`SqliteChunkStore` — default on-disk store.
"""

from code_explainer.storage.base import ChunkStoreBase
from code_explainer.storage.memory import InMemoryChunkStore
from code_explainer.storage.sqlite import SqliteChunkStore

__all__ = [
    "ChunkStoreBase",
    "InMemoryChunkStore",
    "SqliteChunkStore",
]
