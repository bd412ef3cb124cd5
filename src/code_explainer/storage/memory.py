"""In-memory implementation of the chunk-store abstraction."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from code_explainer.models import IngestedChunk, IngestedDocument
from code_explainer.storage.base import ChunkStoreBase


class InMemoryChunkStore(ChunkStoreBase):
    """Dict-backed store for tests and one-off runs.

    ``writes`` counts mutating calls so callers can assert that an
    unchanged pass touched nothing.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._documents: dict[tuple[str, str], IngestedDocument] = {}
        self._chunks: dict[str, IngestedChunk] = {}
        self.writes = 0

    def list_documents(self, source_id: str) -> list[IngestedDocument]:
        with self._lock:
            return [d.model_copy() for (sid, _), d in self._documents.items() if sid == source_id]

    def replace_document(self, document: IngestedDocument, chunks: Sequence[IngestedChunk]) -> None:
        with self._lock:
            self.writes += 1
            self._drop_chunks(document.source_id, document.document_id)
            self._documents[(document.source_id, document.document_id)] = document.model_copy()
            for chunk in chunks:
                self._chunks[chunk.key] = chunk.model_copy()

    def delete_document(self, source_id: str, document_id: str) -> int:
        with self._lock:
            self.writes += 1
            self._documents.pop((source_id, document_id), None)
            return self._drop_chunks(source_id, document_id)

    def list_chunks(self, source_id: str, document_id: str) -> list[IngestedChunk]:
        with self._lock:
            return [
                c.model_copy()
                for c in self._chunks.values()
                if c.source_id == source_id and c.document_id == document_id
            ]

    def list_unembedded_chunks(self, source_id: str) -> list[IngestedChunk]:
        with self._lock:
            return [c.model_copy() for c in self._chunks.values() if c.source_id == source_id and c.embedding is None]

    def set_embeddings(self, embeddings: dict[str, list[float]]) -> int:
        with self._lock:
            self.writes += 1
            updated = 0
            for key, vector in embeddings.items():
                chunk = self._chunks.get(key)
                if chunk is not None:
                    chunk.embedding = list(vector)
                    updated += 1
            return updated

    def _drop_chunks(self, source_id: str, document_id: str) -> int:
        stale = [
            key
            for key, c in self._chunks.items()
            if c.source_id == source_id and c.document_id == document_id
        ]
        for key in stale:
            del self._chunks[key]
        return len(stale)
