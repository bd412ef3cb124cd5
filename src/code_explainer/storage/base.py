"""Abstract base class for chunk-store backends.

The store holds two logical collections — documents and chunks — keyed
by ``key`` and queryable by ``source_id`` / ``document_id``. Adding a
backend only requires subclassing :class:`ChunkStoreBase` and
implementing the abstract methods; the coordinator is backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from code_explainer.models import IngestedChunk, IngestedDocument


class ChunkStoreBase(ABC):
    """Backend-agnostic persistence for documents and their chunks."""

    # -- documents ------------------------------------------------------------

    @abstractmethod
    def list_documents(self, source_id: str) -> list[IngestedDocument]:
        """Return every document recorded for *source_id*."""
        ...

    @abstractmethod
    def replace_document(self, document: IngestedDocument, chunks: Sequence[IngestedChunk]) -> None:
        """Atomically make *document* and *chunks* the current version.

        Any previously recorded document with the same
        ``(source_id, document_id)`` is removed together with all of its
        chunks. Implementations must never leave a partial chunk set
        visible for the new version.
        """
        ...

    @abstractmethod
    def delete_document(self, source_id: str, document_id: str) -> int:
        """Delete a document and cascade to its chunks.

        Returns
        -------
        int
            Number of chunks removed.
        """
        ...

    # -- chunks ---------------------------------------------------------------

    @abstractmethod
    def list_chunks(self, source_id: str, document_id: str) -> list[IngestedChunk]:
        """Return the chunks of one document, in insertion order."""
        ...

    @abstractmethod
    def list_unembedded_chunks(self, source_id: str) -> list[IngestedChunk]:
        """Return chunks of *source_id* whose embedding is still missing."""
        ...

    @abstractmethod
    def set_embeddings(self, embeddings: dict[str, list[float]]) -> int:
        """Attach embeddings keyed by chunk ``key``.

        Keys that no longer exist (e.g. superseded meanwhile) are ignored.

        Returns
        -------
        int
            Number of chunks updated.
        """
        ...

    # -- optional overrides ---------------------------------------------------

    def close(self) -> None:
        """Release backend resources. No-op by default."""

    def __enter__(self) -> ChunkStoreBase:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
