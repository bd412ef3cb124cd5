"""SQLite-backed chunk store.

Both logical collections live in one database file so that a document
replacement (old chunks out, document upserted, new chunks in) can be
committed as a single transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Sequence
from pathlib import Path

from code_explainer.models import IngestedChunk, IngestedDocument
from code_explainer.storage.base import ChunkStoreBase

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    key TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    document_version TEXT NOT NULL,
    UNIQUE (source_id, document_id)
);
CREATE TABLE IF NOT EXISTS chunks (
    key TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    text TEXT NOT NULL,
    page INTEGER,
    chunk_index INTEGER NOT NULL DEFAULT 0,
    embedding TEXT
);
CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks (source_id, document_id);
"""


class SqliteChunkStore(ChunkStoreBase):
    """Chunk store persisted in a local SQLite database.

    Parameters
    ----------
    path:
        Database file, or ``":memory:"``.
    """

    def __init__(self, path: str | Path = "vector-store.db") -> None:
        self.path = str(path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        return self._conn

    # -- documents ------------------------------------------------------------

    def list_documents(self, source_id: str) -> list[IngestedDocument]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT key, source_id, document_id, document_version FROM documents "
                "WHERE source_id = ? ORDER BY key",
                (source_id,),
            ).fetchall()
        return [
            IngestedDocument(key=key, source_id=sid, document_id=doc_id, document_version=version)
            for key, sid, doc_id, version in rows
        ]

    def replace_document(self, document: IngestedDocument, chunks: Sequence[IngestedChunk]) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                "DELETE FROM chunks WHERE source_id = ? AND document_id = ?",
                (document.source_id, document.document_id),
            )
            self.conn.execute(
                "DELETE FROM documents WHERE source_id = ? AND document_id = ?",
                (document.source_id, document.document_id),
            )
            self.conn.execute(
                "INSERT INTO documents (key, source_id, document_id, document_version) VALUES (?, ?, ?, ?)",
                (document.key, document.source_id, document.document_id, document.document_version),
            )
            self.conn.executemany(
                "INSERT INTO chunks (key, source_id, document_id, text, page, chunk_index, embedding) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        c.key,
                        c.source_id,
                        c.document_id,
                        c.text,
                        c.page,
                        c.index,
                        json.dumps(c.embedding) if c.embedding is not None else None,
                    )
                    for c in chunks
                ],
            )
        logger.debug("Stored %s (%d chunks)", document.document_id, len(chunks))

    def delete_document(self, source_id: str, document_id: str) -> int:
        with self._lock, self.conn:
            cursor = self.conn.execute(
                "DELETE FROM chunks WHERE source_id = ? AND document_id = ?",
                (source_id, document_id),
            )
            self.conn.execute(
                "DELETE FROM documents WHERE source_id = ? AND document_id = ?",
                (source_id, document_id),
            )
        return cursor.rowcount

    # -- chunks ---------------------------------------------------------------

    def list_chunks(self, source_id: str, document_id: str) -> list[IngestedChunk]:
        return self._select_chunks(
            "WHERE source_id = ? AND document_id = ?",
            (source_id, document_id),
        )

    def list_unembedded_chunks(self, source_id: str) -> list[IngestedChunk]:
        return self._select_chunks("WHERE source_id = ? AND embedding IS NULL", (source_id,))

    def set_embeddings(self, embeddings: dict[str, list[float]]) -> int:
        if not embeddings:
            return 0
        with self._lock, self.conn:
            cursor = self.conn.executemany(
                "UPDATE chunks SET embedding = ? WHERE key = ?",
                [(json.dumps(list(vector)), key) for key, vector in embeddings.items()],
            )
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # -- internals ------------------------------------------------------------

    def _select_chunks(self, where: str, params: tuple[str, ...]) -> list[IngestedChunk]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT key, source_id, document_id, text, page, chunk_index, embedding "
                f"FROM chunks {where} ORDER BY rowid",
                params,
            ).fetchall()
        return [
            IngestedChunk(
                key=key,
                source_id=sid,
                document_id=doc_id,
                text=text,
                page=page,
                index=index,
                embedding=json.loads(embedding) if embedding is not None else None,
            )
            for key, sid, doc_id, text, page, index, embedding in rows
        ]
