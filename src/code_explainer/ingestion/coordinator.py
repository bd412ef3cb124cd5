"""Ingestion coordinator — reconciles a chunk store with its sources.

For each source the coordinator:

1. loads the documents recorded for that source,
2. asks the source which documents are new/changed and which are gone,
3. deletes gone documents (cascading to their chunks),
4. re-chunks changed documents and replaces them atomically,
5. embeds exactly the chunks written in step 4,
6. back-fills embeddings for chunks a previous pass left unembedded.

Usage::

    from code_explainer.ingestion import DataIngestor, PdfDirectorySource
    from code_explainer.storage import SqliteChunkStore

    ingestor = DataIngestor(SqliteChunkStore("vector-store.db"), get_embedder())
    summary = ingestor.ingest(PdfDirectorySource("docs/"))
    print(summary)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from code_explainer.errors import (
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    IngestionInProgressError,
    SourceUnreadableError,
)
from code_explainer.ingestion.embedder import Embedder
from code_explainer.ingestion.sources.base import DocumentSource
from code_explainer.models import IngestedChunk, IngestedDocument, IngestionSummary
from code_explainer.storage.base import ChunkStoreBase

logger = logging.getLogger(__name__)

_source_locks: dict[str, threading.Lock] = {}
_source_locks_guard = threading.Lock()


def _lock_for(source_id: str) -> threading.Lock:
    with _source_locks_guard:
        return _source_locks.setdefault(source_id, threading.Lock())


class DataIngestor:
    """Drives incremental ingestion of :class:`DocumentSource` objects.

    Parameters
    ----------
    store:
        Persistence backend for documents and chunks.
    embedder:
        Embedding service applied to newly written chunks.
    embed_backfill:
        Re-embed persisted chunks that still lack an embedding at the
        end of every pass.
    deadline_seconds:
        Optional wall-clock budget per pass. Once exceeded, remaining
        documents are left for the next pass; a document that has
        started is always finished.
    """

    def __init__(
        self,
        store: ChunkStoreBase,
        embedder: Embedder,
        *,
        embed_backfill: bool = True,
        deadline_seconds: float | None = None,
    ) -> None:
        if deadline_seconds is not None and deadline_seconds <= 0:
            raise ConfigurationError(f"deadline_seconds must be positive, got {deadline_seconds}")
        self._store = store
        self._embedder = embedder
        self.embed_backfill = embed_backfill
        self.deadline_seconds = deadline_seconds

    # -- public API -----------------------------------------------------------

    def ingest(self, source: DocumentSource) -> IngestionSummary:
        """Run one ingestion pass for *source*.

        Raises
        ------
        IngestionInProgressError
            If another pass for the same ``source_id`` is running.
        """
        lock = _lock_for(source.source_id)
        if not lock.acquire(blocking=False):
            raise IngestionInProgressError(f"Ingestion already running for {source.source_id}")
        try:
            return self._ingest(source)
        finally:
            lock.release()

    def ingest_all(self, sources: Sequence[DocumentSource], *, max_workers: int = 4) -> list[IngestionSummary]:
        """Ingest several independent sources in parallel.

        Summaries are returned in the order of *sources*.
        """
        ids = [s.source_id for s in sources]
        duplicates = sorted({sid for sid in ids if ids.count(sid) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate sources: {', '.join(duplicates)}")
        if not sources:
            return []

        with ThreadPoolExecutor(max_workers=min(max_workers, len(sources))) as pool:
            return list(pool.map(self.ingest, sources))

    # -- internals ------------------------------------------------------------

    def _ingest(self, source: DocumentSource) -> IngestionSummary:
        summary = IngestionSummary(source_id=source.source_id)
        started = time.monotonic()
        logger.info("Ingesting %s", source.source_id)

        try:
            existing = self._store.list_documents(source.source_id)
        except Exception as exc:
            logger.exception("Cannot read stored documents of %s", source.source_id)
            summary.record_failure(None, "storage", exc)
            return self._finish(summary)

        try:
            changed = source.list_changed_or_new_documents(existing)
            deleted = source.list_deleted_documents(existing)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("Cannot enumerate %s: %s", source.source_id, exc)
            summary.record_failure(None, "enumeration", exc)
            return self._finish(summary)

        for exc in source.take_scan_failures():
            summary.record_failure(exc.document_id, "unreadable", exc)

        if not changed and not deleted:
            logger.info("%s is up to date (%d documents)", source.source_id, len(existing))
        else:
            logger.info(
                "%s: %d new or modified, %d deleted",
                source.source_id,
                len(changed),
                len(deleted),
            )

        existing_ids = {d.document_id for d in existing}
        attempted: set[str] = set()

        for document in deleted:
            if self._expired(started):
                summary.skipped_timeout += 1
                continue
            try:
                removed = self._store.delete_document(source.source_id, document.document_id)
            except Exception as exc:
                logger.exception("Cannot delete %s", document.document_id)
                summary.record_failure(document.document_id, "storage", exc)
                continue
            summary.deleted += 1
            logger.info("Removed %s (%d chunks)", document.document_id, removed)

        for document in changed:
            if self._expired(started):
                summary.skipped_timeout += 1
                continue
            chunks = self._replace(source, document, summary)
            if chunks is None:
                continue
            if document.document_id in existing_ids:
                summary.updated += 1
            else:
                summary.added += 1
            attempted.update(c.key for c in chunks)
            self._embed(chunks, document.document_id, summary)

        if summary.skipped_timeout:
            logger.warning(
                "%s: deadline of %.1fs reached, %d documents left for the next pass",
                source.source_id,
                self.deadline_seconds,
                summary.skipped_timeout,
            )
        elif self.embed_backfill:
            self._backfill(source.source_id, attempted, summary)

        return self._finish(summary)

    def _replace(
        self,
        source: DocumentSource,
        document: IngestedDocument,
        summary: IngestionSummary,
    ) -> list[IngestedChunk] | None:
        """Extract *document* and swap it into the store.

        Extraction happens before any write so that a failure leaves the
        previously stored version untouched and the document is retried
        on the next pass.
        """
        try:
            drafts = source.extract_chunks(document)
        except SourceUnreadableError as exc:
            logger.warning("Skipping unreadable document %s: %s", document.document_id, exc)
            summary.record_failure(document.document_id, "unreadable", exc)
            return None
        except ExtractionError as exc:
            logger.warning("Skipping document %s, extraction failed: %s", document.document_id, exc)
            summary.record_failure(document.document_id, "extraction", exc)
            return None
        except OSError as exc:
            logger.warning("Skipping document %s: %s", document.document_id, exc)
            summary.record_failure(document.document_id, "unreadable", exc)
            return None
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.exception("Skipping document %s, extraction failed", document.document_id)
            summary.record_failure(document.document_id, "extraction", exc)
            return None

        chunks = [
            IngestedChunk(
                source_id=document.source_id,
                document_id=document.document_id,
                text=draft.text,
                page=draft.page,
                index=draft.index,
            )
            for draft in drafts
        ]
        try:
            self._store.replace_document(document, chunks)
        except Exception as exc:
            logger.exception("Cannot store %s", document.document_id)
            summary.record_failure(document.document_id, "storage", exc)
            return None
        summary.chunks_written += len(chunks)
        logger.info("Stored %s version %s (%d chunks)", document.document_id, document.document_version, len(chunks))
        return chunks

    def _embed(self, chunks: Sequence[IngestedChunk], document_id: str, summary: IngestionSummary) -> None:
        if not chunks:
            return
        try:
            vectors = self._embedder.embed_many([c.text for c in chunks])
        except EmbeddingError as exc:
            logger.warning("Chunks of %s stored without embeddings: %s", document_id, exc)
            summary.record_failure(document_id, "embedding", exc)
            return
        except Exception as exc:
            logger.exception("Chunks of %s stored without embeddings", document_id)
            summary.record_failure(document_id, "embedding", exc)
            return
        try:
            summary.chunks_embedded += self._store.set_embeddings(
                {chunk.key: vector for chunk, vector in zip(chunks, vectors)}
            )
        except Exception as exc:
            logger.exception("Cannot store embeddings of %s", document_id)
            summary.record_failure(document_id, "storage", exc)

    def _backfill(self, source_id: str, attempted: set[str], summary: IngestionSummary) -> None:
        pending: dict[str, list[IngestedChunk]] = defaultdict(list)
        try:
            unembedded = self._store.list_unembedded_chunks(source_id)
        except Exception as exc:
            logger.exception("Cannot list unembedded chunks of %s", source_id)
            summary.record_failure(None, "storage", exc)
            return
        for chunk in unembedded:
            if chunk.key not in attempted:
                pending[chunk.document_id].append(chunk)
        if not pending:
            return

        logger.info("Back-filling embeddings for %d documents of %s", len(pending), source_id)
        for document_id, chunks in pending.items():
            self._embed(chunks, document_id, summary)

    def _expired(self, started: float) -> bool:
        return self.deadline_seconds is not None and time.monotonic() - started > self.deadline_seconds

    @staticmethod
    def _finish(summary: IngestionSummary) -> IngestionSummary:
        summary.finished_at = datetime.now(timezone.utc)
        log = logger.warning if summary.failures else logger.info
        log("Ingestion complete: %s", summary)
        return summary
