"""Domain models for ingested documents, chunks and pass summaries."""

from __future__ import annotations

import os
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

_key_lock = threading.Lock()
_last_ms = 0
_counter = 0


def new_key() -> str:
    """Return a time-ordered UUIDv7 string.

    Keys generated within one process are strictly increasing: when two
    keys fall in the same millisecond the 12-bit ``rand_a`` field is used
    as a counter, and the timestamp is bumped if that counter overflows.
    """
    global _last_ms, _counter

    with _key_lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms > _last_ms:
            _last_ms = now_ms
            _counter = 0
        else:
            _counter += 1
            if _counter > 0xFFF:
                _last_ms += 1
                _counter = 0
        ms, seq = _last_ms, _counter

    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76  # version
    value |= seq << 64
    value |= 0b10 << 62  # RFC 4122 variant
    value |= rand_b
    return str(uuid.UUID(int=value))


class IngestedDocument(BaseModel):
    """A source document as recorded in the chunk store.

    Attributes
    ----------
    key:
        Globally unique, time-ordered identifier assigned when a source
        reports the document.
    source_id:
        ``"<SourceKind>:<origin path>"`` of the producing source.
    document_id:
        Source-relative path (``/`` separated); unique within ``source_id``.
    document_version:
        Opaque fingerprint used only for equality-based change detection.
    """

    key: str = Field(default_factory=new_key)
    source_id: str
    document_id: str
    document_version: str


class ChunkDraft(BaseModel):
    """Chunk text produced by a source before identity is assigned."""

    text: str
    page: int | None = None
    index: int = 0


class IngestedChunk(BaseModel):
    """A retrievable chunk of a document.

    ``embedding`` is ``None`` until the embedding step has succeeded for
    this chunk; that state is what the backfill step looks for. ``index``
    is the position of the chunk within its page (or file).
    """

    key: str = Field(default_factory=new_key)
    source_id: str
    document_id: str
    text: str
    page: int | None = None
    index: int = 0
    embedding: list[float] | None = None

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None


FailureKind = Literal["unreadable", "extraction", "embedding", "storage", "enumeration"]


class IngestionFailure(BaseModel):
    """A per-document failure recorded during a pass."""

    document_id: str | None
    kind: FailureKind
    message: str


class IngestionSummary(BaseModel):
    """Outcome of one :meth:`DataIngestor.ingest` pass over a single source."""

    source_id: str
    added: int = 0
    updated: int = 0
    deleted: int = 0
    chunks_written: int = 0
    chunks_embedded: int = 0
    skipped_timeout: int = 0
    failures: list[IngestionFailure] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def record_failure(self, document_id: str | None, kind: FailureKind, exc: BaseException) -> None:
        self.failures.append(IngestionFailure(document_id=document_id, kind=kind, message=str(exc)))

    def __str__(self) -> str:  # noqa: D105
        return (
            f"{self.source_id}: added {self.added}, updated {self.updated}, "
            f"deleted {self.deleted}, chunks {self.chunks_written}, "
            f"embedded {self.chunks_embedded}, failures {len(self.failures)}"
        )
