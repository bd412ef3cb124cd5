"""Exception hierarchy for the ingestion pipeline.

Per-document errors (:class:`SourceUnreadableError`,
:class:`ExtractionError`, :class:`EmbeddingError`) are caught by the
coordinator and recorded against the offending ``document_id``.
:class:`ConfigurationError` is raised before any I/O and is fatal.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for every error raised by :mod:`code_explainer`.

    Parameters
    ----------
    message:
        Human-readable description.
    document_id:
        Identity of the document the error is attributable to, if any.
    """

    def __init__(self, message: str, *, document_id: str | None = None) -> None:
        super().__init__(message)
        self.document_id = document_id

    def __str__(self) -> str:
        base = super().__str__()
        if self.document_id:
            return f"{self.document_id}: {base}"
        return base


class ConfigurationError(IngestionError, ValueError):
    """Invalid chunking or pipeline parameters."""


class SourceUnreadableError(IngestionError):
    """A source file is missing, locked, or cannot be read."""


class ExtractionError(IngestionError):
    """A source file was read but its content could not be decoded or parsed."""


class EmbeddingError(IngestionError):
    """The external embedding call failed."""


class IngestionInProgressError(IngestionError, RuntimeError):
    """Another ingestion pass for the same source is already running."""
