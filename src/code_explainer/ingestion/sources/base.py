"""Abstract document sources.

A source enumerates documents from an external origin, fingerprints
them, and extracts chunk drafts. Sources are read-only: they compute
diffs against the records they are given and never persist anything.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from pathlib import Path

from code_explainer.errors import SourceUnreadableError
from code_explainer.models import ChunkDraft, IngestedDocument

logger = logging.getLogger(__name__)


class DocumentSource(ABC):
    """Capability interface every document source implements."""

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Stable identifier of this source instance (kind + origin)."""
        ...

    @abstractmethod
    def identify(self, path: str | Path) -> str:
        """Map an absolute origin path to its stable document id."""
        ...

    @abstractmethod
    def list_changed_or_new_documents(
        self, existing_documents: Sequence[IngestedDocument]
    ) -> list[IngestedDocument]:
        """Return descriptors for documents that are new or whose fingerprint changed."""
        ...

    @abstractmethod
    def list_deleted_documents(
        self, existing_documents: Sequence[IngestedDocument]
    ) -> list[IngestedDocument]:
        """Return recorded documents that no longer exist at the origin."""
        ...

    @abstractmethod
    def extract_chunks(self, document: IngestedDocument) -> list[ChunkDraft]:
        """Read *document* and split it into chunk drafts."""
        ...

    def take_scan_failures(self) -> list[SourceUnreadableError]:
        """Return and clear per-document errors hit while diffing.

        Documents listed here were left out of the last
        :meth:`list_changed_or_new_documents` result.
        """
        return []


class DirectorySource(DocumentSource):
    """Source backed by a directory tree scanned recursively with a glob.

    Subclasses choose the fingerprint strategy by implementing
    :meth:`fingerprint`; the diffing logic is shared.

    Parameters
    ----------
    source_directory:
        Root directory containing source documents.
    pattern:
        Glob relative to *source_directory*, e.g. ``"**/*.pdf"``.
    """

    def __init__(self, source_directory: str | Path, pattern: str) -> None:
        self.source_directory = Path(source_directory).resolve()
        self.pattern = pattern
        self._scan_failures: list[SourceUnreadableError] = []

    @property
    def source_id(self) -> str:
        return f"{type(self).__name__}:{self.source_directory}"

    def identify(self, path: str | Path) -> str:
        """Return *path* relative to the root, without following symlinks.

        Raises
        ------
        SourceUnreadableError
            If *path* does not lie under :attr:`source_directory`.
        """
        path = Path(path)
        for candidate in (path, path.parent.resolve() / path.name):
            try:
                return candidate.relative_to(self.source_directory).as_posix()
            except ValueError:
                continue
        raise SourceUnreadableError(
            f"{path} is not under {self.source_directory}",
            document_id=path.as_posix(),
        )

    def resolve(self, document_id: str) -> Path:
        """Inverse of :meth:`identify`."""
        return self.source_directory / document_id

    @abstractmethod
    def fingerprint(self, path: Path) -> str:
        """Return the current version fingerprint of the file at *path*."""
        ...

    # -- diffing --------------------------------------------------------------

    def iter_files(self) -> Iterable[Path]:
        if not self.source_directory.is_dir():
            raise SourceUnreadableError(f"Directory not found: {self.source_directory}")
        return sorted(p for p in self.source_directory.glob(self.pattern) if p.is_file())

    def list_changed_or_new_documents(
        self, existing_documents: Sequence[IngestedDocument]
    ) -> list[IngestedDocument]:
        existing_versions = {
            d.document_id: d.document_version for d in existing_documents if d.source_id == self.source_id
        }
        results: list[IngestedDocument] = []
        failures: list[SourceUnreadableError] = []
        for path in self.iter_files():
            try:
                document_id = self.identify(path)
            except SourceUnreadableError as exc:
                logger.warning("Cannot identify %s: %s", path, exc)
                failures.append(exc)
                continue
            try:
                version = self.fingerprint(path)
            except OSError as exc:
                # Left out of this pass; the next pass will see it again.
                logger.warning("Cannot fingerprint %s: %s", document_id, exc)
                failures.append(SourceUnreadableError(f"cannot fingerprint: {exc}", document_id=document_id))
                continue
            if existing_versions.get(document_id) != version:
                results.append(
                    IngestedDocument(
                        source_id=self.source_id,
                        document_id=document_id,
                        document_version=version,
                    )
                )
        self._scan_failures = failures
        return results

    def list_deleted_documents(
        self, existing_documents: Sequence[IngestedDocument]
    ) -> list[IngestedDocument]:
        current_ids: set[str] = set()
        for path in self.iter_files():
            try:
                current_ids.add(self.identify(path))
            except SourceUnreadableError:
                continue
        return [
            d
            for d in existing_documents
            if d.source_id == self.source_id and d.document_id not in current_ids
        ]

    def take_scan_failures(self) -> list[SourceUnreadableError]:
        failures, self._scan_failures = self._scan_failures, []
        return failures

    def read_bytes(self, document: IngestedDocument) -> bytes:
        path = self.resolve(document.document_id)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise SourceUnreadableError(str(exc), document_id=document.document_id) from exc
