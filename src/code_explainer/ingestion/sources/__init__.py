"""Document sources — one variant per origin / file type."""

from code_explainer.ingestion.sources.base import DirectorySource, DocumentSource
from code_explainer.ingestion.sources.code import CodeFileDirectorySource
from code_explainer.ingestion.sources.pdf import PdfDirectorySource

__all__ = [
    "CodeFileDirectorySource",
    "DirectorySource",
    "DocumentSource",
    "PdfDirectorySource",
]
