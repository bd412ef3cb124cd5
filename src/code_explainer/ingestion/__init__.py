"""
Ingestion — incremental document loading, chunking, and embedding.

This module is responsible for keeping the chunk store in step with the
source directories: new and modified documents are re-chunked and
embedded, deleted ones are removed together with their chunks, and
unchanged ones are left alone.
"""

from code_explainer.ingestion.chunker import RecursiveCodeSplitter, split_paragraphs, split_text
from code_explainer.ingestion.coordinator import DataIngestor
from code_explainer.ingestion.embedder import Embedder, FunctionEmbedder, LangChainEmbedder, get_embedder
from code_explainer.models import (
    ChunkDraft,
    IngestedChunk,
    IngestedDocument,
    IngestionFailure,
    IngestionSummary,
)
from code_explainer.ingestion.sources import (
    CodeFileDirectorySource,
    DirectorySource,
    DocumentSource,
    PdfDirectorySource,
)

__all__ = [
    "ChunkDraft",
    "CodeFileDirectorySource",
    "DataIngestor",
    "DirectorySource",
    "DocumentSource",
    "Embedder",
    "FunctionEmbedder",
    "IngestedChunk",
    "IngestedDocument",
    "IngestionFailure",
    "IngestionSummary",
    "LangChainEmbedder",
    "PdfDirectorySource",
    "RecursiveCodeSplitter",
    "get_embedder",
    "split_paragraphs",
    "split_text",
]
