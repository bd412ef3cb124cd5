"""Incremental ingestion of PDFs and source code into a chunk store."""

__version__ = "0.1.0"
