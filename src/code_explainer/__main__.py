"""Run one ingestion pass over the configured source directories.

Usage
-----
    python -m code_explainer --pdf-dir wwwroot/Data --code-dir wwwroot/Data

Unset options fall back to :data:`code_explainer.config.settings`
(``CODE_EXPLAINER_*`` environment variables or ``.env``).
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from code_explainer.config import Settings, settings
from code_explainer.errors import ConfigurationError
from code_explainer.ingestion.chunker import RecursiveCodeSplitter
from code_explainer.ingestion.sources import CodeFileDirectorySource, DocumentSource, PdfDirectorySource

logger = logging.getLogger("code_explainer")


def build_sources(cfg: Settings) -> list[DocumentSource]:
    """Create one source per configured directory."""
    sources: list[DocumentSource] = []
    if cfg.pdf_source_dir is not None:
        sources.append(
            PdfDirectorySource(
                cfg.pdf_source_dir,
                paragraph_chars=cfg.pdf_paragraph_chars,
                pattern=cfg.pdf_glob,
            )
        )
    if cfg.code_source_dir is not None:
        sources.append(
            CodeFileDirectorySource(
                cfg.code_source_dir,
                pattern=cfg.code_glob,
                strategy=cfg.code_chunking_strategy,
                window_lines=cfg.code_window_lines,
                splitter=RecursiveCodeSplitter(cfg.chunk_size, cfg.chunk_overlap, cfg.code_separators),
            )
        )
    return sources


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="code_explainer", description="Incremental document ingestion")
    parser.add_argument("--pdf-dir", type=Path, help="Directory scanned for PDF files")
    parser.add_argument("--code-dir", type=Path, help="Directory scanned for code files")
    parser.add_argument("--store", type=Path, help="SQLite database holding documents and chunks")
    parser.add_argument(
        "--strategy",
        choices=["lines", "structural"],
        help="How code files are chunked",
    )
    parser.add_argument("--deadline", type=float, help="Per-source time budget in seconds")
    parser.add_argument("--no-backfill", action="store_true", help="Do not re-embed unembedded chunks")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)

    overrides = {
        "pdf_source_dir": args.pdf_dir,
        "code_source_dir": args.code_dir,
        "store_path": args.store,
        "code_chunking_strategy": args.strategy,
    }
    cfg = settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})
    if args.no_backfill:
        cfg = cfg.model_copy(update={"embed_backfill": False})

    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        sources = build_sources(cfg)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    if not sources:
        logger.error("No sources configured; pass --pdf-dir and/or --code-dir")
        return 2

    from code_explainer.ingestion.coordinator import DataIngestor
    from code_explainer.ingestion.embedder import get_embedder
    from code_explainer.storage.sqlite import SqliteChunkStore

    with SqliteChunkStore(cfg.store_path) as store:
        try:
            ingestor = DataIngestor(
                store,
                get_embedder(cfg.embedding_model),
                embed_backfill=cfg.embed_backfill,
                deadline_seconds=args.deadline,
            )
        except ConfigurationError as exc:
            logger.error("Invalid configuration: %s", exc)
            return 2
        summaries = ingestor.ingest_all(sources)

    for summary in summaries:
        print(summary)
        for failure in summary.failures:
            print(f"  ✗ [{failure.kind}] {failure.document_id or '-'}: {failure.message}")
    return 0 if all(s.ok for s in summaries) else 1


if __name__ == "__main__":
    sys.exit(main())
