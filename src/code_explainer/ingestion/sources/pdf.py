"""PDF directory source.

Fingerprints are content hashes because PDF metadata timestamps are
unreliable. Text is rebuilt from word positions so that multi-column
pages read column by column rather than in raw content-stream order.
"""

from __future__ import annotations

import hashlib
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pdfplumber

from code_explainer.errors import ConfigurationError, ExtractionError
from code_explainer.ingestion.chunker import split_paragraphs
from code_explainer.ingestion.sources.base import DirectorySource
from code_explainer.models import ChunkDraft, IngestedDocument

logger = logging.getLogger(__name__)

_HASH_BLOCK = 65536


@dataclass
class _Line:
    x0: float
    x1: float
    top: float
    bottom: float
    words: list[str] = field(default_factory=list)

    @property
    def height(self) -> float:
        return max(self.bottom - self.top, 1.0)

    @property
    def text(self) -> str:
        return " ".join(self.words)


@dataclass
class _Block:
    lines: list[_Line]

    @property
    def x0(self) -> float:
        return min(line.x0 for line in self.lines)

    @property
    def x1(self) -> float:
        return max(line.x1 for line in self.lines)

    @property
    def top(self) -> float:
        return self.lines[0].top

    @property
    def bottom(self) -> float:
        return self.lines[-1].bottom

    @property
    def text(self) -> str:
        return " ".join(line.text for line in self.lines)


def _overlaps(a0: float, a1: float, b0: float, b1: float) -> bool:
    return min(a1, b1) > max(a0, b0)


def group_lines(words: list[dict[str, Any]], y_tolerance: float = 3.0, gap_factor: float = 2.0) -> list[_Line]:
    """Group positioned words into lines.

    Words on the same baseline are split into separate lines when the
    horizontal gap between them is wider than *gap_factor* times the
    line height, which keeps neighbouring columns apart.
    """
    rows: list[list[dict[str, Any]]] = []
    for word in sorted(words, key=lambda w: (w["top"], w["x0"])):
        if rows and abs(word["top"] - rows[-1][0]["top"]) <= y_tolerance:
            rows[-1].append(word)
        else:
            rows.append([word])

    lines: list[_Line] = []
    for row in rows:
        current: _Line | None = None
        for word in sorted(row, key=lambda w: w["x0"]):
            if current is not None and word["x0"] - current.x1 <= gap_factor * current.height:
                current.words.append(word["text"])
                current.x1 = max(current.x1, word["x1"])
                current.bottom = max(current.bottom, word["bottom"])
                continue
            current = _Line(word["x0"], word["x1"], word["top"], word["bottom"], [word["text"]])
            lines.append(current)
    return lines


def _column_order(blocks: list[_Block]) -> list[_Block]:
    columns: list[tuple[float, float, list[_Block]]] = []
    for block in sorted(blocks, key=lambda b: b.x0):
        for i, (c0, c1, members) in enumerate(columns):
            if _overlaps(block.x0, block.x1, c0, c1):
                members.append(block)
                columns[i] = (min(c0, block.x0), max(c1, block.x1), members)
                break
        else:
            columns.append((block.x0, block.x1, [block]))

    ordered: list[_Block] = []
    for _, _, members in sorted(columns, key=lambda c: c[0]):
        ordered.extend(sorted(members, key=lambda b: b.top))
    return ordered


def group_blocks(lines: list[_Line], gap_factor: float = 1.0, spanning_ratio: float = 0.6) -> list[_Block]:
    """Group lines into text blocks and return them in reading order.

    A line joins an open block when it starts within *gap_factor* line
    heights below the block and overlaps it horizontally.

    Blocks wider than *spanning_ratio* of the text area (titles,
    full-width figure captions) cut the page into horizontal bands;
    inside a band the narrower blocks are read column by column, top to
    bottom within a column.
    """
    blocks: list[_Block] = []
    for line in sorted(lines, key=lambda ln: (ln.top, ln.x0)):
        for block in reversed(blocks):
            last = block.lines[-1]
            close = 0 <= line.top - last.bottom <= gap_factor * line.height
            if close and _overlaps(line.x0, line.x1, block.x0, block.x1):
                block.lines.append(line)
                break
        else:
            blocks.append(_Block([line]))
    if not blocks:
        return []

    width = max(b.x1 for b in blocks) - min(b.x0 for b in blocks)
    spanning: list[_Block] = []
    narrow: list[_Block] = []
    for block in blocks:
        (spanning if block.x1 - block.x0 > spanning_ratio * width else narrow).append(block)

    ordered: list[_Block] = []
    band_start = float("-inf")
    for boundary in sorted(spanning, key=lambda b: b.top):
        ordered.extend(_column_order([b for b in narrow if band_start <= b.top < boundary.top]))
        ordered.append(boundary)
        band_start = boundary.top
    ordered.extend(_column_order([b for b in narrow if b.top >= band_start]))
    return ordered


class PdfDirectorySource(DirectorySource):
    """Ingests ``**/*.pdf`` under a directory.

    Parameters
    ----------
    source_directory:
        Root directory containing PDF files.
    paragraph_chars:
        Target size of the paragraph pieces each page is split into.
    pattern:
        Glob used to find PDFs.
    """

    def __init__(
        self,
        source_directory: str | Path,
        *,
        paragraph_chars: int = 200,
        pattern: str = "**/*.pdf",
    ) -> None:
        if paragraph_chars <= 0:
            raise ConfigurationError(f"paragraph_chars must be positive, got {paragraph_chars}")
        super().__init__(source_directory, pattern)
        self.paragraph_chars = paragraph_chars

    def fingerprint(self, path: Path) -> str:
        digest = hashlib.md5(usedforsecurity=False)
        with path.open("rb") as fh:
            while block := fh.read(_HASH_BLOCK):
                digest.update(block)
        return digest.hexdigest()

    def extract_chunks(self, document: IngestedDocument) -> list[ChunkDraft]:
        data = self.read_bytes(document)
        drafts: list[ChunkDraft] = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page in pdf.pages:
                    page_text = self.page_text(page.extract_words(x_tolerance=3, y_tolerance=3))
                    for index, paragraph in enumerate(split_paragraphs(page_text, self.paragraph_chars)):
                        drafts.append(ChunkDraft(text=paragraph, page=page.page_number, index=index))
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ExtractionError(f"cannot parse PDF: {exc}", document_id=document.document_id) from exc

        logger.debug("Extracted %d paragraphs from %s", len(drafts), document.document_id)
        return drafts

    @staticmethod
    def page_text(words: list[dict[str, Any]]) -> str:
        """Rebuild a page's text as blank-line separated layout blocks."""
        blocks = group_blocks(group_lines(words))
        return "\n\n".join(block.text for block in blocks)
