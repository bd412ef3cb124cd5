"""Text chunking strategies.

Two independent splitters live here:

* :func:`split_text` / :class:`RecursiveCodeSplitter` — structural,
  separator-driven splitting for source code with a fixed-size window
  fallback.
* :func:`split_paragraphs` — whitespace/sentence-aware splitting for
  prose extracted from PDFs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from code_explainer.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Block-open, block-close, statement-end.
DEFAULT_CODE_SEPARATORS: tuple[str, ...] = ("{", "}", ";")

PARAGRAPH_SEPARATORS: list[str] = ["\n\n", "\n", ". ", " ", ""]


def _validate(chunk_size: int, overlap: int, separators: Sequence[str]) -> None:
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ConfigurationError(f"overlap must not be negative, got {overlap}")
    if any(not sep for sep in separators):
        raise ConfigurationError("separators must be non-empty strings")


def _split_on(text: str, separator: str) -> list[str]:
    """Split *text* on literal *separator*, keeping it on the preceding piece."""
    pieces: list[str] = []
    start = 0
    while start < len(text):
        index = text.find(separator, start)
        if index == -1:
            remainder = text[start:].strip()
            if remainder:
                pieces.append(remainder)
            break
        piece = text[start:index].strip() + separator
        if piece.strip():
            pieces.append(piece)
        start = index + len(separator)

    if not pieces and text.strip():
        pieces.append(text.strip())
    return pieces


def _split_by(text: str, separators: Sequence[str], chunk_size: int) -> list[str]:
    if not separators:
        return [text.strip()]

    head, rest = separators[0], separators[1:]
    chunks: list[str] = []
    for piece in _split_on(text, head):
        if len(piece) > chunk_size and rest:
            chunks.extend(_split_by(piece, rest, chunk_size))
        else:
            chunks.append(piece)
    return chunks


def _window(text: str, chunk_size: int, overlap: int) -> list[str]:
    step = max(1, chunk_size - overlap)
    return [text[offset : offset + chunk_size] for offset in range(0, len(text), step)]


def split_text(
    text: str,
    chunk_size: int,
    overlap: int = 0,
    separators: Sequence[str] = DEFAULT_CODE_SEPARATORS,
) -> list[str]:
    """Split *text* into chunks of at most *chunk_size* characters.

    Parameters
    ----------
    text:
        Raw text, typically a whole source file.
    chunk_size:
        Maximum number of characters per chunk.
    overlap:
        Characters shared between consecutive windows of the fixed-size
        fallback. Semantic pieces never overlap.
    separators:
        Literal split points in priority order. A piece that is still
        too long after splitting on one separator is split on the next.

    Returns
    -------
    list[str]
        Chunks in left-to-right order of the original text.

    Raises
    ------
    ConfigurationError
        If ``chunk_size <= 0``, ``overlap < 0`` or a separator is empty.
    """
    _validate(chunk_size, overlap, separators)
    if not text:
        return []

    chunks: list[str] = []
    for piece in _split_by(text, list(separators), chunk_size):
        if len(piece) > chunk_size:
            logger.debug("Windowing irreducible piece of %d chars", len(piece))
            chunks.extend(_window(piece, chunk_size, overlap))
        elif piece.strip():
            chunks.append(piece)
    return chunks


class RecursiveCodeSplitter:
    """Pre-validated, reusable configuration for :func:`split_text`.

    Parameters
    ----------
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Overlap applied by the fixed-size fallback only.
    separators:
        Ordered separators; defaults to :data:`DEFAULT_CODE_SEPARATORS`.
    """

    def __init__(
        self,
        chunk_size: int,
        chunk_overlap: int = 0,
        separators: Sequence[str] | None = None,
    ) -> None:
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = tuple(separators) if separators is not None else DEFAULT_CODE_SEPARATORS
        _validate(self.chunk_size, self.chunk_overlap, self.separators)

    def split_text(self, text: str) -> list[str]:
        return split_text(text, self.chunk_size, self.chunk_overlap, self.separators)


def split_paragraphs(text: str, max_chars: int = 200) -> list[str]:
    """Split prose into paragraph-sized pieces of roughly *max_chars*.

    Prefers blank lines, then line breaks, then sentence ends, then
    spaces. No overlap is applied.
    """
    if max_chars <= 0:
        raise ConfigurationError(f"max_chars must be positive, got {max_chars}")
    if not text.strip():
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=max_chars,
        chunk_overlap=0,
        length_function=len,
        separators=PARAGRAPH_SEPARATORS,
    )
    return [piece.strip() for piece in splitter.split_text(text) if piece.strip()]
