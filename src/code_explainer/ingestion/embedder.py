"""Embedding adapters.

The coordinator only depends on the :class:`Embedder` protocol; the
concrete model is an external service. :class:`LangChainEmbedder`
adapts any LangChain ``Embeddings`` implementation,
:class:`FunctionEmbedder` adapts a bare callable, and
:func:`get_embedder` builds the configured sentence-transformer one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from code_explainer.config import settings
from code_explainer.errors import EmbeddingError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns text into a dense vector."""

    def embed(self, text: str) -> list[float]:
        """Embed a single text string."""
        ...

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed a batch of texts, preserving order."""
        ...


class LangChainEmbedder:
    """Wrap a LangChain ``Embeddings`` object behind :class:`Embedder`.

    Any exception raised by the underlying model is re-raised as
    :class:`EmbeddingError` so the coordinator can treat it as a
    per-document, non-fatal failure.
    """

    def __init__(self, embeddings: Embeddings, *, batch_size: int = 64) -> None:
        self._embeddings = embeddings
        self.batch_size = batch_size

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            try:
                vectors.extend(self._embeddings.embed_documents(batch))
            except Exception as exc:
                raise EmbeddingError(f"embedding batch of {len(batch)} texts failed: {exc}") from exc
        if len(vectors) != len(texts):
            raise EmbeddingError(f"expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors


class FunctionEmbedder:
    """Adapt a plain ``embed(text) -> vector`` callable to :class:`Embedder`."""

    def __init__(self, fn: Callable[[str], Sequence[float]]) -> None:
        self._fn = fn

    def embed(self, text: str) -> list[float]:
        try:
            return list(self._fn(text))
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"embedding call failed: {exc}") from exc

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


def get_embedder(model_name: str | None = None) -> LangChainEmbedder:
    """Return the configured sentence-transformer embedder."""
    from langchain_huggingface import HuggingFaceEmbeddings

    model_name = model_name or settings.embedding_model
    logger.info("Loading embedding model %s", model_name)
    return LangChainEmbedder(
        HuggingFaceEmbeddings(model_name=model_name, encode_kwargs={"normalize_embeddings": True})
    )
