"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from code_explainer.errors import EmbeddingError
from code_explainer.storage import InMemoryChunkStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class RecordingEmbedder:
    """Deterministic fake embedder that remembers every text it embedded."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    @property
    def embedded_texts(self) -> list[str]:
        return [text for batch in self.calls for text in batch]

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [[float(len(t)), 1.0] for t in texts]


class FailingEmbedder(RecordingEmbedder):
    """Fails every call until ``fail`` is switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = True

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        if self.fail:
            self.calls.append(list(texts))
            raise EmbeddingError("embedding service unavailable")
        return super().embed_many(texts)


@pytest.fixture()
def store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture()
def embedder() -> RecordingEmbedder:
    return RecordingEmbedder()


@pytest.fixture()
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()
