"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file.

    Every field can be overridden with a ``CODE_EXPLAINER_``-prefixed
    environment variable, e.g. ``CODE_EXPLAINER_CHUNK_SIZE=800``.
    """

    # Sources
    pdf_source_dir: Path | None = Field(default=None, description="Directory scanned for PDF files")
    code_source_dir: Path | None = Field(default=None, description="Directory scanned for code files")
    pdf_glob: str = "**/*.pdf"
    code_glob: str = "**/*.cs"

    # Chunking
    code_chunking_strategy: Literal["lines", "structural"] = Field(
        default="lines",
        description=(
            "'lines' windows code files by raw line count; "
            "'structural' routes the whole file through the recursive code splitter."
        ),
    )
    code_window_lines: int = 200
    chunk_size: int = 1000
    chunk_overlap: int = 100
    code_separators: list[str] = Field(default_factory=lambda: ["{", "}", ";"])
    pdf_paragraph_chars: int = 200

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embed_backfill: bool = Field(
        default=True,
        description="Re-embed persisted chunks that have no embedding on every pass.",
    )

    # Persistence
    store_path: Path = Path("vector-store.db")

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CODE_EXPLAINER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("chunk_size", "code_window_lines", "pdf_paragraph_chars")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"must be positive, got {value}")
        return value

    @field_validator("chunk_overlap")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"must not be negative, got {value}")
        return value

    @field_validator("code_separators")
    @classmethod
    def _no_empty_separators(cls, value: list[str]) -> list[str]:
        if any(sep == "" for sep in value):
            raise ValueError("separators must be non-empty strings")
        return value

    @model_validator(mode="after")
    def _overlap_below_size(self) -> Settings:
        # Overlap >= size is tolerated by the splitter (step is clamped) but
        # almost always a typo in deployment config.
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self


# Singleton — import `settings` wherever needed.
settings = Settings()
