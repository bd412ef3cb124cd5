"""Unit tests for the PDF and code-file document sources."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from code_explainer.errors import ConfigurationError, ExtractionError, SourceUnreadableError
from code_explainer.ingestion.chunker import RecursiveCodeSplitter
from code_explainer.models import IngestedDocument
from code_explainer.ingestion.sources import CodeFileDirectorySource, PdfDirectorySource
from code_explainer.ingestion.sources.pdf import group_blocks, group_lines


# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────


def _write(path: Path, text: str, mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def _record(documents: list[IngestedDocument]) -> list[IngestedDocument]:
    """What a store would hold after ingesting *documents*."""
    return [d.model_copy() for d in documents]


def _word(text: str, x0: float, top: float, height: float = 10.0) -> dict[str, Any]:
    return {"text": text, "x0": x0, "x1": x0 + 6.0 * len(text), "top": top, "bottom": top + height}


# ──────────────────────────────────────────────────────────────────────
# CodeFileDirectorySource
# ──────────────────────────────────────────────────────────────────────


class TestCodeFileDirectorySource:
    """Tests for ``CodeFileDirectorySource``."""

    def test_source_id_combines_kind_and_directory(self, tmp_path: Path) -> None:
        source = CodeFileDirectorySource(tmp_path)
        assert source.source_id == f"CodeFileDirectorySource:{tmp_path.resolve()}"

    def test_identify_is_relative_posix_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "Calculators" / "AngleCalculator.cs", "class A {}")
        source = CodeFileDirectorySource(tmp_path)
        assert source.identify(path) == "Calculators/AngleCalculator.cs"
        assert source.identify(str(path)) == source.identify(path)

    def test_new_files_are_reported_recursively(self, tmp_path: Path) -> None:
        _write(tmp_path / "Program.cs", "class P {}")
        _write(tmp_path / "Calculators" / "Basic.cs", "class B {}")
        _write(tmp_path / "notes.txt", "not code")

        source = CodeFileDirectorySource(tmp_path)
        changed = source.list_changed_or_new_documents([])

        assert sorted(d.document_id for d in changed) == ["Calculators/Basic.cs", "Program.cs"]
        assert all(d.source_id == source.source_id for d in changed)
        assert len({d.key for d in changed}) == 2

    def test_fingerprint_is_utc_iso_timestamp(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.cs", "x", mtime=1_700_000_000)
        source = CodeFileDirectorySource(tmp_path)
        assert source.fingerprint(path) == "2023-11-14T22:13:20+00:00"

    def test_unchanged_files_are_not_reported(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.cs", "class A {}", mtime=1_700_000_000)
        source = CodeFileDirectorySource(tmp_path)
        existing = _record(source.list_changed_or_new_documents([]))

        assert source.list_changed_or_new_documents(existing) == []
        assert source.list_deleted_documents(existing) == []

    def test_touched_file_is_reported_as_changed(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.cs", "class A {}", mtime=1_700_000_000)
        source = CodeFileDirectorySource(tmp_path)
        existing = _record(source.list_changed_or_new_documents([]))

        os.utime(path, (1_700_000_100, 1_700_000_100))
        changed = source.list_changed_or_new_documents(existing)

        assert [d.document_id for d in changed] == ["a.cs"]
        assert changed[0].document_version != existing[0].document_version

    def test_removed_file_is_reported_as_deleted(self, tmp_path: Path) -> None:
        keep = _write(tmp_path / "keep.cs", "class K {}")
        gone = _write(tmp_path / "sub" / "gone.cs", "class G {}")
        source = CodeFileDirectorySource(tmp_path)
        existing = _record(source.list_changed_or_new_documents([]))

        gone.unlink()
        deleted = source.list_deleted_documents(existing)

        assert [d.document_id for d in deleted] == ["sub/gone.cs"]
        assert keep.exists()

    def test_records_of_other_sources_are_ignored(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.cs", "class A {}")
        source = CodeFileDirectorySource(tmp_path)
        foreign = IngestedDocument(source_id="PdfDirectorySource:/elsewhere", document_id="a.cs", document_version="v")

        assert [d.document_id for d in source.list_changed_or_new_documents([foreign])] == ["a.cs"]
        assert source.list_deleted_documents([foreign]) == []

    def test_450_lines_yield_three_line_windows(self, tmp_path: Path) -> None:
        lines = [f"// line {i}" for i in range(450)]
        _write(tmp_path / "big.cs", "\n".join(lines))
        source = CodeFileDirectorySource(tmp_path)
        (document,) = source.list_changed_or_new_documents([])

        drafts = source.extract_chunks(document)

        assert [len(d.text.split("\n")) for d in drafts] == [200, 200, 50]
        assert drafts[0].text.startswith("// line 0\n")
        assert drafts[1].text.startswith("// line 200\n")
        assert drafts[2].text.endswith("// line 449")
        assert [d.index for d in drafts] == [0, 1, 2]

    def test_empty_file_yields_no_chunks(self, tmp_path: Path) -> None:
        _write(tmp_path / "empty.cs", "")
        source = CodeFileDirectorySource(tmp_path)
        (document,) = source.list_changed_or_new_documents([])
        assert source.extract_chunks(document) == []

    def test_structural_strategy_uses_code_splitter(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.cs", "if(x){yy;zz;}")
        source = CodeFileDirectorySource(
            tmp_path,
            strategy="structural",
            splitter=RecursiveCodeSplitter(chunk_size=6),
        )
        (document,) = source.list_changed_or_new_documents([])

        assert [d.text for d in source.extract_chunks(document)] == ["if(x){", "yy;", "zz;", "}"]

    def test_custom_pattern(self, tmp_path: Path) -> None:
        _write(tmp_path / "main.py", "print('hi')")
        _write(tmp_path / "Program.cs", "class P {}")
        source = CodeFileDirectorySource(tmp_path, pattern="**/*.py")
        assert [d.document_id for d in source.list_changed_or_new_documents([])] == ["main.py"]

    def test_undecodable_file_raises_extraction_error(self, tmp_path: Path) -> None:
        (tmp_path / "bad.cs").write_bytes(b"\xff\xfe\xfa invalid")
        source = CodeFileDirectorySource(tmp_path)
        (document,) = source.list_changed_or_new_documents([])

        with pytest.raises(ExtractionError) as excinfo:
            source.extract_chunks(document)
        assert excinfo.value.document_id == "bad.cs"

    def test_missing_file_raises_source_unreadable(self, tmp_path: Path) -> None:
        source = CodeFileDirectorySource(tmp_path)
        document = IngestedDocument(source_id=source.source_id, document_id="ghost.cs", document_version="v")

        with pytest.raises(SourceUnreadableError) as excinfo:
            source.extract_chunks(document)
        assert excinfo.value.document_id == "ghost.cs"

    def test_missing_directory_raises_source_unreadable(self, tmp_path: Path) -> None:
        source = CodeFileDirectorySource(tmp_path / "nope")
        with pytest.raises(SourceUnreadableError, match="Directory not found"):
            source.list_changed_or_new_documents([])

    def test_unknown_strategy_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported chunking strategy"):
            CodeFileDirectorySource(tmp_path, strategy="ast")  # type: ignore[arg-type]

    def test_non_positive_window_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            CodeFileDirectorySource(tmp_path, window_lines=0)

    def test_symlinked_file_keeps_its_link_name(self, tmp_path: Path) -> None:
        root = tmp_path / "Data"
        _write(root / "A.cs", "class A {}")
        shared = _write(tmp_path / "shared" / "B.cs", "class B {}")
        try:
            (root / "B.cs").symlink_to(shared)
        except OSError:
            pytest.skip("symlinks not supported")
        source = CodeFileDirectorySource(root)

        documents = source.list_changed_or_new_documents([])

        assert [d.document_id for d in documents] == ["A.cs", "B.cs"]
        assert source.take_scan_failures() == []
        assert [d.text for d in source.extract_chunks(documents[1])] == ["class B {}"]

    def test_path_outside_root_cannot_be_identified(self, tmp_path: Path) -> None:
        source = CodeFileDirectorySource(tmp_path / "Data")
        with pytest.raises(SourceUnreadableError, match="is not under"):
            source.identify(tmp_path / "elsewhere" / "X.cs")

    def test_unfingerprintable_file_is_returned_as_scan_failure(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.cs", "class A {}")
        _write(tmp_path / "b.cs", "class B {}")
        source = CodeFileDirectorySource(tmp_path)
        fingerprint = source.fingerprint

        def denied(path: Path) -> str:
            if path.name == "a.cs":
                raise PermissionError(13, "Permission denied", str(path))
            return fingerprint(path)

        with patch.object(source, "fingerprint", side_effect=denied):
            documents = source.list_changed_or_new_documents([])

        assert [d.document_id for d in documents] == ["b.cs"]
        (failure,) = source.take_scan_failures()
        assert isinstance(failure, SourceUnreadableError)
        assert failure.document_id == "a.cs"
        assert source.take_scan_failures() == []

    def test_lines_split_only_on_line_breaks(self, tmp_path: Path) -> None:
        (tmp_path / "a.cs").write_bytes("one\r\ntwo\x0cstill two\rthree same\n".encode("utf-8"))
        source = CodeFileDirectorySource(tmp_path, window_lines=2)
        (document,) = source.list_changed_or_new_documents([])

        drafts = source.extract_chunks(document)

        assert [d.text for d in drafts] == ["one\ntwo\x0cstill two", "three same"]


# ──────────────────────────────────────────────────────────────────────
# PdfDirectorySource
# ──────────────────────────────────────────────────────────────────────


def _fake_pdf(pages: list[list[dict[str, Any]]]) -> MagicMock:
    """Build a stand-in for ``pdfplumber.open(...)``'s return value."""
    fake_pages = []
    for number, words in enumerate(pages, 1):
        page = MagicMock()
        page.page_number = number
        page.extract_words.return_value = words
        fake_pages.append(page)
    pdf = MagicMock()
    pdf.pages = fake_pages
    opened = MagicMock()
    opened.__enter__.return_value = pdf
    return opened


class TestPdfDirectorySource:
    """Tests for ``PdfDirectorySource``."""

    def test_fingerprint_is_md5_of_content(self, tmp_path: Path) -> None:
        path = tmp_path / "a.pdf"
        path.write_bytes(b"%PDF-1.4 first")
        source = PdfDirectorySource(tmp_path)
        assert source.fingerprint(path) == hashlib.md5(b"%PDF-1.4 first").hexdigest()

    def test_touch_without_content_change_is_not_a_change(self, tmp_path: Path) -> None:
        path = tmp_path / "a.pdf"
        path.write_bytes(b"%PDF-1.4 same")
        source = PdfDirectorySource(tmp_path)
        existing = _record(source.list_changed_or_new_documents([]))

        os.utime(path, (1_800_000_000, 1_800_000_000))
        assert source.list_changed_or_new_documents(existing) == []

        path.write_bytes(b"%PDF-1.4 different")
        assert [d.document_id for d in source.list_changed_or_new_documents(existing)] == ["a.pdf"]

    def test_nested_pdf_is_not_reported_deleted(self, tmp_path: Path) -> None:
        nested = tmp_path / "manuals" / "guide.pdf"
        nested.parent.mkdir()
        nested.write_bytes(b"%PDF-1.4 guide")
        source = PdfDirectorySource(tmp_path)
        existing = _record(source.list_changed_or_new_documents([]))

        assert [d.document_id for d in existing] == ["manuals/guide.pdf"]
        assert source.list_deleted_documents(existing) == []

    def test_extract_chunks_splits_each_page_into_paragraphs(self, tmp_path: Path) -> None:
        (tmp_path / "doc.pdf").write_bytes(b"%PDF-1.4")
        source = PdfDirectorySource(tmp_path, paragraph_chars=200)
        (document,) = source.list_changed_or_new_documents([])

        pages = [
            [_word("Hello", 50, 100), _word("world.", 90, 100)],
            [_word("Second", 50, 100), _word("page.", 100, 100)],
        ]
        with patch("code_explainer.ingestion.sources.pdf.pdfplumber.open", return_value=_fake_pdf(pages)):
            drafts = source.extract_chunks(document)

        assert [(d.page, d.index, d.text) for d in drafts] == [
            (1, 0, "Hello world."),
            (2, 0, "Second page."),
        ]

    def test_parse_failure_raises_extraction_error(self, tmp_path: Path) -> None:
        (tmp_path / "broken.pdf").write_bytes(b"not a pdf")
        source = PdfDirectorySource(tmp_path)
        (document,) = source.list_changed_or_new_documents([])

        with patch(
            "code_explainer.ingestion.sources.pdf.pdfplumber.open",
            side_effect=ValueError("No /Root object!"),
        ):
            with pytest.raises(ExtractionError, match="cannot parse PDF") as excinfo:
                source.extract_chunks(document)
        assert excinfo.value.document_id == "broken.pdf"

    def test_non_positive_paragraph_size_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="paragraph_chars"):
            PdfDirectorySource(tmp_path, paragraph_chars=0)


class TestLayoutGrouping:
    """Tests for the word → line → block reconstruction."""

    @staticmethod
    def _two_columns() -> list[dict[str, Any]]:
        words = []
        for row, top in enumerate((100, 115, 130)):
            words.append(_word("Left", 50, top))
            words.append(_word(f"L{row}", 80, top))
            words.append(_word("Right", 320, top))
            words.append(_word(f"R{row}", 356, top))
        return words

    def test_words_on_one_baseline_split_at_column_gap(self) -> None:
        lines = group_lines([_word("Left", 50, 100), _word("Right", 320, 100)])
        assert [line.text for line in lines] == ["Left", "Right"]

    def test_words_with_small_gaps_form_one_line(self) -> None:
        lines = group_lines([_word("b", 62, 101), _word("a", 50, 100)])
        assert [line.text for line in lines] == ["a b"]

    def test_columns_are_read_one_after_another(self) -> None:
        text = PdfDirectorySource.page_text(self._two_columns())
        assert text == "Left L0 Left L1 Left L2\n\nRight R0 Right R1 Right R2"

    def test_spanning_title_comes_before_columns(self) -> None:
        title = {"text": "Title", "x0": 50.0, "x1": 380.0, "top": 60.0, "bottom": 72.0}
        blocks = group_blocks(group_lines([title, *self._two_columns()]))
        assert [b.text for b in blocks] == [
            "Title",
            "Left L0 Left L1 Left L2",
            "Right R0 Right R1 Right R2",
        ]

    def test_vertical_gap_starts_new_block(self) -> None:
        words = [_word("First", 50, 100), _word("Second", 50, 200)]
        blocks = group_blocks(group_lines(words))
        assert [b.text for b in blocks] == ["First", "Second"]

    def test_empty_page(self) -> None:
        assert PdfDirectorySource.page_text([]) == ""
