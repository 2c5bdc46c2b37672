# tests/test_chunker.py
import math

import pytest

from pdf_chat.memory.chunker import split_pages, split_text
from pdf_chat.memory.loader import PdfPage


class TestSplitText:
    """Fixed-window splitting of a single text."""

    def test_default_window_on_2600_characters(self):
        """1000/200 windows over 2600 chars start at 0, 800 and 1600."""
        text = "".join(chr(ord("a") + i % 26) for i in range(2600))

        chunks = split_text(text, 1000, 200)

        assert len(chunks) == 3
        assert chunks[0] == text[0:1000]
        assert chunks[1] == text[800:1800]
        assert chunks[2] == text[1600:2600]

    def test_consecutive_chunks_share_overlap(self):
        text = "x" * 50 + "y" * 50 + "z" * 37

        chunks = split_text(text, 30, 10)

        for previous, current in zip(chunks, chunks[1:]):
            assert previous[-10:] == current[:10]

    def test_chunks_reassemble_to_original(self):
        text = "The quick brown fox jumps over the lazy dog. " * 40

        chunks = split_text(text, 120, 25)

        rebuilt = chunks[0] + "".join(chunk[25:] for chunk in chunks[1:])

        assert rebuilt == text

    @pytest.mark.parametrize("length", [1, 200, 999, 1000, 1001, 1800, 5000])
    def test_chunk_count_formula(self, length):
        text = "a" * length

        expected = max(1, math.ceil((length - 200) / 800))

        assert len(split_text(text, 1000, 200)) == expected

    def test_no_chunk_exceeds_size(self):
        chunks = split_text("b" * 4321, 1000, 200)

        assert all(len(chunk) <= 1000 for chunk in chunks)

    def test_empty_text_yields_nothing(self):
        assert split_text("", 1000, 200) == []

    def test_short_text_is_single_chunk(self):
        assert split_text("tiny", 1000, 200) == ["tiny"]

    @pytest.mark.parametrize(
        "size,overlap",
        [(0, 0), (100, -1), (100, 100), (100, 150)],
    )
    def test_invalid_parameters_rejected(self, size, overlap):
        with pytest.raises(ValueError):
            split_text("some text", size, overlap)


class TestSplitPages:
    """Page-aware splitting with source metadata."""

    def _page(self, text, number, total=3, source="/data/uploads/report.pdf"):
        return PdfPage(text=text, page_number=number, total_pages=total, source=source)

    def test_metadata_identifies_file_and_page(self):
        pages = [self._page("a" * 1500, 1), self._page("b" * 300, 2)]

        chunks = split_pages(pages, 1000, 200)

        assert [c.metadata["page"] for c in chunks] == [1, 1, 2]
        assert [c.metadata["chunk_index"] for c in chunks] == [0, 1, 0]
        assert all(c.metadata["source"] == "/data/uploads/report.pdf" for c in chunks)
        assert all(c.metadata["filename"] == "report.pdf" for c in chunks)
        assert all(c.metadata["total_pages"] == 3 for c in chunks)

    def test_chunks_never_span_pages(self):
        pages = [self._page("a" * 900, 1), self._page("b" * 900, 2)]

        chunks = split_pages(pages, 1000, 200)

        assert [c.text for c in chunks] == ["a" * 900, "b" * 900]

    def test_blank_pages_are_skipped(self):
        pages = [
            self._page("", 1),
            self._page("   \n\t ", 2),
            self._page("content", 3),
        ]

        chunks = split_pages(pages, 1000, 200)

        assert len(chunks) == 1
        assert chunks[0].metadata["page"] == 3

    def test_no_pages_no_chunks(self):
        assert split_pages([], 1000, 200) == []
