"""Tests for paragraph chunking."""
import pytest

from maintenance_assistant.rag.chunker import ParagraphChunker, TextChunk

from tests.conftest import MANUAL_TEXT

LONG_A = "Drain the coolant from the radiator before removing the lower hose clamp."
LONG_B = "Inspect the water pump impeller for erosion and replace it if blades are worn."


class TestParagraphChunker:
    def test_filters_short_segments(self):
        chunks = ParagraphChunker().chunk_text(MANUAL_TEXT)

        assert len(chunks) == 1
        assert "replacing part X" in chunks[0].content
        assert chunks[0].chunk_index == 0

    def test_is_deterministic(self):
        chunker = ParagraphChunker()
        text = f"{LONG_A}\n\n12\n\n{LONG_B}"

        assert chunker.chunk_text(text) == chunker.chunk_text(text)

    def test_indices_are_contiguous_positions(self):
        text = f"Header\n\n{LONG_A}\n\nPage 3\n\n{LONG_B}\n\n{LONG_A}"

        chunks = ParagraphChunker().chunk_text(text)

        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert [c.content for c in chunks] == [LONG_A, LONG_B, LONG_A]

    def test_blank_lines_with_whitespace_split_paragraphs(self):
        text = f"{LONG_A}\n   \t\n{LONG_B}"

        chunks = ParagraphChunker().chunk_text(text)

        assert [c.content for c in chunks] == [LONG_A, LONG_B]

    def test_single_newlines_do_not_split(self):
        text = f"{LONG_A}\n{LONG_B}"

        chunks = ParagraphChunker().chunk_text(text)

        assert len(chunks) == 1

    def test_threshold_uses_trimmed_length(self):
        exactly_fifty = "x" * 50
        padded_short = "   " + "y" * 49 + "   "

        chunks = ParagraphChunker(min_chars=50).chunk_text(f"{exactly_fifty}\n\n{padded_short}")

        assert [c.content for c in chunks] == [exactly_fifty]

    def test_no_maximum_length(self):
        huge = "torque " * 5000

        chunks = ParagraphChunker().chunk_text(huge)

        assert chunks == [TextChunk(content=huge, chunk_index=0)]

    def test_empty_text(self):
        assert ParagraphChunker().chunk_text("") == []

    def test_custom_threshold(self):
        chunks = ParagraphChunker(min_chars=3).chunk_text("Tiny.\n\nok")

        assert [c.content for c in chunks] == ["Tiny."]

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            ParagraphChunker(min_chars=-1)

    def test_chunk_stats(self):
        chunker = ParagraphChunker()
        stats = chunker.get_chunk_stats(chunker.chunk_text(f"{LONG_A}\n\n{LONG_B}"))

        assert stats["chunk_count"] == 2
        assert stats["min_chunk_size"] == len(LONG_A)
        assert stats["max_chunk_size"] == len(LONG_B)
