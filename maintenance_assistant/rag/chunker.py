"""Paragraph chunking for the RAG pipeline.

Splits extracted text on blank lines and drops short segments (page
numbers, running headers, table debris).
"""
import re
from typing import List
from dataclasses import dataclass
import structlog

from maintenance_assistant import config

logger = structlog.get_logger()

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass(frozen=True)
class TextChunk:
    """A paragraph that survived filtering, with its output position."""

    content: str
    chunk_index: int


class ParagraphChunker:
    """Blank-line chunker with a minimum-length noise filter."""

    def __init__(self, min_chars: int = None):
        """Initialize the chunker.

        Args:
            min_chars: Segments whose trimmed length is below this are dropped
                (default from config)
        """
        self.min_chars = config.MIN_CHUNK_CHARS if min_chars is None else min_chars

        if self.min_chars < 0:
            raise ValueError(f"min_chars must be non-negative, got {self.min_chars}")

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into paragraph chunks.

        No upper bound is applied; an oversized paragraph is passed through
        and left for the embedder to accept or reject.

        Args:
            text: Full extracted document text

        Returns:
            List of TextChunk objects in document order
        """
        if not text:
            return []

        segments = PARAGRAPH_BREAK.split(text)
        kept = [
            segment
            for segment in segments
            if segment.strip() and len(segment.strip()) >= self.min_chars
        ]

        chunks = [
            TextChunk(content=content, chunk_index=index)
            for index, content in enumerate(kept)
        ]

        logger.info(
            "text_chunked",
            text_length=len(text),
            segment_count=len(segments),
            chunk_count=len(chunks),
            filtered_count=len(segments) - len(chunks),
        )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
        }


def chunk_text(text: str) -> List[TextChunk]:
    """Chunk text using the default chunker (convenience function)."""
    return ParagraphChunker().chunk_text(text)
