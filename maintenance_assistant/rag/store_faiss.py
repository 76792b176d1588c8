"""Chunk store with a FAISS nearest-neighbor index.

Handles:
- Atomic per-document batch writes (SQLite is the durable record)
- An in-memory FAISS mirror of committed rows for search
- Cosine-distance k-nearest-neighbor queries with deterministic ties

Vectors are stored raw and normalized at comparison time: every vector is
L2-normalized when it enters the FAISS mirror and every query vector is
normalized before search, so inner product equals cosine similarity.
"""
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Dict, Any, Sequence, Tuple
import numpy as np
import faiss
import structlog

from maintenance_assistant import config, db
from maintenance_assistant.errors import EmbeddingDimensionMismatch, IngestionWriteFailed

logger = structlog.get_logger()

# Widening applied to the k-th similarity when collecting tied candidates
TIE_EPSILON = 1e-6


@dataclass(frozen=True)
class Chunk:
    """A persisted chunk record."""

    id: int
    source_document: str
    chunk_index: int
    content: str
    created_at: str


@dataclass(frozen=True)
class RetrievalResult:
    """A retrieved chunk and its cosine distance to the query."""

    chunk: Chunk
    distance: float

    @property
    def source(self) -> str:
        return self.chunk.source_document

    @property
    def content(self) -> str:
        return self.chunk.content


class ChunkStore:
    """Append-only chunk store backed by SQLite and a FAISS IndexFlatIP."""

    def __init__(self, db_path: Path = None, embedding_model: str = None):
        """Initialize the chunk store.

        Args:
            db_path: SQLite database path (default from config)
            embedding_model: Embedding model name recorded with the index
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL

        self.index: Optional[faiss.IndexFlatIP] = None
        self.dimension: Optional[int] = None
        # FAISS position -> chunk; positions follow insertion order
        self._chunks: List[Chunk] = []
        self._last_id = 0
        # created_at of the index generation the mirror was built from
        self._generation: Optional[str] = None

        logger.info(
            "chunk_store_initialized",
            db_path=str(self.db_path),
            embedding_model=self.embedding_model,
        )

    def init_or_load(self) -> None:
        """Create the schema if needed and load every committed chunk."""
        db.init_database(self.db_path)
        self.refresh()
        logger.info(
            "chunk_store_loaded",
            vector_count=len(self._chunks),
            dimension=self.dimension,
        )

    def _reset(self) -> None:
        self.index = None
        self.dimension = None
        self._chunks = []
        self._last_id = 0
        self._generation = None

    def refresh(self) -> None:
        """Mirror rows committed since the last refresh into the FAISS index.

        Only committed transactions are visible here, so a partially
        written batch can never be searched.
        """
        metadata = db.get_index_metadata(self.db_path)
        generation = metadata["created_at"] if metadata else None

        if self._chunks and generation != self._generation:
            # Store was rebuilt by another process
            logger.warning(
                "chunk_store_reset_detected",
                previous_generation=self._generation,
                generation=generation,
            )
            self._reset()

        self._generation = generation

        rows = db.get_chunks_after(self._last_id, self.db_path)
        if not rows:
            return

        vectors = np.ascontiguousarray(
            np.vstack([row["embedding"] for row in rows]), dtype=np.float32
        )

        if self.index is None:
            self.dimension = vectors.shape[1]
            self.index = faiss.IndexFlatIP(self.dimension)
        elif vectors.shape[1] != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, vectors.shape[1])

        faiss.normalize_L2(vectors)
        self.index.add(vectors)

        for row in rows:
            self._chunks.append(
                Chunk(
                    id=row["id"],
                    source_document=row["source_document"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    created_at=row["created_at"],
                )
            )
        self._last_id = rows[-1]["id"]

        logger.debug("chunk_store_refreshed", added=len(rows), total=len(self._chunks))

    async def put_batch(
        self,
        document_id: str,
        chunks: Sequence[Tuple[str, Sequence[float]]],
    ) -> List[Chunk]:
        """Persist one document's chunks all-or-nothing.

        Args:
            document_id: Source document identifier (storage path)
            chunks: Ordered (content, embedding) pairs; chunk_index is the position

        Returns:
            The stored Chunk records in order

        Raises:
            IngestionWriteFailed: If any part of the batch fails; nothing is written
        """
        if not chunks:
            logger.info("empty_batch_skipped", document_id=document_id)
            return []

        try:
            # Pick up a rebuild by another process before checking dimensions
            self.refresh()
            for content, embedding in chunks:
                if not content:
                    raise ValueError("Chunk content must be non-empty")
                if self.dimension is not None and len(embedding) != self.dimension:
                    raise EmbeddingDimensionMismatch(self.dimension, len(embedding))

            rows = db.insert_chunk_batch(
                document_id,
                list(chunks),
                embedding_model=self.embedding_model,
                db_path=self.db_path,
            )
        except (EmbeddingDimensionMismatch, ValueError, sqlite3.Error) as e:
            logger.error(
                "batch_write_failed",
                document_id=document_id,
                chunk_count=len(chunks),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise IngestionWriteFailed(
                f"Failed to store chunks for {document_id}",
                {"document_id": document_id, "cause": type(e).__name__},
            ) from e

        self.refresh()

        return [
            Chunk(
                id=row["id"],
                source_document=row["source_document"],
                chunk_index=row["chunk_index"],
                content=row["content"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def nearest(
        self,
        query_vector: Sequence[float],
        k: int,
        metric: str = "cosine",
    ) -> List[RetrievalResult]:
        """Find the k chunks closest to a query vector.

        Args:
            query_vector: Query embedding
            k: Maximum number of results
            metric: Distance metric; only "cosine" is supported

        Returns:
            min(k, total) results, ascending by distance, ties broken by
            insertion order. Empty if the store is empty.

        Raises:
            EmbeddingDimensionMismatch: If the query dimension differs from the index
        """
        if metric != "cosine":
            raise ValueError(f"Unsupported distance metric: {metric}")

        self.refresh()

        if self.index is None or self.index.ntotal == 0 or k <= 0:
            logger.info("nearest_no_candidates", k=k, total=len(self._chunks))
            return []

        query = np.ascontiguousarray([query_vector], dtype=np.float32)
        if query.shape[1] != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, query.shape[1])
        faiss.normalize_L2(query)

        total = self.index.ntotal
        top_k = min(k, total)

        similarities, positions = self.index.search(query, top_k)
        sims = similarities[0]
        ids = positions[0]

        if top_k < total:
            # Pull in every candidate tied with the k-th result so the
            # insertion-order tie break is applied across the boundary
            _, range_sims, range_ids = self.index.range_search(
                query, float(sims[-1]) - TIE_EPSILON
            )
            if len(range_ids) >= top_k:
                sims, ids = range_sims, range_ids

        candidates = sorted(
            ((1.0 - float(sim), int(pos)) for sim, pos in zip(sims, ids) if pos >= 0),
            key=lambda pair: (pair[0], pair[1]),
        )[:top_k]

        results = [
            RetrievalResult(chunk=self._chunks[pos], distance=distance)
            for distance, pos in candidates
        ]

        logger.info(
            "vector_search_completed",
            top_k=top_k,
            results_found=len(results),
            top_distance=results[0].distance if results else None,
        )

        return results

    def count(self) -> int:
        return db.get_chunk_count(self.db_path)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the chunk store."""
        return {
            "initialized": self.index is not None,
            "vector_count": len(self._chunks),
            "dimension": self.dimension,
            "embedding_model": self.embedding_model,
            "metadata": db.get_index_metadata(self.db_path),
        }

    def rebuild(self) -> int:
        """Delete every chunk and start a new index generation.

        Returns:
            Number of chunks deleted
        """
        logger.warning("rebuilding_chunk_store", db_path=str(self.db_path))
        deleted = db.clear_all_chunks(self.db_path)
        self._reset()
        return deleted
