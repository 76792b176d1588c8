"""Tests for the chunk store and nearest-neighbor search."""
import sqlite3
from unittest.mock import patch

import pytest

from maintenance_assistant import db
from maintenance_assistant.errors import EmbeddingDimensionMismatch, IngestionWriteFailed
from maintenance_assistant.rag.store_faiss import ChunkStore


def unit(*values):
    return list(values)


class TestPutBatch:
    async def test_assigns_contiguous_chunk_indices(self, store):
        stored = await store.put_batch(
            "uploads/a.pdf",
            [("first", unit(1, 0)), ("second", unit(0, 1)), ("third", unit(1, 1))],
        )

        assert [c.chunk_index for c in stored] == [0, 1, 2]
        assert [c.content for c in stored] == ["first", "second", "third"]
        assert all(c.source_document == "uploads/a.pdf" for c in stored)
        assert len({c.created_at for c in stored}) == 1

    async def test_empty_batch_is_noop(self, store):
        assert await store.put_batch("uploads/a.pdf", []) == []
        assert store.count() == 0

    async def test_mixed_dimensions_fail_without_writing(self, store):
        with pytest.raises(IngestionWriteFailed) as exc_info:
            await store.put_batch("uploads/a.pdf", [("one", unit(1, 0)), ("two", unit(1, 0, 0))])

        assert isinstance(exc_info.value.__cause__, EmbeddingDimensionMismatch)
        assert store.count() == 0

    async def test_dimension_fixed_by_first_batch(self, store):
        await store.put_batch("uploads/a.pdf", [("one", unit(1, 0))])

        with pytest.raises(IngestionWriteFailed):
            await store.put_batch("uploads/b.pdf", [("two", unit(1, 0, 0))])

        assert store.count() == 1

    async def test_dimension_enforced_across_store_instances(self, store, db_path):
        await store.put_batch("uploads/a.pdf", [("one", unit(1, 0))])
        other = ChunkStore(db_path=db_path)
        other.init_or_load()

        with pytest.raises(IngestionWriteFailed):
            await other.put_batch("uploads/b.pdf", [("two", unit(1, 0, 0))])

    async def test_write_failure_rolls_back_whole_batch(self, store):
        real_encode = db.encode_embedding
        calls = []

        def flaky_encode(embedding):
            calls.append(embedding)
            if len(calls) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return real_encode(embedding)

        with patch("maintenance_assistant.db.encode_embedding", side_effect=flaky_encode):
            with pytest.raises(IngestionWriteFailed):
                await store.put_batch(
                    "uploads/a.pdf",
                    [("one", unit(1, 0)), ("two", unit(0, 1)), ("three", unit(1, 1))],
                )

        assert store.count() == 0
        assert await store.nearest(unit(1, 0), k=5) == []
        # A failed first batch must not pin the index dimension
        assert db.get_index_metadata(store.db_path) is None

    async def test_reingestion_is_additive(self, store):
        await store.put_batch("uploads/a.pdf", [("one", unit(1, 0))])
        await store.put_batch("uploads/a.pdf", [("one again", unit(1, 0))])

        rows = db.get_chunks_for_document("uploads/a.pdf", store.db_path)
        assert [r["content"] for r in rows] == ["one", "one again"]
        assert [r["chunk_index"] for r in rows] == [0, 0]


class TestNearest:
    async def test_empty_store_returns_empty(self, store):
        assert await store.nearest(unit(1, 0), k=5) == []

    async def test_results_ascend_by_distance(self, store):
        await store.put_batch(
            "uploads/a.pdf",
            [("far", unit(-1, 0)), ("near", unit(1, 0.1)), ("mid", unit(0, 1))],
        )

        results = await store.nearest(unit(1, 0), k=3)

        assert [r.content for r in results] == ["near", "mid", "far"]
        distances = [r.distance for r in results]
        assert distances == sorted(distances)
        assert distances[1] == pytest.approx(1.0, abs=1e-6)
        assert distances[2] == pytest.approx(2.0, abs=1e-6)

    async def test_k_larger_than_corpus_returns_everything(self, store):
        await store.put_batch("uploads/a.pdf", [("a", unit(1, 0)), ("b", unit(0, 1))])

        results = await store.nearest(unit(1, 0), k=10)

        assert [r.content for r in results] == ["a", "b"]

    async def test_limits_to_k(self, store):
        await store.put_batch(
            "uploads/a.pdf",
            [(f"chunk {i}", unit(1, i / 10)) for i in range(8)],
        )

        results = await store.nearest(unit(1, 0), k=5)

        assert len(results) == 5
        assert [r.chunk.chunk_index for r in results] == [0, 1, 2, 3, 4]

    async def test_ties_broken_by_insertion_order(self, store):
        await store.put_batch("uploads/b.pdf", [("other", unit(0, 1))])
        await store.put_batch(
            "uploads/a.pdf",
            [("first", unit(2, 0)), ("second", unit(1, 0)), ("third", unit(3, 0))],
        )

        results = await store.nearest(unit(1, 0), k=2)

        # All three are identical after normalization; earliest inserted wins
        assert [r.content for r in results] == ["first", "second"]
        assert results[0].distance == pytest.approx(0.0, abs=1e-6)

    async def test_cosine_ignores_magnitude(self, store):
        await store.put_batch("uploads/a.pdf", [("scaled", unit(100, 0)), ("unit", unit(0, 1))])

        results = await store.nearest(unit(0.001, 0), k=1)

        assert results[0].content == "scaled"
        assert results[0].distance == pytest.approx(0.0, abs=1e-6)

    async def test_query_dimension_mismatch(self, store):
        await store.put_batch("uploads/a.pdf", [("a", unit(1, 0))])

        with pytest.raises(EmbeddingDimensionMismatch):
            await store.nearest(unit(1, 0, 0), k=1)

    async def test_non_positive_k(self, store):
        await store.put_batch("uploads/a.pdf", [("a", unit(1, 0))])

        assert await store.nearest(unit(1, 0), k=0) == []

    async def test_unsupported_metric(self, store):
        with pytest.raises(ValueError):
            await store.nearest(unit(1, 0), k=1, metric="l2")

    async def test_sees_batches_committed_by_other_instances(self, store, db_path):
        writer = ChunkStore(db_path=db_path)
        writer.init_or_load()
        await writer.put_batch("uploads/a.pdf", [("from writer", unit(1, 0))])

        results = await store.nearest(unit(1, 0), k=1)

        assert [r.content for r in results] == ["from writer"]

    async def test_rebuild_by_other_instance_drops_stale_chunks(self, store, db_path):
        await store.put_batch("uploads/a.pdf", [("old", unit(1, 0))])
        assert [r.content for r in await store.nearest(unit(1, 0), k=5)] == ["old"]

        other = ChunkStore(db_path=db_path)
        other.init_or_load()
        other.rebuild()
        await other.put_batch("uploads/b.pdf", [("new", unit(1, 0)), ("new2", unit(0, 1))])

        results = await store.nearest(unit(1, 0), k=5)

        assert [r.content for r in results] == ["new", "new2"]

    async def test_rebuild_by_other_instance_with_new_dimension(self, store, db_path):
        await store.put_batch("uploads/a.pdf", [("old", unit(1, 0))])

        other = ChunkStore(db_path=db_path)
        other.init_or_load()
        other.rebuild()
        await other.put_batch("uploads/b.pdf", [("new", unit(1, 0, 0)), ("new2", unit(0, 1, 0))])

        results = await store.nearest(unit(1, 0, 0), k=5)
        assert [r.content for r in results] == ["new", "new2"]

        stored = await store.put_batch("uploads/c.pdf", [("newer", unit(0, 0, 1))])
        assert [c.content for c in stored] == ["newer"]
        assert store.get_stats()["dimension"] == 3

    async def test_rebuild_clears_store(self, store):
        await store.put_batch("uploads/a.pdf", [("a", unit(1, 0))])

        assert store.rebuild() == 1
        assert await store.nearest(unit(1, 0), k=1) == []
        # New index generation accepts a new dimension
        await store.put_batch("uploads/a.pdf", [("a", unit(1, 0, 0))])
        assert store.get_stats()["dimension"] == 3
