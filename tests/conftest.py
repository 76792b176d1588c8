"""Shared fixtures: deterministic fake model clients and a temporary chunk store."""
import re
import zlib
from typing import List

import numpy as np
import pytest

from maintenance_assistant.rag.store_faiss import ChunkStore

EMBEDDING_DIM = 256

MANUAL_TEXT = (
    "Procedure A.\n\n"
    "This is a sufficiently long paragraph about replacing part X, "
    "well over fifty characters in length.\n\n"
    "Tiny."
)


def bag_of_words_vector(text: str, dimension: int = EMBEDDING_DIM) -> List[float]:
    """Hash lowercase word stems into a fixed-size count vector."""
    vector = np.zeros(dimension, dtype=np.float32)
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        stem = word[:5]
        vector[zlib.crc32(stem.encode()) % dimension] += 1.0
    return vector.tolist()


class FakeEmbedder:
    """Deterministic stand-in for the embedding service."""

    def __init__(self, dimension: int = EMBEDDING_DIM):
        self.dimension = dimension
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return bag_of_words_vector(text, self.dimension)


class FakeGenerator:
    """Records prompts and returns a canned answer."""

    def __init__(self, answer: str = "Remove the four bolts, then lift part X out."):
        self.answer = answer
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "chunks.sqlite"


@pytest.fixture
def store(db_path) -> ChunkStore:
    chunk_store = ChunkStore(db_path=db_path, embedding_model="test-embedding")
    chunk_store.init_or_load()
    return chunk_store
