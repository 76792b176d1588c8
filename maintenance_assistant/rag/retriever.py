"""Retriever for semantic search over ingested manuals.

Handles:
- Question embedding
- Nearest-neighbor search in the chunk store
- Context block formatting
"""
from typing import List, Optional, Protocol, Sequence
import structlog

from maintenance_assistant import config
from maintenance_assistant.rag.store_faiss import ChunkStore, RetrievalResult

logger = structlog.get_logger()

NO_CONTEXT_FOUND = "No specific context found in the provided documents."


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]: ...


def format_context(results: Sequence[RetrievalResult]) -> str:
    """Render retrieved chunks as the prompt's context block.

    Chunks keep the retrieval order (most relevant first), each prefixed by
    its source document. An empty result set renders as NO_CONTEXT_FOUND.
    """
    if not results:
        return NO_CONTEXT_FOUND

    return "".join(
        f"\n\n--- From document: {result.source} ---\n{result.content}"
        for result in results
    )


class Retriever:
    """Semantic retriever for the query pipeline."""

    def __init__(
        self,
        embedder: Embedder,
        store: ChunkStore,
        top_k: Optional[int] = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Client exposing ``async embed(text)``
            store: Chunk store to search
            top_k: Number of results to retrieve (default from config)
        """
        self.embedder = embedder
        self.store = store
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k

    async def retrieve(
        self, question: str, top_k: Optional[int] = None
    ) -> List[RetrievalResult]:
        """Retrieve the chunks nearest to a question.

        There is no relevance cutoff: the top k are returned however far
        away they are.

        Raises:
            EmbeddingRejected, EmbeddingUnavailable: If the question cannot be embedded
            EmbeddingDimensionMismatch: If the question vector doesn't fit the index
        """
        top_k = self.top_k if top_k is None else top_k

        logger.info("retrieval_started", question_length=len(question), top_k=top_k)

        question_vector = await self.embedder.embed(question)
        results = await self.store.nearest(question_vector, k=top_k)

        logger.info(
            "retrieval_completed",
            results_returned=len(results),
            top_distance=results[0].distance if results else None,
            sources=[r.source for r in results],
        )

        return results

    async def retrieve_context(self, question: str, top_k: Optional[int] = None) -> str:
        """Retrieve and format context for a question (convenience method)."""
        return format_context(await self.retrieve(question, top_k=top_k))
