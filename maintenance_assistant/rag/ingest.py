"""Ingest pipeline for uploaded PDF manuals.

Orchestrates:
- Trigger filtering (ingestion prefix + PDF content type)
- PDF text extraction
- Paragraph chunking
- Bounded-concurrency embedding with retries
- One atomic batch write per document
"""
import asyncio
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Any, Optional, Sequence
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from maintenance_assistant import config
from maintenance_assistant.errors import MaintenanceAssistantError
from maintenance_assistant.rag.chunker import ParagraphChunker, TextChunk
from maintenance_assistant.rag.pdf_parser import PDFParser
from maintenance_assistant.rag.retriever import Embedder
from maintenance_assistant.rag.store_faiss import ChunkStore
from maintenance_assistant.schemas import DocumentEvent
from maintenance_assistant.storage import LocalBucketStorage

logger = structlog.get_logger()


@dataclass(frozen=True)
class SourceDocument:
    """An uploaded document; the identifier is its storage path."""

    document_id: str
    content: bytes = field(repr=False)
    content_type: str = "application/pdf"


@dataclass
class IngestionReport:
    """Outcome of one document's ingestion run."""

    document_id: str
    status: str = "stored"  # stored | empty | failed
    chunks_found: int = 0
    chunks_stored: int = 0
    chunks_dropped: int = 0
    error: Optional[str] = None


def is_pdf(content_type: str) -> bool:
    return "pdf" in (content_type or "").lower()


def should_ingest(event: DocumentEvent, prefix: str = None) -> bool:
    """Whether a storage event names a PDF under the ingestion prefix."""
    prefix = config.INGEST_PREFIX if prefix is None else prefix
    return event.name.startswith(prefix) and is_pdf(event.content_type)


def _is_retryable(error: BaseException) -> bool:
    return getattr(error, "retryable", False)


class IngestPipeline:
    """Pipeline for ingesting uploaded documents into the chunk store."""

    def __init__(
        self,
        embedder: Embedder,
        store: ChunkStore,
        storage: Optional[LocalBucketStorage] = None,
        parser: Optional[PDFParser] = None,
        chunker: Optional[ParagraphChunker] = None,
        concurrency: int = None,
        max_attempts: int = None,
        retry_wait=None,
        prefix: str = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Client exposing ``async embed(text)``
            store: Chunk store receiving the batch
            storage: Object storage for triggered documents
            parser: PDF text extractor
            chunker: Paragraph chunker
            concurrency: Max in-flight embedding calls (default from config)
            max_attempts: Embedding attempts per chunk (default from config)
            retry_wait: tenacity wait strategy between attempts
            prefix: Ingestion prefix for storage events (default from config)
        """
        self.embedder = embedder
        self.store = store
        self.storage = storage or LocalBucketStorage()
        self.parser = parser or PDFParser()
        self.chunker = chunker or ParagraphChunker()
        self.concurrency = concurrency or config.EMBED_CONCURRENCY
        self.max_attempts = max_attempts or config.EMBED_MAX_ATTEMPTS
        self.retry_wait = retry_wait or wait_exponential_jitter(initial=0.5, max=8, jitter=0.5)
        self.prefix = config.INGEST_PREFIX if prefix is None else prefix

        self.stats = self._empty_stats()

        logger.info(
            "ingest_pipeline_initialized",
            concurrency=self.concurrency,
            max_attempts=self.max_attempts,
            min_chunk_chars=self.chunker.min_chars,
            prefix=self.prefix,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "files_processed": 0,
            "files_failed": 0,
            "chunks_created": 0,
            "chunks_dropped": 0,
        }

    async def handle_event(self, event: DocumentEvent) -> Optional[IngestionReport]:
        """Entry point for storage arrival notifications.

        Non-matching events are ignored. Failures are logged and reported,
        never raised: there is no caller to notify.

        Returns:
            IngestionReport, or None if the event was ignored
        """
        if not should_ingest(event, self.prefix):
            logger.debug(
                "event_ignored",
                bucket=event.bucket,
                name=event.name,
                content_type=event.content_type,
            )
            return None

        logger.info("processing_document", bucket=event.bucket, name=event.name)

        try:
            content = await self.storage.download(event.bucket, event.name)
            document = SourceDocument(
                document_id=event.name,
                content=content,
                content_type=event.content_type,
            )
            return await self.ingest_document(document)

        except Exception as e:
            logger.error(
                "document_ingestion_failed",
                bucket=event.bucket,
                name=event.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.stats["files_failed"] += 1
            return IngestionReport(document_id=event.name, status="failed", error=str(e))

    async def _embed_with_retry(self, text: str) -> List[float]:
        """Embed one chunk, retrying transient failures with backoff."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=lambda state: logger.warning(
                "embedding_retry",
                attempt=state.attempt_number,
                max_attempts=self.max_attempts,
                error=str(state.outcome.exception()),
            ),
        ):
            with attempt:
                return await self.embedder.embed(text)

    async def embed_chunks(
        self, chunks: Sequence[TextChunk]
    ) -> List[Optional[List[float]]]:
        """Embed chunks concurrently, bounded by the concurrency limit.

        Returns:
            One entry per chunk in input order; None where embedding failed
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_one(chunk: TextChunk) -> Optional[List[float]]:
            async with semaphore:
                try:
                    return await self._embed_with_retry(chunk.content)
                except MaintenanceAssistantError as e:
                    logger.warning(
                        "chunk_embedding_dropped",
                        chunk_index=chunk.chunk_index,
                        chunk_length=len(chunk.content),
                        error_code=e.code,
                        error=str(e),
                    )
                    return None

        return await asyncio.gather(*(embed_one(chunk) for chunk in chunks))

    async def ingest_document(self, document: SourceDocument) -> IngestionReport:
        """Ingest a single document.

        Raises:
            ExtractionFailed: If no text can be extracted; nothing is written
            IngestionWriteFailed: If the batch write fails; nothing is written
        """
        logger.info("ingesting_document", document_id=document.document_id)

        # PyMuPDF extraction is CPU-bound; keep it off the event loop
        text = await asyncio.to_thread(self.parser.extract_text, document.content)
        chunks = self.chunker.chunk_text(text)

        if not chunks:
            logger.warning("no_chunks_created", document_id=document.document_id)
            self.stats["files_processed"] += 1
            return IngestionReport(document_id=document.document_id, status="empty")

        embeddings = await self.embed_chunks(chunks)

        batch = [
            (chunk.content, embedding)
            for chunk, embedding in zip(chunks, embeddings)
            if embedding is not None
        ]
        dropped = len(chunks) - len(batch)

        stored = await self.store.put_batch(document.document_id, batch)

        self.stats["files_processed"] += 1
        self.stats["chunks_created"] += len(stored)
        self.stats["chunks_dropped"] += dropped

        logger.info(
            "document_ingested",
            document_id=document.document_id,
            chunks_found=len(chunks),
            chunks_stored=len(stored),
            chunks_dropped=dropped,
        )

        return IngestionReport(
            document_id=document.document_id,
            status="stored" if stored else ("failed" if dropped else "empty"),
            chunks_found=len(chunks),
            chunks_stored=len(stored),
            chunks_dropped=dropped,
        )

    async def ingest_path(self, file_path: Path, document_id: str = None) -> IngestionReport:
        """Ingest a local PDF file directly, bypassing the trigger filter."""
        content_type = mimetypes.guess_type(file_path.name)[0] or ""
        if not is_pdf(content_type):
            raise ValueError(f"Not a PDF file: {file_path}")

        document = SourceDocument(
            document_id=document_id or f"{self.prefix}{file_path.name}",
            content=file_path.read_bytes(),
            content_type=content_type,
        )
        return await self.ingest_document(document)

    async def ingest_directory(
        self, directory: Path, progress_callback=None
    ) -> Dict[str, Any]:
        """Ingest every PDF under a directory.

        Args:
            directory: Directory to scan recursively
            progress_callback: Optional callback function(current, total, file_path)

        Returns:
            Dictionary with ingestion statistics
        """
        if not directory.exists():
            raise FileNotFoundError(f"Directory not found: {directory}")

        pdf_files = sorted(directory.rglob("*.pdf"))
        logger.info("pdf_files_discovered", count=len(pdf_files), directory=str(directory))

        self.stats = self._empty_stats()

        for idx, file_path in enumerate(pdf_files, 1):
            if progress_callback:
                progress_callback(idx, len(pdf_files), file_path)

            document_id = f"{self.prefix}{file_path.relative_to(directory).as_posix()}"
            try:
                await self.ingest_path(file_path, document_id=document_id)
            except (MaintenanceAssistantError, OSError, ValueError) as e:
                logger.error(
                    "file_ingestion_failed",
                    path=str(file_path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.stats["files_failed"] += 1
                # Continue with next file instead of failing entirely

        logger.info("ingest_directory_completed", stats=self.stats)
        return self.stats
