"""Process-wide service wiring.

Clients and stores are built once at process start and shared by every
request; nothing is re-initialized per call.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional
import structlog

from maintenance_assistant import config
from maintenance_assistant.llm_client import GeminiClient
from maintenance_assistant.orchestrator import QueryOrchestrator
from maintenance_assistant.rag.ingest import IngestPipeline
from maintenance_assistant.rag.retriever import Retriever
from maintenance_assistant.rag.store_faiss import ChunkStore
from maintenance_assistant.rag.watcher import UploadsWatcher

logger = structlog.get_logger()


@dataclass
class Services:
    """Everything a request handler needs, built once."""

    client: GeminiClient
    store: ChunkStore
    pipeline: IngestPipeline
    orchestrator: QueryOrchestrator
    tokens: Dict[str, str] = field(default_factory=dict)
    watcher: Optional[UploadsWatcher] = None

    async def close(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()
        await self.client.aclose()
        logger.info("services_closed")


def build_services(
    api_key: str = None,
    watch_uploads: bool = None,
) -> Services:
    """Construct clients, store and pipelines from configuration.

    Raises:
        RuntimeError: If no API key is configured
    """
    api_key = api_key or config.GEMINI_API_KEY
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY is not set")

    watch_uploads = config.WATCH_UPLOADS if watch_uploads is None else watch_uploads

    client = GeminiClient(api_key=api_key)

    store = ChunkStore()
    store.init_or_load()

    pipeline = IngestPipeline(embedder=client, store=store)
    retriever = Retriever(embedder=client, store=store)
    orchestrator = QueryOrchestrator(retriever=retriever, generator=client)

    services = Services(
        client=client,
        store=store,
        pipeline=pipeline,
        orchestrator=orchestrator,
        tokens=config.parse_api_tokens(),
        watcher=UploadsWatcher(pipeline) if watch_uploads else None,
    )

    logger.info(
        "services_built",
        chunk_count=store.count(),
        principals=len(services.tokens),
        watch_uploads=watch_uploads,
    )
    return services
