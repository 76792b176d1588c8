"""Upload watcher: the storage arrival trigger for local deployments.

Monitors ``<uploads root>/<bucket>/`` and turns newly finalized files into
DocumentEvents for the ingest pipeline. Only arrivals are handled; the chunk
store has no update or delete path.
"""
import asyncio
import mimetypes
from pathlib import Path
from typing import Dict, Optional, Set
import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from maintenance_assistant import config
from maintenance_assistant.rag.ingest import IngestPipeline
from maintenance_assistant.schemas import DocumentEvent

logger = structlog.get_logger()


def event_for_path(root: Path, file_path: Path) -> Optional[DocumentEvent]:
    """Map a file under the uploads root to a storage event.

    The first path component below the root is the bucket; the rest is the
    object name.
    """
    try:
        relative = file_path.resolve().relative_to(root.resolve())
    except ValueError:
        return None

    if len(relative.parts) < 2:
        return None

    bucket, name = relative.parts[0], "/".join(relative.parts[1:])
    content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
    return DocumentEvent(bucket=bucket, name=name, content_type=content_type)


class UploadEventHandler(FileSystemEventHandler):
    """Turns file system arrivals into debounced ingestion runs."""

    def __init__(
        self,
        pipeline: IngestPipeline,
        root: Path,
        loop: asyncio.AbstractEventLoop,
        debounce_seconds: float = 2.0,
    ):
        """Initialize the handler.

        Args:
            pipeline: Pipeline receiving the events
            root: Uploads root directory
            loop: Event loop to schedule ingestion on
            debounce_seconds: Quiet period before a file is considered finalized
        """
        super().__init__()
        self.pipeline = pipeline
        self.root = root
        self.loop = loop
        self.debounce_seconds = debounce_seconds

        # Pending file -> debounce timer; mutated only on the event loop
        self._pending: Dict[Path, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self._schedule(Path(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        # Large uploads emit several writes; restart the debounce timer
        if not event.is_directory and Path(event.src_path) in self._pending:
            self._schedule(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        # Uploaders that write to a temp name and rename on completion
        if not event.is_directory:
            self._schedule(Path(event.dest_path))

    def _schedule(self, file_path: Path):
        self.loop.call_soon_threadsafe(self._debounce, file_path)

    def _debounce(self, file_path: Path):
        handle = self._pending.pop(file_path, None)
        if handle is not None:
            handle.cancel()
        self._pending[file_path] = self.loop.call_later(
            self.debounce_seconds, self._fire, file_path
        )

    def _fire(self, file_path: Path):
        self._pending.pop(file_path, None)
        event = event_for_path(self.root, file_path)
        if event is None:
            logger.debug("upload_outside_bucket_ignored", path=str(file_path))
            return

        logger.info("upload_detected", bucket=event.bucket, name=event.name)
        task = self.loop.create_task(self.pipeline.handle_event(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def shutdown(self):
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()


class UploadsWatcher:
    """Watcher for the uploads directory."""

    def __init__(
        self,
        pipeline: IngestPipeline,
        uploads_dir: Optional[Path] = None,
        debounce_seconds: float = 2.0,
    ):
        self.pipeline = pipeline
        self.uploads_dir = Path(uploads_dir or config.UPLOADS_DIR)
        self.debounce_seconds = debounce_seconds

        self.event_handler: Optional[UploadEventHandler] = None
        self.observer: Optional[Observer] = None
        self._started = False

    async def start(self):
        """Start watching for uploads."""
        if self._started:
            logger.warning("watcher_already_started")
            return

        self.uploads_dir.mkdir(parents=True, exist_ok=True)

        self.event_handler = UploadEventHandler(
            pipeline=self.pipeline,
            root=self.uploads_dir,
            loop=asyncio.get_running_loop(),
            debounce_seconds=self.debounce_seconds,
        )

        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(self.uploads_dir), recursive=True)
        self.observer.start()
        self._started = True

        logger.info("uploads_watcher_started", uploads_dir=str(self.uploads_dir))

    def stop(self):
        """Stop watching for uploads."""
        if not self._started:
            return

        if self.observer:
            self.observer.stop()
            self.observer.join(timeout=5.0)

        if self.event_handler:
            self.event_handler.shutdown()

        self._started = False
        logger.info("uploads_watcher_stopped")

    def is_alive(self) -> bool:
        return self._started and self.observer is not None and self.observer.is_alive()
