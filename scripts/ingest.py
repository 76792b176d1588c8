#!/usr/bin/env python
"""Ingest local PDF manuals into the chunk store.

Usage:
    python scripts/ingest.py manuals/              # Ingest every PDF in a directory
    python scripts/ingest.py engine.pdf brakes.pdf # Ingest individual files
    python scripts/ingest.py manuals/ --rebuild    # Clear the store first
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from maintenance_assistant import config
from maintenance_assistant.errors import MaintenanceAssistantError
from maintenance_assistant.llm_client import GeminiClient
from maintenance_assistant.logging_config import configure_logging
from maintenance_assistant.rag.ingest import IngestPipeline
from maintenance_assistant.rag.store_faiss import ChunkStore
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Files processed:   {stats['files_processed']}")
        print(f"  Files failed:      {stats['files_failed']}")
        print(f"  Chunks stored:     {stats['chunks_created']}")
        print(f"  Chunks dropped:    {stats['chunks_dropped']}")
        print(f"  Time elapsed:      {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")

        if stats["files_failed"] > 0:
            print(f"Warning: {stats['files_failed']} file(s) failed to ingest.")
            print("   Check logs for details.\n")

        if stats["chunks_dropped"] > 0:
            print(f"Warning: {stats['chunks_dropped']} chunk(s) could not be embedded.\n")


def _merge(total: dict, stats: dict) -> None:
    for key, value in stats.items():
        total[key] = total.get(key, 0) + value


async def run(args) -> dict:
    if not config.GEMINI_API_KEY:
        raise RuntimeError("GEMINI_API_KEY is not set")

    client = GeminiClient(api_key=config.GEMINI_API_KEY)
    store = ChunkStore()
    store.init_or_load()

    try:
        if args.rebuild:
            deleted = store.rebuild()
            print(f"Cleared {deleted} existing chunk(s).")

        pipeline = IngestPipeline(
            embedder=client,
            store=store,
            concurrency=args.concurrency,
        )
        progress = ProgressReporter(verbose=args.verbose)
        progress.start("Ingesting Manuals")

        totals = {"files_processed": 0, "files_failed": 0, "chunks_created": 0, "chunks_dropped": 0}
        for path in args.paths:
            if path.is_dir():
                _merge(totals, await pipeline.ingest_directory(path, progress.update))
                continue

            progress.update(1, 1, path)
            try:
                report = await pipeline.ingest_path(path)
                totals["files_processed"] += 1
                totals["chunks_created"] += report.chunks_stored
                totals["chunks_dropped"] += report.chunks_dropped
            except (MaintenanceAssistantError, OSError, ValueError) as e:
                logger.error("file_ingestion_failed", path=str(path), error=str(e))
                totals["files_failed"] += 1

        progress.finish(totals)
        return totals

    finally:
        await client.aclose()


def main():
    """Main entry point for the ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF manuals into the chunk store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="+", type=Path, help="PDF files or directories")
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Clear the chunk store before ingesting",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help=f"Parallel embedding calls (default: {config.EMBED_CONCURRENCY})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose progress output")

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    try:
        stats = asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\n\nIngestion cancelled by user.\n")
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    if stats["files_failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
