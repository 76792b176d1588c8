"""SQLite persistence for chunk records and their embeddings.

Tables:
- chunks: one row per stored chunk, raw float32 embedding included
- index_metadata: the embedding model and dimension of the current index
  generation

The database runs in WAL mode so readers never block the batch writer.
"""
import sqlite3
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence, Tuple
from datetime import datetime, timezone
import numpy as np
import structlog

from maintenance_assistant import config
from maintenance_assistant.errors import EmbeddingDimensionMismatch

logger = structlog.get_logger()


def get_connection(db_path: Path = None) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(db_path or config.DB_PATH, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path = None) -> None:
    """Initialize the database schema if it doesn't exist."""
    db_path = Path(db_path or config.DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS index_metadata (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                embedding_model TEXT NOT NULL,
                embedding_dimension INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Append-only; re-ingesting a document adds a second set of rows
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_document TEXT NOT NULL,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                embedding BLOB NOT NULL,
                dimension INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_source_document
            ON chunks(source_document)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(db_path))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def encode_embedding(embedding: Sequence[float]) -> bytes:
    return np.asarray(embedding, dtype=np.float32).tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def insert_chunk_batch(
    source_document: str,
    chunks: Sequence[Tuple[str, Sequence[float]]],
    embedding_model: str,
    db_path: Path = None,
) -> List[Dict[str, Any]]:
    """Insert all chunks of one document in a single transaction.

    The first batch ever written fixes the index dimension; later batches
    must match it. Either every row is committed or none is.

    Args:
        source_document: Storage path of the source document
        chunks: Ordered (content, embedding) pairs; chunk_index is the position
        embedding_model: Name of the embedding model used
        db_path: Database path (default from config)

    Returns:
        Inserted rows as dicts (id, source_document, chunk_index, content, created_at)

    Raises:
        EmbeddingDimensionMismatch: If a vector does not match the index dimension
        sqlite3.Error: On write failure (transaction rolled back)
    """
    if not chunks:
        return []

    dimension = len(chunks[0][1])
    for _, embedding in chunks:
        if len(embedding) != dimension:
            raise EmbeddingDimensionMismatch(dimension, len(embedding))

    created_at = datetime.now(timezone.utc).isoformat()

    conn = get_connection(db_path)
    # Explicit transaction control
    conn.isolation_level = None
    cursor = conn.cursor()

    try:
        cursor.execute("BEGIN IMMEDIATE")

        cursor.execute("SELECT embedding_dimension FROM index_metadata WHERE id = 1")
        row = cursor.fetchone()
        if row is None:
            cursor.execute(
                """
                INSERT INTO index_metadata (id, embedding_model, embedding_dimension, created_at)
                VALUES (1, ?, ?, ?)
                """,
                (embedding_model, dimension, created_at),
            )
        elif row["embedding_dimension"] != dimension:
            raise EmbeddingDimensionMismatch(row["embedding_dimension"], dimension)

        inserted = []
        for chunk_index, (content, embedding) in enumerate(chunks):
            cursor.execute(
                """
                INSERT INTO chunks (
                    source_document, chunk_index, content,
                    embedding, dimension, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    source_document,
                    chunk_index,
                    content,
                    encode_embedding(embedding),
                    dimension,
                    created_at,
                ),
            )
            inserted.append({
                "id": cursor.lastrowid,
                "source_document": source_document,
                "chunk_index": chunk_index,
                "content": content,
                "created_at": created_at,
            })

        cursor.execute("COMMIT")

        logger.info(
            "chunk_batch_inserted",
            source_document=source_document,
            count=len(inserted),
        )
        return inserted

    except Exception as e:
        if conn.in_transaction:
            cursor.execute("ROLLBACK")
        logger.error(
            "chunk_batch_insert_failed",
            source_document=source_document,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        conn.close()


def get_chunks_after(last_id: int, db_path: Path = None) -> List[Dict[str, Any]]:
    """Get committed chunks with id greater than last_id, in insertion order.

    Returns:
        List of chunk dicts including the decoded ``embedding`` array
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute(
            """
            SELECT id, source_document, chunk_index, content,
                   embedding, dimension, created_at
            FROM chunks
            WHERE id > ?
            ORDER BY id
            """,
            (last_id,),
        )

        chunks = []
        for row in cursor.fetchall():
            chunk = dict(row)
            chunk["embedding"] = decode_embedding(chunk["embedding"])
            chunks.append(chunk)
        return chunks

    except Exception as e:
        logger.error("chunks_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_chunks_for_document(
    source_document: str, db_path: Path = None
) -> List[Dict[str, Any]]:
    """Get all chunk records for one source document, ordered by insertion."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute(
            """
            SELECT id, source_document, chunk_index, content, created_at
            FROM chunks
            WHERE source_document = ?
            ORDER BY id
            """,
            (source_document,),
        )
        return [dict(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def get_index_metadata(db_path: Path = None) -> Optional[Dict[str, Any]]:
    """Get the current index generation, or None if nothing was indexed."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT * FROM index_metadata WHERE id = 1")
        row = cursor.fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def clear_all_chunks(db_path: Path = None) -> int:
    """Delete all chunks and start a new index generation.

    Returns:
        Number of chunks deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM chunks")
        count = cursor.fetchone()[0]

        cursor.execute("DELETE FROM chunks")
        cursor.execute("DELETE FROM index_metadata")
        conn.commit()

        logger.info("chunks_cleared", count=count)
        return count

    except Exception as e:
        conn.rollback()
        logger.error("chunks_clear_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_chunk_count(db_path: Path = None) -> int:
    """Get the total number of chunks in the database."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("SELECT COUNT(*) FROM chunks")
        return cursor.fetchone()[0]

    except Exception as e:
        logger.error("chunk_count_failed", error=str(e))
        raise
    finally:
        conn.close()
