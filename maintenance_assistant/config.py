"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads")))

# Gemini configuration (embedding + generation)
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")  # never log this
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemini-1.5-pro-latest")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-004")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30.0"))

# RAG parameters
MIN_CHUNK_CHARS = int(os.getenv("MIN_CHUNK_CHARS", "50"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))
EMBED_MAX_ATTEMPTS = int(os.getenv("EMBED_MAX_ATTEMPTS", "3"))

# Storage trigger
INGEST_PREFIX = os.getenv("INGEST_PREFIX", "uploads/")
DEFAULT_BUCKET = os.getenv("DEFAULT_BUCKET", "manuals")
WATCH_UPLOADS = os.getenv("WATCH_UPLOADS", "true").lower() in ("1", "true", "yes")

# Callers send at most this many turns of history
HISTORY_WINDOW = int(os.getenv("HISTORY_WINDOW", "6"))

# Auth: "token:principal,token2:principal2"
API_TOKENS = os.getenv("API_TOKENS", "")
INGEST_WEBHOOK_TOKEN = os.getenv("INGEST_WEBHOOK_TOKEN")

# Database
DB_PATH = DATA_DIR / "chunks.sqlite"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def parse_api_tokens(raw: str = None) -> dict:
    """Parse the API_TOKENS setting into a token -> principal mapping.

    Entries without a principal map the token to itself.
    """
    raw = API_TOKENS if raw is None else raw
    tokens = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, _, principal = entry.partition(":")
        tokens[token.strip()] = principal.strip() or token.strip()
    return tokens
