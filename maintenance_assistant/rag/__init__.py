"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- PDF text extraction
- Paragraph chunking
- FAISS-backed chunk storage
- Document ingestion and the upload watcher
- Semantic retrieval and prompt composition
"""
