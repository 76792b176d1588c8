"""Exception hierarchy for the maintenance assistant.

Ingestion-side errors are logged and end a document's run. Query-side errors
reach the caller only as one of three kinds: ``unauthenticated``,
``invalid-argument`` or ``internal``.
"""
from typing import Any, Dict, Optional


class MaintenanceAssistantError(Exception):
    """Base exception for all application errors."""

    code = "internal"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize with a message and optional debugging context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for logs
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Ingestion


class ExtractionFailed(MaintenanceAssistantError):
    """Document text could not be extracted (corrupt or non-text PDF)."""

    code = "extraction_failed"


class IngestionWriteFailed(MaintenanceAssistantError):
    """A chunk batch could not be committed; nothing was written."""

    code = "ingestion_write_failed"


# Embedding


class EmbeddingError(MaintenanceAssistantError):
    """Base class for embedding failures."""

    code = "embedding_error"


class EmbeddingRejected(EmbeddingError):
    """The embedding model refused the input (too long, unsupported text)."""

    code = "embedding_rejected"


class EmbeddingUnavailable(EmbeddingError):
    """Transport, timeout or service error while embedding."""

    code = "embedding_unavailable"
    retryable = True


class EmbeddingDimensionMismatch(EmbeddingError):
    """A vector does not match the dimension of the index generation."""

    code = "embedding_dimension_mismatch"

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


# Generation


class GenerationError(MaintenanceAssistantError):
    """Base class for answer generation failures."""

    code = "generation_error"


class GenerationUnavailable(GenerationError):
    """Transport, timeout or service error while generating."""

    code = "generation_unavailable"
    retryable = True


class GenerationEmpty(GenerationError):
    """The generative model returned no candidate output."""

    code = "generation_empty"


# Caller-visible query errors


class QueryError(MaintenanceAssistantError):
    """An error surfaced to the query caller."""

    status_code = 500


class Unauthenticated(QueryError):
    """The request carries no authenticated principal."""

    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "You must be logged in."):
        super().__init__(message)


class InvalidArgument(QueryError):
    """The request payload is malformed or the question is empty."""

    code = "invalid-argument"
    status_code = 400


class Internal(QueryError):
    """Opaque wrapper for any other failure; the cause stays in __cause__."""

    code = "internal"
    status_code = 500

    def __init__(
        self, message: str = "An error occurred while processing your request."
    ):
        super().__init__(message)
