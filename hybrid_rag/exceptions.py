"""
Exception hierarchy for the Hybrid RAG pipeline.

Every error carries a human-readable message plus an optional ``details``
dict with context for logs.
"""
from typing import Any


class HybridRagError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class DocumentConversionError(HybridRagError):
    """Raised when a document cannot be converted into a document tree."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, details)


class UnsupportedFileTypeError(DocumentConversionError):
    """Raised for file extensions the parser does not accept."""


class EmbeddingError(HybridRagError):
    """Raised when the embedding provider returns unusable output."""


class EmbeddingMismatchError(HybridRagError):
    """Raised when chunk and embedding arrays are not positionally aligned."""

    def __init__(self, chunks: int, dense: int, sparse: int) -> None:
        super().__init__(
            "Chunks and embeddings arrays must have the same length",
            {"chunks": chunks, "dense": dense, "sparse": sparse},
        )


class VectorStoreError(HybridRagError):
    """Raised for vector store failures that are not tolerated."""


class RetrievalError(HybridRagError):
    """Raised when any stage of a hybrid search fails."""
