"""
Error Types

This module defines the exception hierarchy shared by the stores, the
retrievers and the ranking engines.

Design Goals
------------
- Every error carries a stable machine-readable code
- Every error carries a UTC timestamp and a metadata map
- Remediation hints travel in ``metadata["suggestion"]``
- No internal retries: callers decide on retry policy
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class RankError(Exception):
    """
    Base class for all rag-ranker errors.

    Parameters
    ----------
    message : str
        Human-readable description.

    metadata : Optional[Dict[str, Any]]
        Additional context (e.g. ``suggestion``).
    """

    code: str = "RANK_ERROR"

    def __init__(
        self,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.timestamp = datetime.now(timezone.utc)

    @property
    def suggestion(self) -> Optional[str]:
        return self.metadata.get("suggestion")

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a JSON-safe representation for logging or HTTP responses.
        """
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "metadata": {k: _json_safe(v) for k, v in self.metadata.items()},
            "timestamp": self.timestamp.isoformat(),
        }


def _json_safe(value: Any) -> Any:
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    return repr(value)


# ---------------------------------------------------------------------
# Document / query validation
# ---------------------------------------------------------------------

class InvalidDocumentError(RankError):
    """Raised when a document is missing its text or is otherwise malformed."""

    code = "INVALID_DOCUMENT"

    def __init__(self, reason: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        meta = {
            "reason": reason,
            "suggestion": "Ensure every document has a non-empty 'text' field",
        }
        meta.update(metadata or {})
        super().__init__(f"Invalid document: {reason}", meta)


class InvalidQueryError(RankError):
    """Raised when a search query is empty or not a string."""

    code = "INVALID_QUERY"

    def __init__(self, message: str = "Query must be a non-empty string") -> None:
        super().__init__(
            message,
            {"suggestion": "Pass a non-empty query string"},
        )


# ---------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------

class EmbeddingError(RankError):
    """Raised when embedding generation fails."""

    code = "EMBEDDING_ERROR"

    @classmethod
    def model_not_found(cls, model: str) -> "EmbeddingError":
        return cls(
            f'Embedding model "{model}" not found',
            {
                "model": model,
                "suggestion": "Check that the model is pulled/loaded on the embedding server",
            },
        )

    @classmethod
    def network_error(cls, exc: BaseException) -> "EmbeddingError":
        return cls(
            "Failed to fetch embeddings from server",
            {
                "cause": exc,
                "suggestion": "Check that the embedding server (Ollama, LM Studio, ...) is running and reachable",
            },
        )

    @classmethod
    def dimension_mismatch(cls, expected: int, actual: int) -> "EmbeddingError":
        return cls(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            {
                "expected": expected,
                "actual": actual,
                "suggestion": "Ensure all embeddings use the same dimension",
            },
        )

    @classmethod
    def malformed_response(cls, detail: str) -> "EmbeddingError":
        return cls(
            f"Malformed embedding response: {detail}",
            {"suggestion": "Verify the endpoint speaks the OpenAI embeddings protocol"},
        )


class BatchEmbeddingError(EmbeddingError):
    """
    Raised after a batch ingestion in which some documents failed to embed.

    The documents that did embed have already been inserted; ``failed_ids``
    lists the ones that did not.
    """

    code = "PARTIAL_BATCH_FAILURE"

    def __init__(
        self,
        failed_ids: List[str],
        inserted: int,
        errors: List[BaseException],
    ) -> None:
        super().__init__(
            f"{len(failed_ids)} document(s) failed to embed; {inserted} inserted",
            {
                "failed_ids": list(failed_ids),
                "inserted": inserted,
                "errors": list(errors),
                "suggestion": "Retry the failed documents once the embedding provider is healthy",
            },
        )
        self.failed_ids = list(failed_ids)
        self.inserted = inserted
        self.errors = list(errors)


# ---------------------------------------------------------------------
# Store / retrieval
# ---------------------------------------------------------------------

class EmptyStoreError(RankError):
    """Raised when searching or updating a store that holds no documents."""

    code = "EMPTY_STORE"

    def __init__(self) -> None:
        super().__init__(
            "Cannot operate on an empty vector store",
            {"suggestion": "Add documents using add_documents() first"},
        )


class RetrievalError(RankError):
    """Wraps any store failure together with the query that triggered it."""

    code = "RETRIEVAL_ERROR"

    def __init__(self, query: str, cause: BaseException) -> None:
        super().__init__(
            f"Retrieval failed: {cause}",
            {"query": query, "cause": cause},
        )
        self.query = query
        self.cause = cause


class UnknownStoreTypeError(RankError):
    """Raised by the store factory for an unsupported store type."""

    code = "UNKNOWN_STORE_TYPE"

    def __init__(self, store_type: str) -> None:
        super().__init__(
            f"Unknown vector store type: {store_type}",
            {"store_type": store_type, "suggestion": "Use 'memory' or 'sqlite'"},
        )


class ConfigurationError(RankError):
    """Raised when a component is configured with invalid values."""

    code = "CONFIGURATION_ERROR"
