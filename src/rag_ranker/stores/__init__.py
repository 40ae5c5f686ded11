"""
Vector Store Package

In-memory and SQL-backed vector stores sharing one contract, plus a
factory for configuration-driven construction.
"""

from typing import Any

from ..core.errors import UnknownStoreTypeError
from .base import AbstractVectorStore, cosine_similarity, matches_filter
from .memory import InMemoryVectorStore
from .sqlite import SQLiteVectorStore


def create_vector_store(store_type: str, embedding_fn: Any, **options: Any) -> AbstractVectorStore:
    """
    Create a vector store by type name ('memory', 'inmemory' or 'sqlite').

    Raises
    ------
    UnknownStoreTypeError
        For any other type name.
    """
    kind = str(store_type or "").lower().strip()

    if kind in ("memory", "inmemory"):
        return InMemoryVectorStore(embedding_fn, **options)
    if kind == "sqlite":
        return SQLiteVectorStore(embedding_fn, **options)

    raise UnknownStoreTypeError(store_type)


__all__ = [
    "AbstractVectorStore",
    "InMemoryVectorStore",
    "SQLiteVectorStore",
    "cosine_similarity",
    "matches_filter",
    "create_vector_store",
]
