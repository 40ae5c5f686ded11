"""
Embeddings Package

Embedding function contract plus the HTTP, hashing and Matryoshka
implementations.
"""

from .base import EmbeddingFunction, supports_batch
from .embedder import Embedder
from .local import HashingEmbedder, MatryoshkaEmbedder

__all__ = [
    "EmbeddingFunction",
    "supports_batch",
    "Embedder",
    "HashingEmbedder",
    "MatryoshkaEmbedder",
]
