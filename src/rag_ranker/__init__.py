"""
rag-ranker: retrieval, weighted re-ranking and heuristic learning for
retrieval-augmented generation.
"""

from .core.errors import (
    BatchEmbeddingError,
    ConfigurationError,
    EmbeddingError,
    EmptyStoreError,
    InvalidDocumentError,
    InvalidQueryError,
    RankError,
    RetrievalError,
    UnknownStoreTypeError,
)
from .core.models import DecisionWeights, Document, ScoredDocument
from .embeddings import Embedder, HashingEmbedder, MatryoshkaEmbedder
from .ranking import HeuristicEngine, Retriever, SmartRetriever, WeightedDecisionEngine
from .stores import InMemoryVectorStore, SQLiteVectorStore, create_vector_store

__version__ = "1.0.0"

__all__ = [
    "BatchEmbeddingError",
    "ConfigurationError",
    "EmbeddingError",
    "EmptyStoreError",
    "InvalidDocumentError",
    "InvalidQueryError",
    "RankError",
    "RetrievalError",
    "UnknownStoreTypeError",
    "DecisionWeights",
    "Document",
    "ScoredDocument",
    "Embedder",
    "HashingEmbedder",
    "MatryoshkaEmbedder",
    "HeuristicEngine",
    "Retriever",
    "SmartRetriever",
    "WeightedDecisionEngine",
    "InMemoryVectorStore",
    "SQLiteVectorStore",
    "create_vector_store",
]
