"""
Dependency Providers

Process-wide singletons built from ``settings``. Tests replace them with
``app.dependency_overrides``.
"""

from functools import lru_cache

from ..config import settings
from ..embeddings.embedder import Embedder
from ..ranking.heuristics import HeuristicEngine
from ..ranking.retriever import Retriever
from ..ranking.smart_retriever import SmartRetriever
from ..stores import AbstractVectorStore, create_vector_store


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_vector_store() -> AbstractVectorStore:
    options = dict(
        default_dim=settings.default_dim,
        batch_size=settings.batch_size,
        max_concurrent=settings.max_concurrent,
        auto_chunk=settings.auto_chunk,
        auto_chunk_threshold=settings.auto_chunk_threshold,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    if settings.store_type.lower() == "sqlite":
        options["database_url"] = settings.database_url

    return create_vector_store(settings.store_type, get_embedder(), **options)


@lru_cache
def get_retriever() -> Retriever:
    return Retriever(get_vector_store(), k=settings.retriever_k)


@lru_cache
def get_smart_retriever() -> SmartRetriever:
    return SmartRetriever(
        get_retriever(),
        weights=settings.decision_weights,
        enable_learning=settings.enable_learning,
        heuristic_engine=HeuristicEngine(max_history=settings.max_history_size),
    )
