"""
Retriever

Thin façade over one vector store: default fetch count, a static metadata
filter merged with per-call filters, and optional term-match explanations.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.errors import ConfigurationError, RetrievalError
from ..core.models import Document, Explanation, RelevanceFactors
from ..core.text import match_terms, query_terms
from ..stores.base import AbstractVectorStore, MetadataFilter, matches_filter

logger = logging.getLogger("rag_ranker.retriever")

_UNSET: Any = object()


def merge_filters(
    default: Optional[MetadataFilter],
    override: Optional[MetadataFilter],
) -> Optional[MetadataFilter]:
    """
    Combine the configured filter with a per-call filter.

    Two mappings merge key-wise (per-call wins). If either side is a
    predicate, a document must satisfy both.
    """
    if default is None:
        return override
    if override is None:
        return default
    if not callable(default) and not callable(override):
        return {**default, **override}

    def combined(meta: Dict[str, Any]) -> bool:
        return matches_filter(meta, default) and matches_filter(meta, override)

    return combined


def build_explanation(query: str, doc: Document) -> Explanation:
    terms = query_terms(query)
    matched, ratio = match_terms(terms, doc.text)
    score = doc.score or 0.0
    return Explanation(
        score=score,
        reason=f"Matched query with similarity score of {score * 100:.1f}%",
        query_terms=terms,
        matched_terms=matched,
        match_count=len(matched),
        match_ratio=ratio,
        cosine_similarity=score,
        relevance_factors=RelevanceFactors(semantic_score=score, term_match=ratio),
    )


class Retriever:
    """
    Retrieve the most relevant documents for a query from one store.
    """

    def __init__(
        self,
        store: AbstractVectorStore,
        *,
        k: int = 3,
        filter: Optional[MetadataFilter] = None,
    ) -> None:
        if store is None:
            raise ConfigurationError("Vector store is required")
        self.store = store
        self.k = k
        self.filter = filter

    async def get_relevant(
        self,
        query: str,
        k: Optional[int] = None,
        *,
        filter: Optional[MetadataFilter] = None,
        explain: bool = False,
        dim: Optional[int] = None,
    ) -> List[Document]:
        """
        Return the top ``k`` documents for ``query``.

        Raises
        ------
        RetrievalError
            Wrapping any failure from the underlying store.
        """
        limit = k or self.k
        search_filter = merge_filters(self.filter, filter)

        logger.debug("Searching for %r (k=%d)", query, limit)

        try:
            results = await self.store.similarity_search(
                query,
                limit,
                dim=dim,
                filter=search_filter,
            )
        except Exception as exc:
            logger.error("Retrieval failed (%s): %s", type(exc).__name__, exc)
            raise RetrievalError(query, exc) from exc

        if explain:
            for doc in results:
                doc.explanation = build_explanation(query, doc)

        logger.debug("Found %d documents", len(results))
        return results

    def configure(
        self,
        *,
        k: Optional[int] = None,
        filter: Optional[MetadataFilter] = _UNSET,
    ) -> None:
        """
        Update the default fetch count and/or the static filter.
        """
        if k:
            self.k = k
        if filter is not _UNSET:
            self.filter = filter
