"""
In-Memory Vector Store

A dict-backed store for small collections, tests and prototyping.

Properties
----------
- Insertion order preserved (dict ordering); replacing an id keeps its slot
- Copy-in / copy-out: callers never hold references to stored documents
- Every mutation of the collection is a single non-suspending step
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import EmptyStoreError
from ..core.models import Document
from .base import AbstractVectorStore, _validate_text

logger = logging.getLogger("rag_ranker.store")


class InMemoryVectorStore(AbstractVectorStore):
    """
    Vector store holding every document and vector in process memory.
    """

    store_type = "memory"

    def __init__(self, embedding_fn: Any, **options: Any) -> None:
        super().__init__(embedding_fn, **options)
        self._docs: Dict[str, Document] = {}

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    async def _count(self) -> int:
        return len(self._docs)

    async def _candidates(self, dim: int) -> List[Document]:
        return [d for d in self._docs.values() if d.dim == dim]

    async def _insert(self, docs: List[Document]) -> None:
        for doc in docs:
            self._docs[doc.id] = doc

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def get_document(self, doc_id: str) -> Optional[Document]:
        doc = self._docs.get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    async def get_all_documents(
        self,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Document]:
        docs = list(self._docs.values())
        end = None if limit is None else offset + limit
        return [d.model_copy(deep=True) for d in docs[offset:end]]

    async def update_document(
        self,
        doc_id: str,
        new_text: str,
        new_meta: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Replace a document's text (and optionally meta) and re-embed it at
        the document's own dimensionality.

        Returns False for an unknown id.

        Raises
        ------
        EmptyStoreError
            If the store holds no documents.
        """
        if not self._docs:
            raise EmptyStoreError()

        existing = self._docs.get(doc_id)
        if existing is None:
            return False

        _validate_text(new_text, doc_id)
        vector = await self._embed_one(new_text, existing.dim or self.default_dim)

        # The document may have been deleted while the embedding was in flight.
        current = self._docs.get(doc_id)
        if current is None:
            return False

        meta = copy.deepcopy(dict(new_meta)) if new_meta is not None else current.meta
        self._docs[doc_id] = current.model_copy(
            update={
                "text": new_text,
                "meta": meta,
                "vector": vector,
                "dim": len(vector),
            },
            deep=True,
        )
        return True

    async def delete_document(self, doc_id: str) -> bool:
        return self._docs.pop(doc_id, None) is not None

    async def clear(self) -> None:
        self._docs.clear()

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "type": self.store_type,
            "document_count": len(self._docs),
            "dimensions": sorted({d.dim for d in self._docs.values() if d.dim}),
            "default_dim": self.default_dim,
        }
