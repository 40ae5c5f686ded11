"""
Vector Store Base

This module holds everything the concrete stores share:

- Document validation and id generation
- Auto-chunking of oversized documents
- Bounded-concurrency batch embedding with partial-failure reporting
- Cosine similarity ranking with insertion-order tie breaking

Concrete stores implement the storage primitives (_count, _candidates,
_insert) and the lifecycle operations.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)
from uuid import uuid4

import numpy as np
from langchain_text_splitters import RecursiveCharacterTextSplitter
from pydantic import ValidationError

from ..core.errors import (
    BatchEmbeddingError,
    ConfigurationError,
    EmbeddingError,
    EmptyStoreError,
    InvalidDocumentError,
    InvalidQueryError,
)
from ..core.models import Document
from ..embeddings.base import Vector, as_vector, supports_batch

logger = logging.getLogger("rag_ranker.store")

MetadataFilter = Union[Mapping[str, Any], Callable[[Dict[str, Any]], bool]]
ProgressCallback = Callable[[int, int], Any]
DocumentInput = Union[Document, Mapping[str, Any]]


# ---------------------------------------------------------------------
# Similarity helpers
# ---------------------------------------------------------------------

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), defined as 0.0 when either norm is zero.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    q = np.asarray(query, dtype="float64")
    denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(denom == 0.0, 0.0, dots / denom)


def matches_filter(meta: Dict[str, Any], flt: Optional[MetadataFilter]) -> bool:
    """
    A mapping filter requires every key to be present with an equal value;
    a callable filter is a predicate over the metadata.
    """
    if flt is None:
        return True
    if callable(flt):
        return bool(flt(meta))
    return all(key in meta and meta[key] == value for key, value in flt.items())


def rank_by_similarity(
    query_vector: Sequence[float],
    candidates: List[Document],
    k: int,
    flt: Optional[MetadataFilter] = None,
) -> List[Document]:
    """
    Score candidates against the query vector and return the top ``k`` as
    copies carrying ``score``.

    Candidates must be supplied in insertion order; the stable sort keeps
    that order among equal similarities.
    """
    pool = [d for d in candidates if matches_filter(d.meta, flt)]
    if not pool or k <= 0:
        return []

    matrix = np.asarray([d.vector for d in pool], dtype="float64")
    sims = cosine_similarities(query_vector, matrix)
    order = np.argsort(-sims, kind="stable")[:k]

    return [
        pool[int(i)].model_copy(update={"score": float(sims[int(i)])}, deep=True)
        for i in order
    ]


# ---------------------------------------------------------------------
# Abstract store
# ---------------------------------------------------------------------

class AbstractVectorStore(ABC):
    """
    Common contract and ingestion pipeline for all vector stores.

    Every public operation is a coroutine so that in-memory and durable
    stores are interchangeable.
    """

    store_type = "abstract"

    def __init__(
        self,
        embedding_fn: Any,
        *,
        default_dim: int = 768,
        batch_size: int = 10,
        max_concurrent: int = 5,
        auto_chunk: bool = True,
        auto_chunk_threshold: int = 10_000,
        chunk_size: int = 1_000,
        chunk_overlap: int = 100,
    ) -> None:
        if embedding_fn is None:
            raise ConfigurationError(
                "Embedding function is required",
                {"suggestion": "Pass an async (text, dim) -> vector callable"},
            )
        _require_positive("default_dim", default_dim)
        _require_positive("batch_size", batch_size)
        _require_positive("max_concurrent", max_concurrent)

        self.embedding_fn = embedding_fn
        self.default_dim = default_dim
        self.batch_size = batch_size
        self.max_concurrent = max_concurrent
        self.auto_chunk = auto_chunk
        self.auto_chunk_threshold = auto_chunk_threshold

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ".", " ", ""],
        )

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _count(self) -> int:
        ...

    @abstractmethod
    async def _candidates(self, dim: int) -> List[Document]:
        """Stored documents of dimensionality ``dim``, in insertion order."""

    @abstractmethod
    async def _insert(self, docs: List[Document]) -> None:
        """Insert or replace (by id) fully embedded documents."""

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_document(self, doc_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def get_all_documents(
        self,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Document]:
        ...

    @abstractmethod
    async def update_document(
        self,
        doc_id: str,
        new_text: str,
        new_meta: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        ...

    @abstractmethod
    async def delete_document(self, doc_id: str) -> bool:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        ...

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def add_document(
        self,
        doc: DocumentInput,
        *,
        dim: Optional[int] = None,
    ) -> bool:
        """
        Validate, optionally chunk, embed and store a single document.

        Raises
        ------
        InvalidDocumentError
            If the document has no non-empty text.

        EmbeddingError
            The provider's error when the document fails to embed
            (BatchEmbeddingError when only some chunks of a split document
            failed).
        """
        return await self.add_documents([doc], dim=dim)

    async def add_documents(
        self,
        docs: Sequence[DocumentInput],
        *,
        dim: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """
        Validate, chunk, embed and store many documents.

        All documents are validated before any embedding is attempted.
        Documents whose embedding fails do not prevent their siblings from
        being stored; the failures are raised afterwards as a single
        BatchEmbeddingError. When nothing was stored and every failure is
        the same EmbeddingError, that error is raised as is.

        An exception raised by ``on_progress`` stops ingestion after the
        current batch has been stored and is re-raised to the caller.

        Parameters
        ----------
        docs : Sequence[Document | Mapping]
            Documents to ingest.

        dim : Optional[int]
            Requested embedding dimensionality (default: store default).

        batch_size : Optional[int]
            Documents per batch.

        max_concurrent : Optional[int]
            Maximum in-flight single-text embedding calls when the
            embedding function cannot embed a batch in one call.

        on_progress : Optional[Callable[[int, int], Any]]
            Called as ``on_progress(current, total)`` after each batch (batch
            capable functions) or each document (otherwise).

        Returns
        -------
        bool
            True when every document was stored.
        """
        batch_size = batch_size or self.batch_size
        max_concurrent = max_concurrent or self.max_concurrent
        _require_positive("batch_size", batch_size)
        _require_positive("max_concurrent", max_concurrent)

        prepared = self._prepare(docs)
        if not prepared:
            return True

        dim = dim or self.default_dim
        total = len(prepared)
        progress = _ProgressCounter(total, on_progress)
        semaphore = asyncio.Semaphore(max_concurrent)

        failed_ids: List[str] = []
        errors: List[BaseException] = []
        inserted = 0

        for start in range(0, total, batch_size):
            batch = prepared[start : start + batch_size]
            embedded, failures = await self._embed_batch(batch, dim, semaphore, progress)

            if embedded:
                await self._insert(embedded)
                inserted += len(embedded)

            for doc_id, exc in failures:
                failed_ids.append(doc_id)
                errors.append(exc)

            # Callback errors abort ingestion once the batch is stored.
            progress.raise_callback_error()

        if failed_ids:
            logger.error(
                "Batch ingestion finished with failures: inserted=%d, failed=%d",
                inserted,
                len(failed_ids),
            )
            if inserted == 0 and isinstance(errors[0], EmbeddingError) and all(
                e is errors[0] for e in errors
            ):
                raise errors[0]
            raise BatchEmbeddingError(failed_ids, inserted, errors)

        logger.info("Ingested %d document(s) into %s store", inserted, self.store_type)
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        query: str,
        k: int = 3,
        *,
        dim: Optional[int] = None,
        filter: Optional[MetadataFilter] = None,
    ) -> List[Document]:
        """
        Return the ``k`` stored documents most similar to ``query``.

        Only documents whose dimensionality equals the query vector's are
        compared. Results are ordered by descending cosine similarity, ties
        by insertion order.

        Raises
        ------
        InvalidQueryError
            If the query is empty.

        EmptyStoreError
            If the store holds no documents.
        """
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError()

        if await self._count() == 0:
            raise EmptyStoreError()

        query_vector = await self._embed_one(query, dim or self.default_dim)
        candidates = await self._candidates(len(query_vector))
        results = rank_by_similarity(query_vector, candidates, k, filter)

        logger.debug(
            "similarity_search: candidates=%d, returned=%d",
            len(candidates),
            len(results),
        )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _prepare(self, docs: Sequence[DocumentInput]) -> List[Document]:
        if isinstance(docs, (str, bytes, Mapping, Document)) or not isinstance(
            docs, Sequence
        ):
            raise InvalidDocumentError("docs must be a list of documents")

        prepared: List[Document] = []
        for doc in docs:
            prepared.extend(self._expand(self._coerce(doc)))
        return prepared

    @staticmethod
    def _coerce(doc: DocumentInput) -> Document:
        if isinstance(doc, Document):
            candidate = doc.model_copy(deep=True)
        elif isinstance(doc, Mapping):
            try:
                candidate = Document.model_validate(dict(doc))
            except ValidationError as exc:
                raise InvalidDocumentError("document must have a text field") from exc
        else:
            raise InvalidDocumentError(
                f"expected a Document or mapping, got {type(doc).__name__}"
            )

        _validate_text(candidate.text, candidate.id)

        if not candidate.id:
            candidate.id = f"doc_{uuid4().hex}"
        candidate.score = None
        candidate.explanation = None
        if candidate.vector is not None:
            candidate.dim = len(candidate.vector)
        return candidate

    def _expand(self, doc: Document) -> List[Document]:
        if not self.auto_chunk or len(doc.text) <= self.auto_chunk_threshold:
            return [doc]

        chunks = self._splitter.split_text(doc.text)
        total = len(chunks)
        logger.debug("Auto-chunked document %s into %d chunks", doc.id, total)

        return [
            Document(
                id=f"{doc.id}_chunk_{i}",
                text=chunk,
                meta={
                    **copy.deepcopy(doc.meta),
                    "parent_id": doc.id,
                    "chunk_index": i,
                    "total_chunks": total,
                },
            )
            for i, chunk in enumerate(chunks)
        ]

    async def _embed_one(self, text: str, dim: int) -> Vector:
        try:
            raw = await self.embedding_fn(text, dim)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError.network_error(exc) from exc
        return as_vector(raw)

    async def _embed_many(self, texts: List[str], dim: int) -> List[Vector]:
        try:
            raw = await self.embedding_fn(texts, dim)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError.network_error(exc) from exc

        if not isinstance(raw, (list, tuple)) or len(raw) != len(texts):
            raise EmbeddingError.malformed_response(
                f"expected {len(texts)} embeddings for the batch"
            )
        return [as_vector(v) for v in raw]

    async def _embed_batch(
        self,
        batch: List[Document],
        dim: int,
        semaphore: asyncio.Semaphore,
        progress: "_ProgressCounter",
    ) -> Tuple[List[Document], List[Tuple[str, BaseException]]]:
        """
        Embed one batch. Returns (embedded documents in submission order,
        [(failed id, error)]).
        """
        pending = [i for i, d in enumerate(batch) if d.vector is None]
        failures: List[Tuple[str, BaseException]] = []
        failed: set = set()

        if pending and supports_batch(self.embedding_fn):
            try:
                vectors = await self._embed_many([batch[i].text for i in pending], dim)
            except Exception as exc:
                logger.error(
                    "Batch embedding failed (%s): batch size=%d",
                    type(exc).__name__,
                    len(pending),
                )
                failures = [(batch[i].id, exc) for i in pending]
                failed = set(pending)
            else:
                for i, vector in zip(pending, vectors):
                    batch[i].vector = vector
            progress.advance(len(batch))

        elif pending:

            async def embed_single(doc: Document) -> Optional[BaseException]:
                try:
                    async with semaphore:
                        doc.vector = await self._embed_one(doc.text, dim)
                except Exception as exc:
                    outcome = exc
                else:
                    outcome = None
                progress.advance(1)
                return outcome

            outcomes = await asyncio.gather(*(embed_single(batch[i]) for i in pending))
            for i, outcome in zip(pending, outcomes):
                if outcome is not None:
                    logger.error(
                        "Embedding failed for document %s (%s)",
                        batch[i].id,
                        type(outcome).__name__,
                    )
                    failures.append((batch[i].id, outcome))
                    failed.add(i)
            progress.advance(len(batch) - len(pending))

        else:
            progress.advance(len(batch))

        embedded = []
        for i, doc in enumerate(batch):
            if i in failed:
                continue
            doc.dim = len(doc.vector)
            embedded.append(doc)
        return embedded, failures


class _ProgressCounter:
    """
    Reports progress to the caller's callback. The first exception the
    callback raises is held until ``raise_callback_error`` and the callback
    is not invoked again.
    """

    def __init__(self, total: int, callback: Optional[ProgressCallback]) -> None:
        self.total = total
        self.current = 0
        self._callback = callback
        self._error: Optional[Exception] = None

    def advance(self, n: int) -> None:
        if n <= 0:
            return
        self.current += n
        if self._callback is None or self._error is not None:
            return
        try:
            self._callback(self.current, self.total)
        except Exception as exc:
            logger.error("Progress callback failed (%s)", type(exc).__name__)
            self._error = exc

    def raise_callback_error(self) -> None:
        if self._error is not None:
            raise self._error


def _require_positive(name: str, value: int) -> None:
    if not isinstance(value, int) or value < 1:
        raise ConfigurationError(
            f"{name} must be a positive integer, got {value!r}",
            {"parameter": name, "suggestion": f"Pass {name} >= 1"},
        )


def _validate_text(text: Any, doc_id: Optional[str] = None) -> None:
    if not isinstance(text, str) or not text.strip():
        raise InvalidDocumentError(
            "document must have a non-empty text field",
            {"id": doc_id},
        )
