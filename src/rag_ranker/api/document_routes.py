"""
Document Routes

Ingestion and lifecycle endpoints for the configured vector store.
"""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .dependencies import get_vector_store
from .models import (
    AddDocumentsRequest,
    DocumentOut,
    OperationResult,
    UpdateDocumentRequest,
)
from ..stores import AbstractVectorStore

router = APIRouter(prefix="/documents", tags=["documents"])

Store = Annotated[AbstractVectorStore, Depends(get_vector_store)]


def _not_found(doc_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Document not found: {doc_id}",
    )


@router.post(
    "",
    response_model=OperationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Embed and store documents",
)
async def add_documents(req: AddDocumentsRequest, store: Store) -> OperationResult:
    """
    Embed and store a batch of documents.

    Oversized documents are split into chunks by the store, so the stored
    count may exceed the number submitted.
    """
    before = (await store.get_stats())["document_count"]
    await store.add_documents(
        [d.model_dump() for d in req.documents],
        dim=req.dim,
        batch_size=req.batch_size,
        max_concurrent=req.max_concurrent,
    )
    after = (await store.get_stats())["document_count"]

    return OperationResult(
        status="created",
        count=len(req.documents),
        details={"stored_delta": after - before},
    )


@router.get("", response_model=List[DocumentOut])
async def list_documents(
    store: Store,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
) -> List[DocumentOut]:
    docs = await store.get_all_documents(limit=limit, offset=offset)
    return [DocumentOut.from_document(d) for d in docs]


@router.get("/stats")
async def document_stats(store: Store) -> Dict[str, Any]:
    return await store.get_stats()


@router.delete("", response_model=OperationResult)
async def clear_documents(store: Store) -> OperationResult:
    await store.clear()
    return OperationResult(status="cleared")


@router.get("/{doc_id}", response_model=DocumentOut)
async def get_document(doc_id: str, store: Store) -> DocumentOut:
    doc = await store.get_document(doc_id)
    if doc is None:
        raise _not_found(doc_id)
    return DocumentOut.from_document(doc)


@router.put("/{doc_id}", response_model=OperationResult)
async def update_document(
    doc_id: str,
    req: UpdateDocumentRequest,
    store: Store,
) -> OperationResult:
    """
    Replace a document's text (re-embedding it) and optionally its metadata.
    """
    if not await store.update_document(doc_id, req.text, req.meta):
        raise _not_found(doc_id)
    return OperationResult(status="updated", count=1)


@router.delete("/{doc_id}", response_model=OperationResult)
async def delete_document(doc_id: str, store: Store) -> OperationResult:
    if not await store.delete_document(doc_id):
        raise _not_found(doc_id)
    return OperationResult(status="deleted", count=1)
