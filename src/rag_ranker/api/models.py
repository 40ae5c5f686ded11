"""
API Models

Request/response payloads for the document, search, feedback and knowledge
endpoints.

Design Goals
------------
- Strict request schemas (unknown fields rejected)
- Responses reuse the core models rather than duplicating them
- Vectors are never echoed back unless explicitly requested
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.models import Document, ScoredDocument
from ..ranking.smart_retriever import Decisions


# ---------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------

class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["created", "updated", "deleted", "cleared", "imported"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


class DocumentOut(BaseModel):
    """
    Document as returned over HTTP (no vector).
    """
    id: str
    text: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    dim: Optional[int] = None

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentOut":
        return cls(id=doc.id, text=doc.text, meta=doc.meta, dim=doc.dim)


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class DocumentIn(BaseModel):
    id: Optional[str] = None
    text: str = Field(..., min_length=1)
    meta: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class AddDocumentsRequest(BaseModel):
    documents: List[DocumentIn] = Field(..., min_length=1)
    dim: Optional[int] = Field(default=None, ge=1)
    batch_size: Optional[int] = Field(default=None, ge=1)
    max_concurrent: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid")


class UpdateDocumentRequest(BaseModel):
    text: str = Field(..., min_length=1)
    meta: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Search / feedback
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Smart retrieval request.

    ``filter`` is a mapping of metadata equalities.
    """
    query: str = Field(..., min_length=1)
    k: int = Field(default=3, ge=1, le=100)
    filter: Optional[Dict[str, Any]] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    weights: Optional[Dict[str, float]] = None
    context_relevance: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid")


class SearchHit(BaseModel):
    id: Optional[str]
    text: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    score: Optional[float] = None
    weighted_score: float
    score_breakdown: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    boosted: bool = False
    boost_reason: Optional[str] = None

    @classmethod
    def from_scored(cls, doc: ScoredDocument) -> "SearchHit":
        return cls(
            id=doc.id,
            text=doc.text,
            meta=doc.meta,
            score=doc.score,
            weighted_score=doc.weighted_score,
            score_breakdown={k: v.model_dump() for k, v in doc.score_breakdown.items()},
            boosted=doc.boosted,
            boost_reason=doc.boost_reason,
        )


class SearchResponse(BaseModel):
    query: str
    original_query: str
    results: List[SearchHit]
    decisions: Decisions


class FeedbackResult(BaseModel):
    id: Optional[str] = None
    score: Optional[float] = None


class FeedbackRequest(BaseModel):
    query: str = Field(..., min_length=1)
    results: List[FeedbackResult] = Field(default_factory=list)
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    has_filters: bool = False

    model_config = ConfigDict(extra="forbid")


class FeedbackResponse(BaseModel):
    recorded: bool
