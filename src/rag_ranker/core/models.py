"""
Core Data Models

This module defines the canonical data models shared by every layer:

- Document: a stored or retrieved passage
- Explanation: term-match explanation attached by the retriever
- ScoredDocument: a Document re-scored by the decision engine
- DecisionWeights: the normalized five-factor weight tuple
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


FACTORS: Tuple[str, ...] = (
    "semantic_similarity",
    "keyword_match",
    "recency",
    "source_quality",
    "context_relevance",
)

BASELINE_WEIGHTS: Dict[str, float] = {
    "semantic_similarity": 0.5,
    "keyword_match": 0.2,
    "recency": 0.15,
    "source_quality": 0.1,
    "context_relevance": 0.05,
}


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class RelevanceFactors(BaseModel):
    semantic_score: float = 0.0
    term_match: float = 0.0


class Explanation(BaseModel):
    """
    Why a document was retrieved for a query.
    """

    score: float = 0.0
    reason: str = ""
    query_terms: List[str] = Field(default_factory=list)
    matched_terms: List[str] = Field(default_factory=list)
    match_count: int = 0
    match_ratio: float = 0.0
    cosine_similarity: float = 0.0
    relevance_factors: RelevanceFactors = Field(default_factory=RelevanceFactors)


class Document(BaseModel):
    """
    A stored or retrieved text passage.

    ``text`` is validated by the stores at ingestion time rather than here,
    so that a missing text surfaces as ``InvalidDocumentError``.
    """

    id: Optional[str] = Field(
        default=None,
        description="Unique id within a store; generated on ingestion if absent.",
    )

    text: str = Field(..., description="Passage text; the unit of retrieval.")

    meta: Dict[str, Any] = Field(
        default_factory=dict,
        description="Caller-defined metadata (e.g. 'source', 'date').",
    )

    vector: Optional[List[float]] = Field(
        default=None,
        description="Embedding vector, attached on ingestion.",
    )

    dim: Optional[int] = Field(
        default=None,
        ge=1,
        description="Dimensionality of 'vector'.",
    )

    score: Optional[float] = Field(
        default=None,
        description="Query-time cosine similarity; absent until searched.",
    )

    explanation: Optional[Explanation] = None

    model_config = ConfigDict(extra="ignore")


class FactorScore(BaseModel):
    score: float
    weight: float
    contribution: float


class ScoredDocument(Document):
    """
    A Document after weighted multi-factor scoring.
    """

    original_score: Optional[float] = None
    weighted_score: float = Field(default=0.0, ge=0.0, le=1.0)
    score_breakdown: Dict[str, FactorScore] = Field(default_factory=dict)
    boosted: bool = False
    boost_reason: Optional[str] = None


# ---------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------

class DecisionWeights(BaseModel):
    """
    Five non-negative factor weights, always rescaled to sum to 1.0.

    Omitted factors take their baseline value. An all-zero tuple resets to
    the baseline.
    """

    semantic_similarity: float = Field(default=BASELINE_WEIGHTS["semantic_similarity"], ge=0.0)
    keyword_match: float = Field(default=BASELINE_WEIGHTS["keyword_match"], ge=0.0)
    recency: float = Field(default=BASELINE_WEIGHTS["recency"], ge=0.0)
    source_quality: float = Field(default=BASELINE_WEIGHTS["source_quality"], ge=0.0)
    context_relevance: float = Field(default=BASELINE_WEIGHTS["context_relevance"], ge=0.0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _normalize(self) -> "DecisionWeights":
        total = sum(getattr(self, name) for name in FACTORS)
        if total <= 0:
            for name in FACTORS:
                setattr(self, name, BASELINE_WEIGHTS[name])
            total = sum(BASELINE_WEIGHTS.values())

        for name in FACTORS:
            setattr(self, name, getattr(self, name) / total)
        return self

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in FACTORS}
