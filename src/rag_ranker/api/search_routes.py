"""
Search Routes

Smart retrieval, the feedback loop and knowledge export/import. All
endpoints share the process-wide SmartRetriever, so feedback recorded here
shapes subsequent searches.
"""

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, status

from .dependencies import get_smart_retriever
from .models import (
    FeedbackRequest,
    FeedbackResponse,
    OperationResult,
    SearchHit,
    SearchRequest,
    SearchResponse,
)
from ..ranking.heuristics import Feedback
from ..ranking.smart_retriever import SmartRetriever

router = APIRouter(tags=["search"])

Smart = Annotated[SmartRetriever, Depends(get_smart_retriever)]


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Weighted, heuristic-ranked retrieval",
    status_code=status.HTTP_200_OK,
)
async def search(req: SearchRequest, smart: Smart) -> SearchResponse:
    """
    Retrieve and rank documents for a query.

    Parameters
    ----------
    req : SearchRequest
        Contains:
        - query: Search query string
        - k: Number of results to return
        - filter / context / weights / context_relevance: ranking inputs

    Returns
    -------
    SearchResponse
        Ranked results plus the decisions that shaped them.
    """
    result = await smart.get_relevant(
        req.query,
        req.k,
        filter=req.filter,
        context=req.context,
        weights=req.weights,
        context_relevance=req.context_relevance,
    )

    return SearchResponse(
        query=result.query,
        original_query=result.original_query,
        results=[SearchHit.from_scored(d) for d in result.results],
        decisions=result.decisions,
    )


@router.post("/feedback", response_model=FeedbackResponse)
async def feedback(req: FeedbackRequest, smart: Smart) -> FeedbackResponse:
    recorded = smart.provide_feedback(
        req.query,
        [r.model_dump() for r in req.results],
        Feedback(rating=req.rating, comment=req.comment, has_filters=req.has_filters),
    )
    return FeedbackResponse(recorded=recorded)


@router.get("/insights")
async def insights(smart: Smart) -> Dict[str, Any]:
    return smart.get_insights()


@router.get("/knowledge")
async def export_knowledge(smart: Smart) -> Dict[str, Any]:
    return smart.export_knowledge()


@router.put("/knowledge", response_model=OperationResult)
async def import_knowledge(knowledge: Dict[str, Any], smart: Smart) -> OperationResult:
    """
    Restore rules, patterns and history from a previous export.
    """
    smart.import_knowledge(knowledge)
    return OperationResult(
        status="imported",
        details={
            "rules": len(knowledge.get("rules", [])),
            "history": len(knowledge.get("history", [])),
        },
    )
