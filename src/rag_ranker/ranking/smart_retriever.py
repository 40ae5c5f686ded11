"""
Smart Retriever

Orchestrates a full ranked retrieval:

    Retriever (over-fetch 2k)
        → HeuristicEngine.apply_query_rules
        → WeightedDecisionEngine.score_document
        → HeuristicEngine.apply_result_rules
        → dedup by text → stable sort → top k

and exposes the feedback loop that feeds the heuristic engine's history.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from ..core.errors import ConfigurationError
from ..core.models import Document, ScoredDocument
from ..core.text import match_terms, query_terms
from ..stores.base import MetadataFilter
from .decision import WeightedDecisionEngine, WeightsInput
from .heuristics import (
    RECENT_WEIGHTS,
    Feedback,
    HeuristicEngine,
    HeuristicRule,
    RuleAction,
    RuleCondition,
)
from .retriever import Retriever

logger = logging.getLogger("rag_ranker.retriever")


DEFAULT_RULES: List[HeuristicRule] = [
    HeuristicRule(
        name="expand-short-query",
        condition=RuleCondition.word_count_equals(1),
        action=RuleAction.suggest("Single-word queries match broadly; add context terms"),
        priority=5,
    ),
    HeuristicRule(
        name="suggest-technical-filters",
        condition=RuleCondition.matches_pattern(r"\b(code|api|function|error|bug)\b"),
        action=RuleAction.suggest("Technical query: consider filtering by documentation sources"),
        priority=3,
    ),
    HeuristicRule(
        name="boost-recent-for-news",
        condition=RuleCondition.matches_pattern(r"\b(latest|new|recent|current|today)\b"),
        action=RuleAction.prefer_recent(
            RECENT_WEIGHTS,
            suggestion="Time-sensitive query: recent documents are preferred",
        ),
        priority=8,
    ),
]


class Decisions(BaseModel):
    weights: Dict[str, float] = Field(default_factory=dict)
    applied_rules: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    flags: Dict[str, bool] = Field(default_factory=dict)
    results_modified: bool = False


class SmartRetrievalResult(BaseModel):
    query: str
    original_query: str
    results: List[ScoredDocument] = Field(default_factory=list)
    decisions: Decisions = Field(default_factory=Decisions)


def dedupe_by_text(docs: Sequence[ScoredDocument]) -> List[ScoredDocument]:
    """
    Keep one document per exact text: the one with the higher ``score``,
    or the first seen on ties. Output keeps first-seen order.
    """
    best: Dict[str, ScoredDocument] = {}
    for doc in docs:
        current = best.get(doc.text)
        if current is None or (doc.score or 0.0) > (current.score or 0.0):
            best[doc.text] = doc
    return list(best.values())


def _context_relevance(context: Mapping[str, Any]) -> float:
    value = context.get("context_relevance")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


class SmartRetriever:
    """
    Retriever plus weighted re-ranking, heuristics and learning.

    Parameters
    ----------
    retriever : Retriever
        Base retriever used for candidate generation.

    weights : WeightsInput
        Decision weights; omitted factors take the baseline values.

    enable_learning : bool
        Whether ``provide_feedback`` records history.

    heuristic_engine : Optional[HeuristicEngine]
        Engine to use instead of a fresh one.

    register_default_rules : bool
        Install the built-in query rules at construction.
    """

    def __init__(
        self,
        retriever: Retriever,
        *,
        weights: WeightsInput = None,
        enable_learning: bool = True,
        heuristic_engine: Optional[HeuristicEngine] = None,
        register_default_rules: bool = True,
    ) -> None:
        if retriever is None:
            raise ConfigurationError("Base retriever is required")

        self.retriever = retriever
        self.decision_engine = WeightedDecisionEngine(weights)
        self.heuristics = heuristic_engine if heuristic_engine is not None else HeuristicEngine()
        self.enable_learning = enable_learning

        if register_default_rules:
            for rule in DEFAULT_RULES:
                self.heuristics.add_rule(rule.model_copy(deep=True))

    async def get_relevant(
        self,
        query: str,
        k: int = 3,
        *,
        filter: Optional[MetadataFilter] = None,
        context: Optional[Mapping[str, Any]] = None,
        weights: Optional[Mapping[str, float]] = None,
        context_relevance: Optional[float] = None,
    ) -> SmartRetrievalResult:
        """
        Retrieve, score and rank the top ``k`` documents for ``query``.

        Parameters
        ----------
        query : str
            Natural-language query.

        k : int
            Number of results to return (2k candidates are fetched).

        filter : Optional[MetadataFilter]
            Metadata filter forwarded to the base retriever.

        context : Optional[Mapping[str, Any]]
            Rule context, e.g. ``{"critical": True}``.

        weights : Optional[Mapping[str, float]]
            Per-call weight overrides; the persistent weights are unchanged.

        context_relevance : Optional[float]
            Context relevance applied to every candidate. Falls back to
            ``context["context_relevance"]``, then 0.

        Returns
        -------
        SmartRetrievalResult
        """
        if k < 1:
            raise ConfigurationError(f"k must be >= 1, got {k}", {"k": k})

        context = dict(context or {})

        candidates = await self.retriever.get_relevant(query, k * 2, filter=filter)
        mods = self.heuristics.apply_query_rules(query, context)

        engine = self.decision_engine
        overrides = {**mods.weight_overrides, **dict(weights or {})}
        if overrides:
            engine = engine.with_overrides(overrides)

        if context_relevance is None:
            context_relevance = _context_relevance(context)

        terms = query_terms(query)
        scored = [
            engine.score_document(
                doc,
                keyword_match=match_terms(terms, doc.text)[1],
                context_relevance=context_relevance,
            )
            for doc in candidates
        ]

        ranked = self.heuristics.apply_result_rules(scored, context)
        modified = len(ranked) != len(scored) or any(d.boosted for d in ranked)

        ranked = dedupe_by_text(ranked)
        ranked.sort(key=lambda d: d.weighted_score, reverse=True)
        ranked = ranked[:k]

        logger.debug(
            "Smart retrieval for %r: %d candidates, %d returned, rules=%s",
            query,
            len(candidates),
            len(ranked),
            mods.applied_rules,
        )

        return SmartRetrievalResult(
            query=mods.modified_query,
            original_query=query,
            results=ranked,
            decisions=Decisions(
                weights=engine.get_weights(),
                applied_rules=mods.applied_rules,
                suggestions=mods.suggestions,
                flags=mods.flags,
                results_modified=modified,
            ),
        )

    def provide_feedback(
        self,
        query: str,
        results: Sequence[Union[Document, Mapping[str, Any]]],
        feedback: Union[Feedback, Mapping[str, Any], None],
    ) -> bool:
        """
        Record rated results in the heuristic history.

        Returns False without recording when learning is disabled.
        """
        if not self.enable_learning:
            return False
        self.heuristics.learn(query, results, feedback)
        return True

    def get_insights(self) -> Dict[str, Any]:
        return {
            "heuristics": self.heuristics.get_insights().model_dump(),
            "weights": self.decision_engine.get_weights(),
        }

    def export_knowledge(self) -> Dict[str, Any]:
        return self.heuristics.export_knowledge()

    def import_knowledge(self, knowledge: Mapping[str, Any]) -> None:
        self.heuristics.import_knowledge(knowledge)
