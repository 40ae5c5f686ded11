"""
Ranking Package

Retrieval façade, weighted multi-factor scoring, the heuristic rule engine
and the smart retriever that combines them.
"""

from .decision import WeightedDecisionEngine, calculate_recency, get_source_quality
from .heuristics import (
    ActionKind,
    ConditionKind,
    Feedback,
    HeuristicEngine,
    HeuristicRule,
    Insights,
    QueryModifications,
    RuleAction,
    RuleCondition,
)
from .retriever import Retriever
from .smart_retriever import SmartRetrievalResult, SmartRetriever

__all__ = [
    "WeightedDecisionEngine",
    "calculate_recency",
    "get_source_quality",
    "ActionKind",
    "ConditionKind",
    "Feedback",
    "HeuristicEngine",
    "HeuristicRule",
    "Insights",
    "QueryModifications",
    "RuleAction",
    "RuleCondition",
    "Retriever",
    "SmartRetrievalResult",
    "SmartRetriever",
]
