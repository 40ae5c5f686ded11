"""
Heuristic Engine

A stateful, rule-based layer around retrieval:

- Query rules transform a query into advisory modifications (suggestions,
  detection flags, weight overrides, term expansion)
- Result rules boost or filter scored results
- A bounded FIFO history of rated queries drives pattern detection

Rules are tagged data rather than closures: every condition and action is
one of a fixed set of kinds with parameters, so the full rule set can be
exported and imported as JSON.
"""

from __future__ import annotations

import logging
import re
import time
from collections import Counter, deque
from enum import Enum
from functools import lru_cache
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..core.errors import ConfigurationError
from ..core.models import Document, ScoredDocument

logger = logging.getLogger("rag_ranker.heuristics")

DEFAULT_MAX_HISTORY = 100

LOW_TRUST_SOURCES = ("social", "forum", "comment")
LOW_QUALITY_THRESHOLD = 0.6
PATTERN_BOOST = 0.05

SHORT_QUERY_WORDS = 2
SHORT_QUERY_SCORE = 0.6
SHORT_QUERY_MIN_COUNT = 5
HIGH_RATING = 4
HIGH_RATED_MIN_COUNT = 10
PATTERN_MIN_FREQUENCY = 3
MAX_PATTERNS = 10

RECENT_WEIGHTS = {"recency": 0.4, "semantic_similarity": 0.35}


@lru_cache(maxsize=256)
def _compile(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern, re.IGNORECASE)


def _word_count(query: str) -> int:
    return len(query.split())


# ---------------------------------------------------------------------
# Rule definitions
# ---------------------------------------------------------------------

class ConditionKind(str, Enum):
    ALWAYS = "always"
    WORD_COUNT_AT_MOST = "word_count_at_most"
    WORD_COUNT_EQUALS = "word_count_equals"
    MATCHES_PATTERN = "matches_pattern"
    CONTEXT_FLAG = "context_flag"


class ActionKind(str, Enum):
    SUGGEST = "suggest"
    FLAG = "flag"
    PREFER_RECENT = "prefer_recent"
    APPEND_TERMS = "append_terms"


class RuleCondition(BaseModel):
    """
    When a rule applies. ``value`` is the word count, the regex or the
    context key, depending on ``kind``.
    """

    kind: ConditionKind
    value: Optional[Union[int, str]] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_value(self) -> "RuleCondition":
        if self.kind in (ConditionKind.WORD_COUNT_AT_MOST, ConditionKind.WORD_COUNT_EQUALS):
            if not isinstance(self.value, int):
                raise ValueError(f"{self.kind.value} requires an integer value")
        elif self.kind is ConditionKind.MATCHES_PATTERN:
            if not isinstance(self.value, str):
                raise ValueError("matches_pattern requires a regex string")
            try:
                _compile(self.value)
            except re.error as exc:
                raise ValueError(f"invalid pattern {self.value!r}: {exc}") from exc
        elif self.kind is ConditionKind.CONTEXT_FLAG:
            if not isinstance(self.value, str) or not self.value:
                raise ValueError("context_flag requires a context key")
        return self

    @classmethod
    def always(cls) -> "RuleCondition":
        return cls(kind=ConditionKind.ALWAYS)

    @classmethod
    def word_count_at_most(cls, n: int) -> "RuleCondition":
        return cls(kind=ConditionKind.WORD_COUNT_AT_MOST, value=n)

    @classmethod
    def word_count_equals(cls, n: int) -> "RuleCondition":
        return cls(kind=ConditionKind.WORD_COUNT_EQUALS, value=n)

    @classmethod
    def matches_pattern(cls, pattern: str) -> "RuleCondition":
        return cls(kind=ConditionKind.MATCHES_PATTERN, value=pattern)

    @classmethod
    def context_flag(cls, key: str) -> "RuleCondition":
        return cls(kind=ConditionKind.CONTEXT_FLAG, value=key)

    def matches(self, query: str, context: Mapping[str, Any]) -> bool:
        if self.kind is ConditionKind.ALWAYS:
            return True
        if self.kind is ConditionKind.WORD_COUNT_AT_MOST:
            return _word_count(query) <= self.value
        if self.kind is ConditionKind.WORD_COUNT_EQUALS:
            return _word_count(query) == self.value
        if self.kind is ConditionKind.MATCHES_PATTERN:
            return _compile(self.value).search(query) is not None
        return bool(context.get(self.value))


class QueryModifications(BaseModel):
    """
    Outcome of applying query rules. ``original_query`` is never changed.
    """

    original_query: str
    modified_query: str
    suggestions: List[str] = Field(default_factory=list)
    applied_rules: List[str] = Field(default_factory=list)
    flags: Dict[str, bool] = Field(default_factory=dict)
    weight_overrides: Dict[str, float] = Field(default_factory=dict)


class RuleAction(BaseModel):
    """
    What a matching rule does to the query modifications.
    """

    kind: ActionKind
    suggestion: Optional[str] = None
    flag: Optional[str] = None
    weights: Dict[str, float] = Field(default_factory=dict)
    terms: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_params(self) -> "RuleAction":
        if self.kind is ActionKind.SUGGEST and not self.suggestion:
            raise ValueError("suggest requires a suggestion")
        if self.kind is ActionKind.FLAG and not self.flag:
            raise ValueError("flag requires a flag name")
        if self.kind is ActionKind.APPEND_TERMS and not self.terms:
            raise ValueError("append_terms requires terms")
        return self

    @classmethod
    def suggest(cls, text: str) -> "RuleAction":
        return cls(kind=ActionKind.SUGGEST, suggestion=text)

    @classmethod
    def set_flag(cls, name: str, suggestion: Optional[str] = None) -> "RuleAction":
        return cls(kind=ActionKind.FLAG, flag=name, suggestion=suggestion)

    @classmethod
    def prefer_recent(
        cls,
        weights: Optional[Mapping[str, float]] = None,
        suggestion: Optional[str] = None,
    ) -> "RuleAction":
        return cls(
            kind=ActionKind.PREFER_RECENT,
            weights=dict(weights or RECENT_WEIGHTS),
            suggestion=suggestion,
        )

    @classmethod
    def append_terms(cls, terms: Sequence[str], suggestion: Optional[str] = None) -> "RuleAction":
        return cls(kind=ActionKind.APPEND_TERMS, terms=list(terms), suggestion=suggestion)

    def apply(self, mods: QueryModifications) -> None:
        if self.kind is ActionKind.FLAG:
            mods.flags[self.flag] = True
        elif self.kind is ActionKind.PREFER_RECENT:
            mods.flags["time_sensitive"] = True
            mods.weight_overrides.update(self.weights)
        elif self.kind is ActionKind.APPEND_TERMS:
            present = set(mods.modified_query.lower().split())
            extra = [t for t in self.terms if t.lower() not in present]
            if extra:
                mods.modified_query = " ".join([mods.modified_query, *extra])

        if self.suggestion:
            mods.suggestions.append(self.suggestion)


class HeuristicRule(BaseModel):
    name: str = Field(..., min_length=1)
    condition: RuleCondition
    action: RuleAction
    priority: float = 0

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# History, insights, knowledge
# ---------------------------------------------------------------------

class Feedback(BaseModel):
    rating: float = 0
    comment: Optional[str] = None
    has_filters: bool = False


class ResultSnapshot(BaseModel):
    id: Optional[str] = None
    score: Optional[float] = None


class QueryHistoryEntry(BaseModel):
    query: str
    results: List[ResultSnapshot] = Field(default_factory=list)
    result_count: int = 0
    avg_score: float = 0.0
    feedback: float = 0
    comment: Optional[str] = None
    query_length: int = 0
    has_filters: bool = False
    timestamp: float = Field(default_factory=time.time)

    @field_validator("query")
    @classmethod
    def _lowercase(cls, v: str) -> str:
        return v.lower()


class Insights(BaseModel):
    total_queries: int = 0
    avg_query_length: float = 0.0
    avg_retrieval_score: float = 0.0
    avg_user_rating: float = 0.0
    detected_patterns: int = 0
    active_rules: int = 0
    successful_patterns: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class KnowledgeSnapshot(BaseModel):
    rules: List[HeuristicRule] = Field(default_factory=list)
    patterns: List[str] = Field(default_factory=list)
    history: List[QueryHistoryEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

ResultLike = Union[Document, Mapping[str, Any]]


class HeuristicEngine:
    """
    Named rules, a bounded query history and learned term patterns.

    Parameters
    ----------
    max_history : int
        Capacity of the history FIFO; the oldest entry is evicted first.
    """

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY) -> None:
        self._rules: Dict[str, HeuristicRule] = {}
        self._history: Deque[QueryHistoryEntry] = deque(maxlen=max_history)
        self.patterns: List[str] = []
        self.max_history = max_history

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @property
    def rules(self) -> List[HeuristicRule]:
        return list(self._rules.values())

    @property
    def history(self) -> List[QueryHistoryEntry]:
        return list(self._history)

    def add_rule(
        self,
        rule: Union[HeuristicRule, str],
        condition: Optional[RuleCondition] = None,
        action: Optional[RuleAction] = None,
        priority: float = 0,
    ) -> HeuristicRule:
        """
        Register a rule, replacing any rule of the same name.

        Accepts either a HeuristicRule or ``(name, condition, action,
        priority)``.
        """
        if not isinstance(rule, HeuristicRule):
            rule = HeuristicRule(
                name=rule,
                condition=condition,
                action=action,
                priority=priority,
            )
        # Re-adding moves the rule to the end of the tie-break order.
        self._rules.pop(rule.name, None)
        self._rules[rule.name] = rule
        return rule

    def remove_rule(self, name: str) -> bool:
        return self._rules.pop(name, None) is not None

    def get_rule(self, name: str) -> Optional[HeuristicRule]:
        return self._rules.get(name)

    def apply_query_rules(
        self,
        query: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> QueryModifications:
        """
        Evaluate rules in descending priority against the query and context.
        """
        context = context or {}
        mods = QueryModifications(original_query=query, modified_query=query)

        for rule in sorted(self._rules.values(), key=lambda r: -r.priority):
            if rule.condition.matches(query, context):
                rule.action.apply(mods)
                mods.applied_rules.append(rule.name)

        return mods

    def apply_result_rules(
        self,
        results: Sequence[ScoredDocument],
        context: Optional[Mapping[str, Any]] = None,
    ) -> List[ScoredDocument]:
        """
        Boost results matching learned patterns and, for critical queries,
        drop low-scoring results from low-trust sources.

        The input sequence and its documents are not modified.
        """
        context = context or {}
        out = [self._boost(doc) for doc in results]

        if context.get("critical"):
            out = [doc for doc in out if not self._is_low_quality(doc)]

        return out

    def _boost(self, doc: ScoredDocument) -> ScoredDocument:
        if not self.patterns or not isinstance(doc, ScoredDocument):
            return doc

        text = doc.text.lower()
        hits = sum(1 for p in self.patterns if p in text)
        if hits == 0:
            return doc

        return doc.model_copy(
            update={
                "weighted_score": min(1.0, doc.weighted_score + hits * PATTERN_BOOST),
                "boosted": True,
                "boost_reason": f"Matches {hits} successful pattern(s)",
            },
            deep=True,
        )

    @staticmethod
    def _is_low_quality(doc: Document) -> bool:
        source = str((doc.meta or {}).get("source") or "").lower()
        low_trust = any(s in source for s in LOW_TRUST_SOURCES)
        return low_trust and (doc.score or 0.0) < LOW_QUALITY_THRESHOLD

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learn(
        self,
        query: str,
        results: Sequence[ResultLike],
        feedback: Union[Feedback, Mapping[str, Any], None] = None,
    ) -> QueryHistoryEntry:
        """
        Record a rated query and re-run pattern detection.
        """
        if not isinstance(feedback, Feedback):
            feedback = Feedback.model_validate(dict(feedback or {}))

        snapshots = [_snapshot(r) for r in results]
        scores = [s.score or 0.0 for s in snapshots]

        entry = QueryHistoryEntry(
            query=query,
            results=snapshots,
            result_count=len(snapshots),
            avg_score=sum(scores) / len(scores) if scores else 0.0,
            feedback=feedback.rating,
            comment=feedback.comment,
            query_length=_word_count(query),
            has_filters=feedback.has_filters,
        )
        self._history.append(entry)
        self._detect_patterns()
        return entry

    def _detect_patterns(self) -> None:
        short = [
            e for e in self._history
            if e.query_length <= SHORT_QUERY_WORDS and e.avg_score < SHORT_QUERY_SCORE
        ]
        if len(short) > SHORT_QUERY_MIN_COUNT and "expand-short-queries" not in self._rules:
            logger.info("Learned rule installed: expand-short-queries")
            self.add_rule(
                "expand-short-queries",
                RuleCondition.word_count_at_most(SHORT_QUERY_WORDS),
                RuleAction.suggest("Consider adding more specific terms to improve results"),
                priority=10,
            )

        rated = [e for e in self._history if e.feedback >= HIGH_RATING]
        if len(rated) > HIGH_RATED_MIN_COUNT:
            freq = Counter(term for e in rated for term in e.query.split())
            # Counter.most_common keeps first-seen order among equal counts.
            self.patterns = [
                term
                for term, count in freq.most_common()
                if count >= PATTERN_MIN_FREQUENCY
            ][:MAX_PATTERNS]

    # ------------------------------------------------------------------
    # Reporting / persistence
    # ------------------------------------------------------------------

    def get_insights(self) -> Insights:
        if not self._history:
            return Insights(
                active_rules=len(self._rules),
                message="No data yet",
            )

        entries = list(self._history)
        rated = [e.feedback for e in entries if e.feedback > 0]

        return Insights(
            total_queries=len(entries),
            avg_query_length=round(sum(e.query_length for e in entries) / len(entries), 2),
            avg_retrieval_score=round(sum(e.avg_score for e in entries) / len(entries), 3),
            avg_user_rating=round(sum(rated) / len(rated), 2) if rated else 0.0,
            detected_patterns=len(self.patterns),
            active_rules=len(self._rules),
            successful_patterns=list(self.patterns),
        )

    def export_knowledge(self) -> Dict[str, Any]:
        """
        Serialize rules, patterns and the full history as JSON-safe data.
        """
        snapshot = KnowledgeSnapshot(
            rules=self.rules,
            patterns=list(self.patterns),
            history=list(self._history),
        )
        return snapshot.model_dump(mode="json")

    def import_knowledge(self, knowledge: Union[KnowledgeSnapshot, Mapping[str, Any]]) -> None:
        """
        Restore exported knowledge. Rules replace same-named rules; history
        replaces the current history (keeping the newest entries that fit).
        """
        if not isinstance(knowledge, KnowledgeSnapshot):
            try:
                knowledge = KnowledgeSnapshot.model_validate(dict(knowledge))
            except ValidationError as exc:
                raise ConfigurationError(
                    "Invalid knowledge snapshot",
                    {"errors": exc.errors(include_url=False)},
                ) from exc

        for rule in knowledge.rules:
            self.add_rule(rule)

        if "history" in knowledge.model_fields_set:
            self._history = deque(knowledge.history, maxlen=self.max_history)

        if "patterns" in knowledge.model_fields_set:
            self.patterns = list(knowledge.patterns)
        else:
            self._detect_patterns()

        logger.info(
            "Imported knowledge: rules=%d, history=%d, patterns=%d",
            len(knowledge.rules),
            len(self._history),
            len(self.patterns),
        )


def _snapshot(result: ResultLike) -> ResultSnapshot:
    if isinstance(result, Document):
        return ResultSnapshot(id=result.id, score=result.score)
    return ResultSnapshot(id=result.get("id"), score=result.get("score"))
