"""
Weighted Decision Engine

Pure, stateless multi-factor scoring. A document plus ranking signals is
converted into one weighted score and a per-factor breakdown:

    weighted_score = sum(score[f] * weight[f] for f in FACTORS)

Weights are always normalized to sum to 1.0, and every factor score lies in
[0, 1], so the weighted score lies in [0, 1].
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.errors import ConfigurationError
from ..core.models import (
    FACTORS,
    DecisionWeights,
    Document,
    FactorScore,
    ScoredDocument,
)

WeightsInput = Union[DecisionWeights, Mapping[str, float], None]

# Case-insensitive substring match, first hit wins.
SOURCE_QUALITY: Dict[str, float] = {
    "official": 1.0,
    "documentation": 0.95,
    "research": 0.9,
    "tutorial": 0.75,
    "blog": 0.7,
    "forum": 0.6,
    "social": 0.5,
}
DEFAULT_SOURCE_QUALITY = 0.5

NEUTRAL_RECENCY = 0.5
RECENCY_MIDPOINT_DAYS = 120.0
RECENCY_STEEPNESS = 3.0


# ---------------------------------------------------------------------
# Factor functions
# ---------------------------------------------------------------------

def calculate_recency(value: Any, now: Optional[datetime] = None) -> float:
    """
    Map a document date to a freshness score in [0, 1].

    ``1 / (1 + (age_days / 120) ** 3)``: about 0.99 at 10 days, 0.98 at 30
    days, 0.5 at 120 days and 0.03 at one year. Future dates count as age 0.
    Missing or unparseable dates score the neutral 0.5.

    Accepts datetime, date, ISO-8601 strings and epoch seconds. Naive
    datetimes are taken as UTC.
    """
    when = _parse_date(value)
    if when is None:
        return NEUTRAL_RECENCY

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age_days = max(0.0, (now - when).total_seconds() / 86_400)
    return 1.0 / (1.0 + (age_days / RECENCY_MIDPOINT_DAYS) ** RECENCY_STEEPNESS)


def get_source_quality(source: Any) -> float:
    """
    Look up a source reliability score; unknown sources score 0.5.
    """
    if not source or not isinstance(source, str):
        return DEFAULT_SOURCE_QUALITY

    lowered = source.lower()
    for kind, quality in SOURCE_QUALITY.items():
        if kind in lowered:
            return quality
    return DEFAULT_SOURCE_QUALITY


def _parse_date(value: Any) -> Optional[datetime]:
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _unit(value: Any) -> float:
    if value is None:
        return 0.0
    return min(1.0, max(0.0, float(value)))


def coerce_weights(weights: WeightsInput) -> DecisionWeights:
    """
    Build normalized DecisionWeights from a partial mapping (omitted factors
    take their baseline value) or copy an existing instance.
    """
    if weights is None:
        return DecisionWeights()
    if isinstance(weights, DecisionWeights):
        return weights.model_copy()

    try:
        return DecisionWeights(**dict(weights))
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid decision weights: {dict(weights)!r}",
            {
                "factors": list(FACTORS),
                "suggestion": "Use non-negative numbers keyed by known factor names",
            },
        ) from exc


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

class WeightedDecisionEngine:
    """
    Score documents as a convex combination of five factors.
    """

    def __init__(self, weights: WeightsInput = None) -> None:
        self._weights = coerce_weights(weights)

    @property
    def weights(self) -> DecisionWeights:
        return self._weights.model_copy()

    def get_weights(self) -> Dict[str, float]:
        return self._weights.as_dict()

    def set_weights(self, weights: Mapping[str, float]) -> None:
        """
        Overwrite some factors, then renormalize all five.
        """
        self._weights = coerce_weights({**self._weights.as_dict(), **dict(weights)})

    def adjust_weight(self, factor: str, delta: float) -> None:
        """
        Add ``delta`` to one weight (clamped to [0, 1]) and renormalize.
        """
        if factor not in FACTORS:
            raise ConfigurationError(
                f"Unknown decision factor: {factor}",
                {"factor": factor, "suggestion": f"Use one of {', '.join(FACTORS)}"},
            )

        values = self._weights.as_dict()
        values[factor] = min(1.0, max(0.0, values[factor] + delta))
        self._weights = DecisionWeights(**values)

    def with_overrides(self, weights: Mapping[str, float]) -> "WeightedDecisionEngine":
        """
        Return a new engine with some factors overridden; this one is unchanged.
        """
        return WeightedDecisionEngine({**self._weights.as_dict(), **dict(weights)})

    # Exposed on the engine for callers that hold only an engine instance.
    calculate_recency = staticmethod(calculate_recency)
    get_source_quality = staticmethod(get_source_quality)

    def score_document(
        self,
        doc: Document,
        *,
        keyword_match: float = 0.0,
        context_relevance: float = 0.0,
        now: Optional[datetime] = None,
    ) -> ScoredDocument:
        """
        Score one document.

        Parameters
        ----------
        doc : Document
            Retrieved document; ``doc.score`` is the semantic similarity.

        keyword_match : float
            Caller-computed term-match ratio in [0, 1].

        context_relevance : float
            Caller-supplied context relevance in [0, 1].

        now : Optional[datetime]
            Reference time for recency (defaults to the current UTC time).

        Returns
        -------
        ScoredDocument
            A copy of ``doc`` with weighted_score, score_breakdown and
            original_score set.
        """
        meta = doc.meta or {}
        scores = {
            "semantic_similarity": _unit(doc.score),
            "keyword_match": _unit(keyword_match),
            "recency": calculate_recency(meta.get("date"), now),
            "source_quality": get_source_quality(meta.get("source")),
            "context_relevance": _unit(context_relevance),
        }
        weights = self._weights.as_dict()

        breakdown: Dict[str, FactorScore] = {}
        total = 0.0
        for name in FACTORS:
            contribution = scores[name] * weights[name]
            total += contribution
            breakdown[name] = FactorScore(
                score=scores[name],
                weight=weights[name],
                contribution=contribution,
            )

        data = doc.model_dump()
        data.update(
            original_score=doc.score,
            weighted_score=min(1.0, max(0.0, total)),
            score_breakdown=breakdown,
        )
        return ScoredDocument.model_validate(data)
