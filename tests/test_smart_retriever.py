from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from rag_ranker.core.errors import ConfigurationError
from rag_ranker.core.models import Document, ScoredDocument
from rag_ranker.ranking import HeuristicEngine, Retriever, SmartRetriever
from rag_ranker.ranking.smart_retriever import dedupe_by_text


def _retriever_returning(*docs):
    retriever = AsyncMock(spec=Retriever)
    retriever.get_relevant.return_value = list(docs)
    return retriever


def _doc(doc_id, text, score, **meta):
    return Document(id=doc_id, text=text, score=score, meta=meta)


@pytest.mark.asyncio
async def test_dedup_keeps_higher_score():
    retriever = _retriever_returning(
        _doc("1", "X", 0.9),
        _doc("2", "X", 0.85),
        _doc("3", "Y", 0.8),
    )
    smart = SmartRetriever(retriever)

    result = await smart.get_relevant("query text", k=3)

    assert len(result.results) == 2
    (x,) = [d for d in result.results if d.text == "X"]
    assert x.score == 0.9


def test_dedupe_first_seen_wins_ties():
    docs = [
        ScoredDocument(id="a", text="same", score=0.5),
        ScoredDocument(id="b", text="same", score=0.5),
        ScoredDocument(id="c", text="same", score=0.7),
    ]
    assert [d.id for d in dedupe_by_text(docs)] == ["c"]
    assert [d.id for d in dedupe_by_text(docs[:2])] == ["a"]


@pytest.mark.asyncio
async def test_returns_k_sorted_by_weighted_score():
    retriever = _retriever_returning(
        _doc("a", "alpha", 0.2),
        _doc("b", "beta", 0.9),
        _doc("c", "gamma", 0.5),
        _doc("d", "delta", 0.7),
        _doc("e", "epsilon", 0.1),
    )
    smart = SmartRetriever(retriever)

    result = await smart.get_relevant("something", k=3)

    scores = [d.weighted_score for d in result.results]
    assert len(result.results) == 3
    assert scores == sorted(scores, reverse=True)
    assert [d.id for d in result.results] == ["b", "d", "c"]
    retriever.get_relevant.assert_awaited_once_with("something", 6, filter=None)


@pytest.mark.asyncio
async def test_equal_weighted_scores_keep_retrieval_order():
    retriever = _retriever_returning(
        _doc("a", "one", 0.5),
        _doc("b", "two", 0.5),
        _doc("c", "three", 0.5),
    )
    result = await SmartRetriever(retriever).get_relevant("zzz", k=3)
    assert [d.id for d in result.results] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_decisions_and_rule_overrides():
    recent = (datetime.now(timezone.utc) - timedelta(days=5)).isoformat()
    retriever = _retriever_returning(
        _doc("old", "release notes", 0.8, date="2015-01-01"),
        _doc("new", "release notes v2", 0.75, date=recent),
    )
    smart = SmartRetriever(retriever)

    result = await smart.get_relevant("latest release notes", k=2)

    assert result.original_query == "latest release notes"
    assert "boost-recent-for-news" in result.decisions.applied_rules
    assert result.decisions.flags["time_sensitive"] is True
    assert result.decisions.weights["recency"] > 0.15
    assert result.results[0].id == "new"
    assert smart.decision_engine.get_weights()["recency"] == pytest.approx(0.15)


@pytest.mark.asyncio
async def test_caller_weights_and_filter_forwarded():
    retriever = _retriever_returning(_doc("a", "api reference", 0.6))
    smart = SmartRetriever(retriever)

    result = await smart.get_relevant(
        "api",
        k=1,
        filter={"lang": "en"},
        weights={"context_relevance": 1.0},
        context_relevance=1.0,
    )

    retriever.get_relevant.assert_awaited_once_with("api", 2, filter={"lang": "en"})
    breakdown = result.results[0].score_breakdown
    assert breakdown["context_relevance"].score == 1.0
    assert result.decisions.weights["context_relevance"] > 0.05
    assert "suggest-technical-filters" in result.decisions.applied_rules
    assert "expand-short-query" in result.decisions.applied_rules


@pytest.mark.asyncio
async def test_context_relevance_read_from_context():
    retriever = _retriever_returning(_doc("a", "api reference", 0.6))
    smart = SmartRetriever(retriever)

    from_context = await smart.get_relevant("api", k=1, context={"context_relevance": 0.8})
    explicit = await smart.get_relevant(
        "api", k=1, context={"context_relevance": 0.8}, context_relevance=0.2
    )

    assert from_context.results[0].score_breakdown["context_relevance"].score == 0.8
    assert explicit.results[0].score_breakdown["context_relevance"].score == 0.2


@pytest.mark.asyncio
async def test_critical_context_removes_low_trust_results():
    retriever = _retriever_returning(
        _doc("a", "trusted", 0.7, source="official"),
        _doc("b", "chatter", 0.4, source="social"),
    )
    result = await SmartRetriever(retriever).get_relevant(
        "question", k=2, context={"critical": True}
    )

    assert [d.id for d in result.results] == ["a"]
    assert result.decisions.results_modified is True


def test_default_rules_can_be_skipped():
    smart = SmartRetriever(_retriever_returning(), register_default_rules=False)
    assert smart.heuristics.rules == []

    with pytest.raises(ConfigurationError):
        SmartRetriever(None)


def test_feedback_respects_learning_flag():
    engine = HeuristicEngine()
    smart = SmartRetriever(_retriever_returning(), heuristic_engine=engine)

    assert smart.provide_feedback("q", [{"id": "a", "score": 0.9}], {"rating": 5}) is True
    assert len(engine.history) == 1

    smart.enable_learning = False
    assert smart.provide_feedback("q", [], {"rating": 5}) is False
    assert len(engine.history) == 1


def test_insights_and_knowledge_passthrough():
    smart = SmartRetriever(_retriever_returning())
    smart.provide_feedback("python async", [{"score": 0.8}], {"rating": 4})

    insights = smart.get_insights()
    assert insights["heuristics"]["total_queries"] == 1
    assert sum(insights["weights"].values()) == pytest.approx(1.0)

    other = SmartRetriever(_retriever_returning())
    other.import_knowledge(smart.export_knowledge())
    assert other.get_insights()["heuristics"]["avg_user_rating"] == 4.0
