"""
Heuristic engine tests: rule evaluation, result rules, bounded learning and
knowledge export/import.
"""

import pytest

from rag_ranker.core.errors import ConfigurationError
from rag_ranker.core.models import Document, ScoredDocument
from rag_ranker.ranking import (
    ActionKind,
    ConditionKind,
    HeuristicEngine,
    HeuristicRule,
    RuleAction,
    RuleCondition,
)


def _scored(doc_id, text, score, weighted, source=None):
    meta = {"source": source} if source else {}
    return ScoredDocument(id=doc_id, text=text, score=score, weighted_score=weighted, meta=meta)


# ---------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------

class TestRuleDefinitions:
    def test_condition_validation(self):
        with pytest.raises(ValueError):
            RuleCondition(kind=ConditionKind.WORD_COUNT_AT_MOST, value="two")
        with pytest.raises(ValueError):
            RuleCondition.matches_pattern("(unclosed")
        with pytest.raises(ValueError):
            RuleAction(kind=ActionKind.SUGGEST)

    def test_conditions_match(self):
        assert RuleCondition.always().matches("", {})
        assert RuleCondition.word_count_at_most(2).matches("two words", {})
        assert not RuleCondition.word_count_at_most(2).matches("three whole words", {})
        assert RuleCondition.word_count_equals(1).matches("  single ", {})
        assert RuleCondition.matches_pattern(r"\bAPI\b").matches("rest api docs", {})
        assert RuleCondition.context_flag("critical").matches("q", {"critical": True})
        assert not RuleCondition.context_flag("critical").matches("q", {})

    def test_rules_are_replaced_by_name(self):
        engine = HeuristicEngine()
        engine.add_rule("r", RuleCondition.always(), RuleAction.suggest("first"))
        engine.add_rule("r", RuleCondition.always(), RuleAction.suggest("second"), priority=2)

        assert len(engine.rules) == 1
        assert engine.get_rule("r").priority == 2
        assert engine.remove_rule("r") is True
        assert engine.remove_rule("r") is False
        assert engine.get_rule("r") is None


class TestQueryRules:
    def test_priority_order_and_stable_ties(self):
        engine = HeuristicEngine()
        engine.add_rule("low", RuleCondition.always(), RuleAction.suggest("low"), priority=1)
        engine.add_rule("tie-a", RuleCondition.always(), RuleAction.suggest("a"), priority=5)
        engine.add_rule("high", RuleCondition.always(), RuleAction.suggest("high"), priority=9)
        engine.add_rule("tie-b", RuleCondition.always(), RuleAction.suggest("b"), priority=5)

        mods = engine.apply_query_rules("anything")

        assert mods.applied_rules == ["high", "tie-a", "tie-b", "low"]
        assert mods.suggestions == ["high", "a", "b", "low"]

    def test_actions_transform_modifications(self):
        engine = HeuristicEngine()
        engine.add_rule(
            "news",
            RuleCondition.matches_pattern(r"\blatest\b"),
            RuleAction.prefer_recent(),
        )
        engine.add_rule(
            "expand",
            RuleCondition.word_count_at_most(3),
            RuleAction.append_terms(["python", "tutorial"]),
        )
        engine.add_rule(
            "critical",
            RuleCondition.context_flag("critical"),
            RuleAction.set_flag("strict_sources", "Only trusted sources"),
        )
        engine.add_rule("never", RuleCondition.word_count_equals(10), RuleAction.suggest("no"))

        mods = engine.apply_query_rules("latest python", {"critical": True})

        assert mods.original_query == "latest python"
        assert mods.modified_query == "latest python tutorial"
        assert mods.flags == {"time_sensitive": True, "strict_sources": True}
        assert mods.weight_overrides == {"recency": 0.4, "semantic_similarity": 0.35}
        assert mods.suggestions == ["Only trusted sources"]
        assert "never" not in mods.applied_rules


class TestResultRules:
    def test_critical_context_filters_low_quality(self):
        engine = HeuristicEngine()
        results = [
            _scored("a", "text a", 0.5, 0.5, "social media"),
            _scored("b", "text b", 0.7, 0.6, "forum"),
            _scored("c", "text c", 0.3, 0.3, "official"),
            _scored("d", "text d", 0.2, 0.2, "comment section"),
        ]

        assert len(engine.apply_result_rules(results)) == 4
        filtered = engine.apply_result_rules(results, {"critical": True})
        assert [d.id for d in filtered] == ["b", "c"]
        assert len(results) == 4

    def test_pattern_boost_does_not_mutate_input(self):
        engine = HeuristicEngine()
        engine.patterns = ["python", "async"]
        results = [
            _scored("a", "Python async basics", 0.8, 0.5),
            _scored("b", "Rust", 0.8, 0.99),
            _scored("c", "python", 0.8, 0.98),
        ]

        boosted = engine.apply_result_rules(results)

        assert boosted[0].weighted_score == pytest.approx(0.6)
        assert boosted[0].boosted is True
        assert "2" in boosted[0].boost_reason
        assert boosted[1].boosted is False
        assert boosted[2].weighted_score == 1.0
        assert results[0].weighted_score == 0.5
        assert results[0].boosted is False


# ---------------------------------------------------------------------
# Learning
# ---------------------------------------------------------------------

class TestLearning:
    def test_history_is_bounded(self):
        engine = HeuristicEngine()
        for i in range(150):
            engine.learn(f"query {i}", [], {"rating": 3})

        assert len(engine.history) == 100
        assert engine.history[0].query == "query 50"
        assert engine.history[-1].query == "query 149"

    def test_history_entry_contents(self):
        engine = HeuristicEngine()
        docs = [Document(id="a", text="x", score=0.8), {"id": "b", "score": 0.4}]

        entry = engine.learn("Python Async IO", docs, {"rating": 5, "comment": "great"})

        assert entry.query == "python async io"
        assert entry.query_length == 3
        assert entry.result_count == 2
        assert entry.avg_score == pytest.approx(0.6)
        assert [r.id for r in entry.results] == ["a", "b"]
        assert entry.feedback == 5
        assert entry.comment == "great"

    def test_short_query_rule_is_learned(self):
        engine = HeuristicEngine()
        for _ in range(5):
            engine.learn("short", [{"id": "a", "score": 0.3}])
        assert engine.get_rule("expand-short-queries") is None

        engine.learn("short", [{"id": "a", "score": 0.3}])
        rule = engine.get_rule("expand-short-queries")
        assert rule is not None
        assert rule.priority == 10
        assert rule.condition.kind is ConditionKind.WORD_COUNT_AT_MOST

    def test_successful_patterns_detected(self):
        engine = HeuristicEngine()
        for i in range(11):
            query = "python async tutorial" if i % 2 else "python testing"
            engine.learn(query, [], {"rating": 5})
        engine.learn("ignored low rating words", [], {"rating": 1})

        assert engine.patterns[0] == "python"
        assert set(engine.patterns) == {"python", "async", "tutorial", "testing"}

    def test_no_patterns_below_threshold(self):
        engine = HeuristicEngine()
        for _ in range(10):
            engine.learn("python", [], {"rating": 5})
        assert engine.patterns == []


# ---------------------------------------------------------------------
# Insights / knowledge
# ---------------------------------------------------------------------

class TestKnowledge:
    def test_insights_empty(self):
        insights = HeuristicEngine().get_insights()
        assert insights.total_queries == 0
        assert insights.message == "No data yet"

    def test_insights(self):
        engine = HeuristicEngine()
        engine.learn("one two", [{"score": 0.5}], {"rating": 4})
        engine.learn("three", [{"score": 0.7}], {"rating": 0})
        engine.learn("four five six", [{"score": 0.9}], {"rating": 2})

        insights = engine.get_insights()
        assert insights.total_queries == 3
        assert insights.avg_query_length == 2.0
        assert insights.avg_retrieval_score == pytest.approx(0.7)
        assert insights.avg_user_rating == 3.0

    def test_export_import_roundtrip(self):
        engine = HeuristicEngine()
        engine.add_rule(
            "tech",
            RuleCondition.matches_pattern(r"\bapi\b"),
            RuleAction.append_terms(["reference"]),
            priority=4,
        )
        for i in range(12):
            engine.learn(f"python api {i}", [{"id": str(i), "score": 0.5}], {"rating": 4.5})

        exported = engine.export_knowledge()
        fresh = HeuristicEngine()
        fresh.import_knowledge(exported)

        before, after = engine.get_insights(), fresh.get_insights()
        assert after.total_queries == before.total_queries
        assert after.avg_user_rating == before.avg_user_rating
        assert fresh.patterns == engine.patterns
        assert fresh.get_rule("tech") == engine.get_rule("tech")
        assert [e.timestamp for e in fresh.history] == [e.timestamp for e in engine.history]

    def test_import_respects_capacity(self):
        source = HeuristicEngine()
        for i in range(50):
            source.learn(f"q{i}", [])

        small = HeuristicEngine(max_history=10)
        small.import_knowledge(source.export_knowledge())

        assert len(small.history) == 10
        assert small.history[-1].query == "q49"

    def test_invalid_knowledge_rejected(self):
        with pytest.raises(ConfigurationError):
            HeuristicEngine().import_knowledge({"rules": [{"name": "broken"}]})

    def test_rules_are_serializable(self):
        rule = HeuristicRule(
            name="news",
            condition=RuleCondition.matches_pattern("latest"),
            action=RuleAction.prefer_recent(suggestion="fresh first"),
            priority=8,
        )
        assert HeuristicRule.model_validate(rule.model_dump(mode="json")) == rule
