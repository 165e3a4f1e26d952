"""Tests for the hybrid categorizer and its decision table.

Run:
  pytest tests/test_fusion.py -v
"""
from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import VECTORS, FakeEmbedder, FakeRepository
from spendsort.explainer.explain import build_explanation, summarize
from spendsort.fusion.decision import DECISION_TABLE, HybridCategorizer, Outcome, decide
from spendsort.models import (
    CategorizationMethod,
    CategorizationResult,
    EmbeddingMatch,
    ReviewAction,
    RuleMatch,
    TransactionInput,
    review_action,
)
from spendsort.retrieval.service import EmbeddingSimilarityEngine
from spendsort.rules.engine import RuleEngine, rule_engine
from spendsort.rules.table import CategorizationRule


def rule(confidence: float, category: str = "shopping", subcategory: str = "general") -> RuleMatch:
    return RuleMatch(
        matched=True,
        category_slug=category,
        subcategory_slug=subcategory,
        confidence=confidence,
        matched_keyword="acme",
        priority=50,
    )


def ml(confidence: float, category: str = "coffee") -> EmbeddingMatch:
    return EmbeddingMatch(category_id=f"cat-{category}", category_slug=category, confidence=confidence)


def acme_rules(confidence: float) -> RuleEngine:
    return RuleEngine([CategorizationRule(("acme",), "shopping", "general", confidence, 50)])


def txn(description: str = "ACME STORE 42", merchant: str = "Acme", amount: float = -10.0) -> TransactionInput:
    return TransactionInput(description=description, merchant_name=merchant, amount=amount)


class TestDecide:
    """The decision table on its own."""

    def test_confident_rule(self):
        assert decide(rule(0.80), ml(0.99)) == Outcome.RULE_BASED

    def test_ml_strictly_greater_wins(self):
        assert decide(rule(0.60), ml(0.61)) == Outcome.ML

    def test_equal_confidence_is_hybrid(self):
        assert decide(rule(0.60), ml(0.60)) == Outcome.HYBRID

    def test_ml_without_category_never_wins(self):
        assert decide(rule(0.30), EmbeddingMatch(confidence=0.9)) == Outcome.RULE_BASED

    def test_rule_only(self):
        assert decide(rule(0.30), None) == Outcome.RULE_BASED

    def test_ml_only(self):
        assert decide(None, ml(0.10)) == Outcome.ML

    def test_neither(self):
        assert decide(None, None) == Outcome.NONE
        assert decide(RuleMatch(), EmbeddingMatch()) == Outcome.NONE

    def test_threshold_is_configurable(self):
        assert decide(rule(0.75), ml(0.9), accept_threshold=0.7) == Outcome.RULE_BASED

    def test_table_has_four_outcomes(self):
        assert {row.outcome for row in DECISION_TABLE} == set(CategorizationMethod)


class TestAcceptThreshold:
    def test_rule_at_080_skips_embedding(self):
        engine = MagicMock()
        categorizer = HybridCategorizer(rules=acme_rules(0.80), similarity_engine=engine, repository=FakeRepository())
        result = categorizer.categorize(txn())
        assert result.method == CategorizationMethod.RULE_BASED
        assert result.confidence_score == 0.80
        assert result.ml_result is None
        engine.classify.assert_not_called()

    def test_rule_at_079_consults_embedding(self):
        engine = MagicMock()
        engine.classify.return_value = EmbeddingMatch()
        categorizer = HybridCategorizer(rules=acme_rules(0.79), similarity_engine=engine, repository=FakeRepository())
        result = categorizer.categorize(txn())
        engine.classify.assert_called_once_with("Acme ACME STORE 42")
        assert result.method == CategorizationMethod.RULE_BASED
        assert result.confidence_score == 0.79
        assert result.ml_result is not None


class TestCategorize:
    def test_starbucks_end_to_end(self):
        engine = MagicMock()
        categorizer = HybridCategorizer(rules=rule_engine, similarity_engine=engine, repository=FakeRepository())
        result = categorizer.categorize(
            TransactionInput(description="STARBUCKS COFFEE #12345", merchant_name="Starbucks", amount=-5.75)
        )
        assert result.method == CategorizationMethod.RULE_BASED
        assert result.confidence_score == 0.90
        assert result.category_slug == "food-and-drink"
        assert result.subcategory_slug == "food-and-drink-coffee"
        assert result.rule_result.matched_keyword == "starbucks"
        engine.classify.assert_not_called()

    def test_ml_wins_over_weak_rule(self, fake_repository):
        engine = EmbeddingSimilarityEngine(
            FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0]), fake_repository, top_k=5, staleness_seconds=300
        )
        categorizer = HybridCategorizer(rules=acme_rules(0.5), similarity_engine=engine)
        result = categorizer.categorize(txn())
        assert result.method == CategorizationMethod.ML
        assert result.category_slug == "coffee"
        assert result.category_id == "cat-coffee"
        assert result.subcategory_id is None
        assert result.confidence_score == pytest.approx(0.90, abs=1e-4)
        assert result.rule_result.matched is True

    def test_hybrid_keeps_rule_category(self):
        engine = MagicMock()
        engine.classify.return_value = ml(0.6)
        repo = FakeRepository(categories={("shopping", "general"): ("id-shop", "id-general")})
        categorizer = HybridCategorizer(rules=acme_rules(0.7), similarity_engine=engine, repository=repo)
        result = categorizer.categorize(txn())
        assert result.method == CategorizationMethod.HYBRID
        assert result.category_slug == "shopping"
        assert result.category_id == "id-shop"
        assert result.subcategory_id == "id-general"
        assert result.confidence_score == 0.7
        assert result.ml_result.category_slug == "coffee"

    def test_no_match_anywhere(self):
        engine = MagicMock()
        engine.classify.return_value = EmbeddingMatch()
        categorizer = HybridCategorizer(rules=acme_rules(0.9), similarity_engine=engine, repository=FakeRepository())
        result = categorizer.categorize(txn(description="XYZZY 999", merchant="Nowhere"))
        assert result.method == CategorizationMethod.NONE
        assert result.confidence_score == 0.0
        assert result.category_id is None
        assert result.subcategory_id is None
        assert result.rule_result.matched is False

    def test_embedding_failure_falls_back_to_rule(self, fake_repository):
        engine = EmbeddingSimilarityEngine(FakeEmbedder(VECTORS, fail=True), fake_repository)
        categorizer = HybridCategorizer(rules=acme_rules(0.3), similarity_engine=engine)
        result = categorizer.categorize(txn())
        assert result.method == CategorizationMethod.RULE_BASED
        assert result.confidence_score == 0.3
        assert result.ml_result.error == "model unavailable"

    def test_embedding_failure_without_rule_is_none(self, fake_repository):
        engine = MagicMock()
        engine.classify.side_effect = RuntimeError("boom")
        categorizer = HybridCategorizer(rules=acme_rules(0.3), similarity_engine=engine, repository=fake_repository)
        result = categorizer.categorize(txn(description="nothing here", merchant=""))
        assert result.method == CategorizationMethod.NONE
        assert result.ml_result.error == "boom"

    def test_unresolvable_slug_keeps_slug(self):
        categorizer = HybridCategorizer(rules=acme_rules(0.9), repository=FakeRepository())
        result = categorizer.categorize(txn())
        assert result.category_slug == "shopping"
        assert result.category_id is None
        assert result.confidence_score == 0.9

    def test_resolution_failure_is_not_raised(self):
        repo = FakeRepository()
        repo.fail_resolve = True
        categorizer = HybridCategorizer(rules=acme_rules(0.9), repository=repo)
        result = categorizer.categorize(txn())
        assert result.method == CategorizationMethod.RULE_BASED
        assert result.category_id is None

    def test_empty_input_never_raises(self):
        categorizer = HybridCategorizer(rules=acme_rules(0.9))
        result = categorizer.categorize(TransactionInput(description=None, merchant_name=None))
        assert result.method == CategorizationMethod.NONE

    def test_broken_rule_engine_is_contained(self):
        rules = MagicMock()
        rules.match.side_effect = RuntimeError("bad table")
        categorizer = HybridCategorizer(rules=rules)
        assert categorizer.categorize(txn()).method == CategorizationMethod.NONE


class TestBatch:
    def test_batch_preserves_order(self):
        categorizer = HybridCategorizer(rules=rule_engine)
        txns = [
            TransactionInput(description="NETFLIX.COM", merchant_name="Netflix", amount=-16.99),
            TransactionInput(description="XYZZY", merchant_name="", amount=-1.0),
            TransactionInput(description="STARBUCKS", merchant_name="Starbucks", amount=-5.0),
        ] * 3
        results = categorizer.categorize_batch(txns, max_workers=4)
        singles = [categorizer.categorize(t) for t in txns]
        assert [r.category_slug for r in results] == [r.category_slug for r in singles]
        assert results[1].method == CategorizationMethod.NONE

    def test_async_batch(self):
        categorizer = HybridCategorizer(rules=rule_engine)
        txns = [
            TransactionInput(description="STARBUCKS", merchant_name="Starbucks", amount=-5.0),
            TransactionInput(description="XYZZY", merchant_name="", amount=-1.0),
        ]
        results = asyncio.run(categorizer.acategorize_batch(txns))
        assert [r.method for r in results] == [CategorizationMethod.RULE_BASED, CategorizationMethod.NONE]


class TestReviewAction:
    @pytest.mark.parametrize("confidence,expected", [
        (1.0, ReviewAction.AUTO_APPLY),
        (0.90, ReviewAction.AUTO_APPLY),
        (0.8999, ReviewAction.NEEDS_REVIEW),
        (0.70, ReviewAction.NEEDS_REVIEW),
        (0.6999, ReviewAction.MANUAL),
        (0.0, ReviewAction.MANUAL),
    ])
    def test_thresholds(self, confidence, expected):
        assert review_action(confidence) == expected

    def test_result_carries_review_action(self):
        result = CategorizationResult(confidence_score=0.75)
        assert result.review_action == ReviewAction.NEEDS_REVIEW
        assert result.model_dump()["review_action"] == ReviewAction.NEEDS_REVIEW


def test_stats_include_thresholds():
    categorizer = HybridCategorizer(rules=rule_engine, accept_threshold=0.8)
    stats = categorizer.stats()
    assert stats["rules"]["total_rules"] == 58
    assert stats["ml"] == {"available": False}
    assert stats["thresholds"] == {"rule_accept": 0.8, "auto_apply": 0.90, "needs_review": 0.70}


class TestExplanation:
    def test_rule_summary(self):
        result = HybridCategorizer(rules=acme_rules(0.9)).categorize(txn())
        assert summarize(result) == "Categorized as shopping/general with confidence 90.0%. Rule matched: 'acme'."

    def test_ml_summary(self, fake_repository):
        engine = EmbeddingSimilarityEngine(FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0]), fake_repository)
        result = HybridCategorizer(rules=acme_rules(0.9), similarity_engine=engine).categorize(
            txn(description="somewhere", merchant="else")
        )
        assert summarize(result) == "Categorized as coffee with confidence 90.0%. Similar to: Starbucks (100.0%)."
        explanation = build_explanation(result, max_examples=2)
        assert explanation["decision_path"] == "ml"
        assert [e["name"] for e in explanation["nearest_examples"]] == ["Starbucks", "Second Cup"]

    def test_none_summary(self):
        assert summarize(CategorizationResult()) == "No category found."
        failed = CategorizationResult(ml_result=EmbeddingMatch(error="down"))
        assert summarize(failed) == "No category found. Similarity search was unavailable."
