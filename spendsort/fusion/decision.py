"""Hybrid categorization: rules first, embedding similarity second.

Order:
1) Rules, accepted outright at or above the accept threshold
2) Embedding similarity over the merchant knowledge base
3) Decision table picking rule-based / ml / hybrid / none
"""
from __future__ import annotations

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from spendsort.config import get_settings
from spendsort.models import (
    AUTO_APPLY_THRESHOLD,
    NEEDS_REVIEW_THRESHOLD,
    CategorizationMethod,
    CategorizationResult,
    EmbeddingMatch,
    RuleMatch,
    TransactionInput,
)
from spendsort.retrieval.service import EmbeddingSimilarityEngine, get_similarity_engine
from spendsort.rules.engine import RuleEngine, rule_engine
from spendsort.storage.repository import KnowledgeRepository
from spendsort.utils.logger import get_logger

log = get_logger("fusion")

# The four outcomes a decision can have
Outcome = CategorizationMethod


class Evidence(NamedTuple):
    rule_category: bool
    rule_confidence: float
    ml_category: bool
    ml_confidence: float
    accept_threshold: float


class DecisionRow(NamedTuple):
    name: str
    applies: Callable[[Evidence], bool]
    outcome: Outcome


# Evaluated top to bottom, first applicable row wins
DECISION_TABLE: Tuple[DecisionRow, ...] = (
    DecisionRow(
        "rule_confident",
        lambda ev: ev.rule_category and ev.rule_confidence >= ev.accept_threshold,
        Outcome.RULE_BASED,
    ),
    DecisionRow(
        "ml_beats_rule",
        lambda ev: ev.ml_category and ev.ml_confidence > ev.rule_confidence,
        Outcome.ML,
    ),
    DecisionRow(
        "both_matched",
        lambda ev: ev.rule_category and ev.ml_category,
        Outcome.HYBRID,
    ),
    DecisionRow(
        "rule_only",
        lambda ev: ev.rule_category,
        Outcome.RULE_BASED,
    ),
    DecisionRow(
        "no_match",
        lambda ev: True,
        Outcome.NONE,
    ),
)


def decide(
    rule: Optional[RuleMatch],
    ml: Optional[EmbeddingMatch],
    accept_threshold: float = 0.80,
) -> Outcome:
    """Pure decision over the two stage results."""
    rule_category = bool(rule is not None and rule.matched and rule.category_slug)
    evidence = Evidence(
        rule_category=rule_category,
        rule_confidence=rule.confidence if rule_category else 0.0,
        ml_category=bool(ml is not None and ml.category_slug),
        ml_confidence=ml.confidence if ml is not None else 0.0,
        accept_threshold=accept_threshold,
    )
    for row in DECISION_TABLE:
        if row.applies(evidence):
            return row.outcome
    return Outcome.NONE


class HybridCategorizer:
    """
    Single entry point for categorizing a transaction.

    Never raises: a failing embedding stage or id lookup degrades to whatever
    the rule stage produced.
    """

    def __init__(
        self,
        rules: Optional[RuleEngine] = None,
        similarity_engine: Optional[EmbeddingSimilarityEngine] = None,
        repository: Optional[KnowledgeRepository] = None,
        accept_threshold: Optional[float] = None,
        max_workers: int = 4,
    ):
        self.rules = rules or rule_engine
        self.similarity_engine = similarity_engine
        self.repository = repository if repository is not None else getattr(similarity_engine, "repository", None)
        self.accept_threshold = (
            get_settings().rule_accept_threshold if accept_threshold is None else accept_threshold
        )
        self.max_workers = max_workers

    def warm_up(self) -> None:
        """Load the embedding model and training set before the first request."""
        if self.similarity_engine is None:
            return
        try:
            examples = self.similarity_engine.warm_up()
            log.info("Categorizer warmed up", extra={"training_examples": examples})
        except Exception as e:
            log.error("Warm-up failed", extra={"error": str(e)})

    def categorize(self, txn: TransactionInput) -> CategorizationResult:
        try:
            return self._categorize(txn)
        except Exception as e:
            log.error("Categorization failed", extra={"error": str(e), "merchant": getattr(txn, "merchant_name", None)})
            return CategorizationResult()

    def _categorize(self, txn: TransactionInput) -> CategorizationResult:
        rule = self._run_rules(txn)
        rule_info = rule or RuleMatch()

        ml: Optional[EmbeddingMatch] = None
        if not (rule is not None and rule.confidence >= self.accept_threshold):
            ml = self._run_embedding(txn)

        outcome = decide(rule, ml, self.accept_threshold)
        log.debug(
            "Categorization decided",
            extra={
                "method": outcome.value,
                "rule_confidence": rule_info.confidence,
                "ml_confidence": ml.confidence if ml is not None else None,
            },
        )

        if outcome in (Outcome.RULE_BASED, Outcome.HYBRID):
            category_id, subcategory_id = self._resolve_ids(rule_info.category_slug, rule_info.subcategory_slug)
            return CategorizationResult(
                category_id=category_id,
                category_slug=rule_info.category_slug,
                subcategory_id=subcategory_id,
                subcategory_slug=rule_info.subcategory_slug,
                confidence_score=rule_info.confidence,
                method=outcome,
                rule_result=rule_info,
                ml_result=ml,
            )
        if outcome == Outcome.ML:
            return CategorizationResult(
                category_id=ml.category_id,
                category_slug=ml.category_slug,
                confidence_score=ml.confidence,
                method=outcome,
                rule_result=rule_info,
                ml_result=ml,
            )
        return CategorizationResult(method=Outcome.NONE, rule_result=rule_info, ml_result=ml)

    def _run_rules(self, txn: TransactionInput) -> Optional[RuleMatch]:
        try:
            return self.rules.match(txn)
        except Exception as e:
            log.error("Rule engine failed", extra={"error": str(e)})
            return None

    def _run_embedding(self, txn: TransactionInput) -> Optional[EmbeddingMatch]:
        if self.similarity_engine is None:
            return None
        try:
            return self.similarity_engine.classify(txn.query_text)
        except Exception as e:
            log.error("Embedding categorization failed", extra={"error": str(e), "merchant": txn.merchant_name})
            return EmbeddingMatch(error=str(e))

    def _resolve_ids(self, category_slug: Optional[str], subcategory_slug: Optional[str]):
        if self.repository is None or not category_slug:
            return None, None
        try:
            category_id, subcategory_id = self.repository.resolve_category_ids(category_slug, subcategory_slug)
        except Exception as e:
            log.error("Category lookup failed", extra={"category": category_slug, "error": str(e)})
            return None, None
        if category_id is None:
            log.warning("Category slug not found", extra={"category": category_slug})
        elif subcategory_slug and subcategory_id is None:
            log.warning("Subcategory slug not found", extra={"category": category_slug, "subcategory": subcategory_slug})
        return category_id, subcategory_id

    def categorize_batch(
        self, txns: Sequence[TransactionInput], max_workers: Optional[int] = None
    ) -> List[CategorizationResult]:
        """Categorize independently, results in input order."""
        workers = max_workers or self.max_workers
        if workers <= 1 or len(txns) <= 1:
            return [self.categorize(t) for t in txns]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self.categorize, txns))

    async def acategorize(self, txn: TransactionInput) -> CategorizationResult:
        return await asyncio.to_thread(self.categorize, txn)

    async def acategorize_batch(self, txns: Sequence[TransactionInput]) -> List[CategorizationResult]:
        return list(await asyncio.gather(*(self.acategorize(t) for t in txns)))

    def stats(self) -> Dict[str, Any]:
        ml_stats: Dict[str, Any] = {"available": self.similarity_engine is not None}
        if self.similarity_engine is not None:
            ml_stats.update(self.similarity_engine.stats())
        return {
            "rules": self.rules.stats(),
            "ml": ml_stats,
            "thresholds": {
                "rule_accept": self.accept_threshold,
                "auto_apply": AUTO_APPLY_THRESHOLD,
                "needs_review": NEEDS_REVIEW_THRESHOLD,
            },
        }


# Global categorizer instance
_categorizer: Optional[HybridCategorizer] = None
_categorizer_lock = threading.Lock()


def get_categorizer() -> HybridCategorizer:
    global _categorizer
    if _categorizer is None:
        with _categorizer_lock:
            if _categorizer is None:
                _categorizer = HybridCategorizer(similarity_engine=get_similarity_engine())
    return _categorizer


def categorize(txn: TransactionInput) -> CategorizationResult:
    """Categorize with the process-wide categorizer."""
    return get_categorizer().categorize(txn)


__all__ = ["Outcome", "DECISION_TABLE", "decide", "HybridCategorizer", "get_categorizer", "categorize"]
