"""Online learning from user corrections.

Reads transactions whose category a user set by hand and folds the latest
verdict per merchant into the merchant knowledge base:
- Unknown merchant: create an entry (confidence 0.95, source user_correction)
- Known merchant, different category, newer correction: overwrite, keep the
  previous category in metadata
- Same category or older correction: leave alone

Afterwards the similarity engine's training set is invalidated so the next
classification embeds the new examples.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from spendsort.models import (
    CorrectionRecord,
    KnowledgeSource,
    MerchantKnowledgeEntry,
    TrainingStats,
    as_utc,
)
from spendsort.preprocessing.normalize import UNKNOWN_MERCHANT, canonicalize, normalize
from spendsort.retrieval.service import TRAINING_SET_PATTERN, EmbeddingSimilarityEngine
from spendsort.storage.cache import TrainingSetCache
from spendsort.storage.repository import KnowledgeRepository
from spendsort.utils.logger import get_logger

log = get_logger("learner")

USER_CORRECTION_CONFIDENCE = 0.95


class KeyedLocks:
    """One lock per key, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks[key]
        with lock:
            yield


def latest_per_merchant(corrections: List[CorrectionRecord]) -> Dict[str, CorrectionRecord]:
    """Newest correction per normalized merchant name, in newest-first order."""
    latest: Dict[str, CorrectionRecord] = {}
    ordered = sorted(corrections, key=lambda c: as_utc(c.updated_at), reverse=True)
    for correction in ordered:
        key = normalize(correction.merchant_name)
        if key not in latest:
            latest[key] = correction
    return latest


class OnlineLearner:
    # Shared across instances so two learners over one database still exclude each other
    _scope_locks = KeyedLocks()
    _merchant_locks = KeyedLocks()

    def __init__(
        self,
        repository: KnowledgeRepository,
        similarity_engine: Optional[EmbeddingSimilarityEngine] = None,
        cache: Optional[TrainingSetCache] = None,
    ):
        self.repository = repository
        self.similarity_engine = similarity_engine
        self.cache = cache

    def train_from_corrections(self, user_id: Optional[str] = None) -> TrainingStats:
        """Fold user corrections into the knowledge base. Safe to re-run."""
        scope = user_id if user_id is not None else "*"
        with self._scope_locks.hold(scope):
            return self._train(user_id)

    def _train(self, user_id: Optional[str]) -> TrainingStats:
        corrections = self.repository.list_corrections(user_id)
        latest = latest_per_merchant(corrections)
        stats = TrainingStats(
            corrections_count=len(corrections),
            unique_merchants=len(latest),
            scope=user_id,
        )
        log.info(
            "Training from corrections",
            extra={"corrections": len(corrections), "merchants": len(latest), "scope": user_id},
        )

        categories = set()
        for key, correction in latest.items():
            if key == UNKNOWN_MERCHANT:
                log.warning("Skipping correction without a usable merchant name", extra={"transaction_id": correction.transaction_id})
                stats.skipped += 1
                continue
            try:
                outcome = self._apply(key, correction)
            except Exception as e:
                log.error(
                    "Failed to learn from correction",
                    extra={"merchant": correction.merchant_name, "transaction_id": correction.transaction_id, "error": str(e)},
                )
                stats.failed += 1
                continue

            if outcome == "created":
                stats.created += 1
            elif outcome == "updated":
                stats.updated += 1
            else:
                stats.unchanged += 1
            if outcome in ("created", "updated") and correction.category_slug:
                categories.add(correction.category_slug)

        stats.categories_updated = sorted(categories)
        self._invalidate()
        stats.knowledge_base_size = self.repository.count_entries()
        log.info(
            "Training complete",
            extra={
                "entries_created": stats.created,
                "entries_updated": stats.updated,
                "entries_unchanged": stats.unchanged,
                "entries_failed": stats.failed,
                "kb_size": stats.knowledge_base_size,
            },
        )
        return stats

    def _apply(self, merchant_key: str, correction: CorrectionRecord) -> str:
        merchant_name = correction.merchant_name.strip()
        corrected_at = as_utc(correction.updated_at)

        # "STARBUCKS #12" must land on the existing "starbucks" entry
        with self._merchant_locks.hold(merchant_key):
            existing = self.repository.find_by_merchant_key(merchant_key)
            if existing is None:
                self.repository.upsert_entry(MerchantKnowledgeEntry(
                    merchant_name=merchant_name,
                    normalized_name=canonicalize(normalize(merchant_name)),
                    category_id=correction.category_id,
                    confidence_score=USER_CORRECTION_CONFIDENCE,
                    source=KnowledgeSource.USER_CORRECTION,
                    metadata={
                        "learned_from": "user_correction",
                        "transaction_id": correction.transaction_id,
                        "corrected_at": corrected_at.isoformat(),
                    },
                    created_at=corrected_at,
                    updated_at=corrected_at,
                ))
                return "created"

            if existing.category_id == correction.category_id:
                return "unchanged"

            entry_time = as_utc(existing.updated_at)
            if entry_time is not None and corrected_at <= entry_time:
                log.debug(
                    "Ignoring stale correction",
                    extra={"merchant": merchant_name, "corrected_at": corrected_at.isoformat()},
                )
                return "unchanged"

            metadata: Dict[str, Any] = dict(existing.metadata)
            metadata.update({
                "previous_category_id": existing.category_id,
                "previous_source": existing.source.value,
                "transaction_id": correction.transaction_id,
                "corrected_at": corrected_at.isoformat(),
            })
            self.repository.upsert_entry(existing.model_copy(update={
                "category_id": correction.category_id,
                "category_slug": correction.category_slug,
                "confidence_score": USER_CORRECTION_CONFIDENCE,
                "source": KnowledgeSource.USER_CORRECTION,
                "metadata": metadata,
                "updated_at": corrected_at,
            }))
            return "updated"

    def _invalidate(self) -> None:
        try:
            if self.similarity_engine is not None:
                self.similarity_engine.invalidate()
            elif self.cache is not None:
                self.cache.invalidate(TRAINING_SET_PATTERN)
        except Exception as e:
            log.error("Training set invalidation failed", extra={"error": str(e)})

    def overview(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Knowledge-base and correction counts without training"""
        return {
            "corrections_count": self.repository.count_corrections(user_id),
            "knowledge_base_size": self.repository.count_entries(),
            "categories": self.repository.category_distribution(),
            "sources": self.repository.source_distribution(),
        }


# Global learner instance
_learner: Optional[OnlineLearner] = None
_learner_lock = threading.Lock()


def get_learner() -> OnlineLearner:
    global _learner
    if _learner is None:
        with _learner_lock:
            if _learner is None:
                from spendsort.retrieval.service import get_similarity_engine

                engine = get_similarity_engine()
                _learner = OnlineLearner(engine.repository, similarity_engine=engine)
    return _learner


def train_from_corrections(user_id: Optional[str] = None) -> TrainingStats:
    return get_learner().train_from_corrections(user_id)


def get_training_overview(user_id: Optional[str] = None) -> Dict[str, Any]:
    return get_learner().overview(user_id)


__all__ = [
    "OnlineLearner",
    "USER_CORRECTION_CONFIDENCE",
    "latest_per_merchant",
    "get_learner",
    "train_from_corrections",
    "get_training_overview",
]
