"""Tests for the embedding similarity engine.

Run:
  pytest tests/test_retrieval.py -v
"""
from __future__ import annotations

import threading
from unittest.mock import MagicMock

import numpy as np
import pytest
import redis

from conftest import VECTORS, FakeEmbedder, FakeRepository, entry
from spendsort.retrieval.service import (
    TRAINING_SET_KEY,
    EmbeddingSimilarityEngine,
    TrainingExample,
    adjust_confidence,
    cosine_similarity,
    vote,
)
from spendsort.storage.cache import InMemoryCache, RedisCache
from spendsort.utils.exceptions import EmbeddingError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_engine(repository, embedder=None, cache=None, clock=None, **kwargs):
    return EmbeddingSimilarityEngine(
        embedder=embedder or FakeEmbedder(VECTORS),
        repository=repository,
        cache=cache,
        top_k=kwargs.pop("top_k", 5),
        staleness_seconds=kwargs.pop("staleness_seconds", 300),
        clock=clock or FakeClock(),
    )


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_norm_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestVote:
    """Grouping by category and scoring by mean similarity."""

    def test_mean_beats_count(self):
        x = TrainingExample("A", "cat-x", "x")
        y1 = TrainingExample("B", "cat-y", "y")
        y2 = TrainingExample("C", "cat-y", "y")
        match = vote([(x, 0.7), (y1, 0.5), (y2, 0.5)])
        assert match.category_slug == "x"
        assert match.category_id == "cat-x"

    def test_tie_goes_to_group_seen_first(self):
        x = TrainingExample("A", "cat-x", "x")
        y1 = TrainingExample("B", "cat-y", "y")
        y2 = TrainingExample("C", "cat-y", "y")
        # Both groups average 0.5; y holds the closest neighbour
        match = vote([(y1, 0.75), (x, 0.5), (y2, 0.25)])
        assert match.category_slug == "y"

    def test_nothing_positive_means_no_category(self):
        x = TrainingExample("A", "cat-x", "x")
        match = vote([(x, 0.0)])
        assert match.category_slug is None
        assert match.confidence == 0.0
        assert match.nearest_example_name == "A"

    def test_empty(self):
        match = vote([])
        assert match.category_slug is None
        assert match.confidence == 0.0


class TestAdjustConfidence:
    def test_boost_above_085(self):
        assert adjust_confidence(0.80, 0.90) == pytest.approx(0.90)

    def test_boost_is_capped(self):
        assert adjust_confidence(0.99, 0.99) == pytest.approx(0.95)

    def test_penalty_below_060(self):
        assert adjust_confidence(0.50, 0.55) == pytest.approx(0.35)

    def test_middle_band_unchanged(self):
        assert adjust_confidence(0.70, 0.85) == pytest.approx(0.70)
        assert adjust_confidence(0.60, 0.60) == pytest.approx(0.60)


class TestClassify:
    def test_exact_match_is_boosted(self, fake_repository):
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0]))
        match = engine.classify("STARBUCKS 123")
        # coffee mean (1.0 + 0.6) / 2, plus the boost
        assert match.category_slug == "coffee"
        assert match.category_id == "cat-coffee"
        assert match.confidence == pytest.approx(0.90, abs=1e-4)
        assert match.nearest_example_name == "Starbucks"
        assert match.similarity == pytest.approx(1.0, abs=1e-4)
        assert [n.name for n in match.neighbors] == ["Starbucks", "Second Cup", "Shell"]

    def test_weak_match_is_penalised(self, fake_repository):
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[0.5, 0.0, 0.8660254]))
        match = engine.classify("somewhere")
        assert match.category_slug == "coffee"
        # mean (0.5 + 0.3) / 2 = 0.4, times 0.7
        assert match.confidence == pytest.approx(0.28, abs=1e-4)

    def test_middle_band(self, fake_repository):
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[0.75, 0.0, 0.6614378]))
        match = engine.classify("somewhere")
        assert match.confidence == pytest.approx(0.60, abs=1e-4)

    def test_other_category_wins(self, fake_repository):
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[0.0, 1.0, 0.0]))
        match = engine.classify("gas")
        assert match.category_slug == "gas"
        assert match.confidence == pytest.approx(0.95, abs=1e-4)

    def test_top_k_limits_neighbours(self, fake_repository):
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0]), top_k=1)
        match = engine.classify("x")
        assert len(match.neighbors) == 1
        assert match.confidence == pytest.approx(0.95, abs=1e-4)

    def test_empty_training_set(self):
        embedder = FakeEmbedder(VECTORS)
        engine = make_engine(FakeRepository([]), embedder)
        match = engine.classify("anything")
        assert match.category_slug is None
        assert match.confidence == 0.0
        assert embedder.embed_calls == []

    def test_uncategorized_entries_are_ignored(self):
        repo = FakeRepository([entry("Starbucks", "coffee"), entry("Mystery", "coffee").model_copy(update={"category_id": None})])
        engine = make_engine(repo)
        assert len(engine.training_set()) == 1

    def test_dimension_mismatch_raises(self, fake_repository):
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[1.0, 0.0]))
        with pytest.raises(EmbeddingError):
            engine.classify("x")


class TestTrainingSetCache:
    def test_reused_within_window(self, fake_repository):
        embedder = FakeEmbedder(VECTORS)
        engine = make_engine(fake_repository, embedder)
        engine.classify("a")
        engine.classify("b")
        assert embedder.batch_calls == 1
        assert engine.rebuild_count == 1

    def test_rebuilt_after_window(self, fake_repository):
        clock = FakeClock()
        embedder = FakeEmbedder(VECTORS)
        engine = make_engine(fake_repository, embedder, clock=clock)
        engine.classify("a")
        clock.now += 301
        engine.classify("a")
        assert embedder.batch_calls == 2

    def test_durable_cache_shared_between_engines(self, fake_repository):
        cache = InMemoryCache()
        first = make_engine(fake_repository, cache=cache)
        first.classify("a")
        assert cache.get(TRAINING_SET_KEY) is not None

        broken = FakeRepository([])
        broken.fail_listing = True
        embedder = FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0])
        second = make_engine(broken, embedder, cache=cache)
        match = second.classify("a")
        assert match.category_slug == "coffee"
        assert embedder.batch_calls == 0
        assert second.stats()["training_set_source"] == "cache"

    def test_invalidate_clears_both_levels(self, fake_repository):
        cache = InMemoryCache()
        embedder = FakeEmbedder(VECTORS)
        engine = make_engine(fake_repository, embedder, cache=cache)
        engine.classify("a")

        engine.invalidate()
        assert cache.get(TRAINING_SET_KEY) is None
        assert engine.stats()["training_examples"] == 0

        fake_repository.upsert_entry(entry("Esso", "gas"))
        engine.classify("a")
        assert embedder.batch_calls == 2
        assert len(engine.training_set()) == 4

    def test_invalidation_during_cache_write_is_kept(self, fake_repository):
        class InvalidatingCache(InMemoryCache):
            engine = None

            def set(self, key, value, ttl=0):
                # The learner invalidates right as the rebuilt set is written
                if self.engine is not None:
                    engine, self.engine = self.engine, None
                    engine.invalidate()
                super().set(key, value, ttl)

        cache = InvalidatingCache()
        embedder = FakeEmbedder(VECTORS)
        engine = make_engine(fake_repository, embedder, cache=cache)
        cache.engine = engine

        engine.training_set()
        assert cache.get(TRAINING_SET_KEY) is None

        engine.training_set()
        assert embedder.batch_calls == 2
        assert cache.get(TRAINING_SET_KEY) is not None

    def test_malformed_cache_entry_is_rebuilt(self, fake_repository):
        cache = InMemoryCache()
        cache.set(TRAINING_SET_KEY, {"unexpected": True})
        embedder = FakeEmbedder(VECTORS)
        engine = make_engine(fake_repository, embedder, cache=cache)
        assert len(engine.training_set()) == 3
        assert embedder.batch_calls == 1

    def test_redis_failure_degrades_to_local(self, fake_repository):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("connection refused")
        client.set.side_effect = redis.ConnectionError("connection refused")
        client.delete.side_effect = redis.ConnectionError("connection refused")
        engine = make_engine(
            fake_repository,
            FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0]),
            cache=RedisCache(client=client),
        )
        assert engine.classify("a").category_slug == "coffee"
        engine.invalidate()
        assert engine.classify("a").category_slug == "coffee"

    def test_failed_rebuild_keeps_previous_set(self, fake_repository):
        clock = FakeClock()
        engine = make_engine(fake_repository, FakeEmbedder(VECTORS, default=[1.0, 0.0, 0.0]), clock=clock)
        engine.classify("a")
        fake_repository.fail_listing = True
        clock.now += 301
        assert engine.classify("a").category_slug == "coffee"

    def test_failed_first_build_raises(self, fake_repository):
        fake_repository.fail_listing = True
        engine = make_engine(fake_repository)
        with pytest.raises(RuntimeError):
            engine.classify("a")

    def test_single_flight_rebuild(self, fake_repository):
        embedder = FakeEmbedder(VECTORS, delay=0.2)
        engine = make_engine(fake_repository, embedder)
        barrier = threading.Barrier(8)
        sizes = []

        def worker():
            barrier.wait()
            sizes.append(len(engine.training_set()))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sizes == [3] * 8
        assert embedder.batch_calls == 1
        assert engine.rebuild_count == 1


def test_stats_reports_distribution(fake_repository):
    engine = make_engine(fake_repository)
    engine.training_set()
    stats = engine.stats()
    assert stats["training_examples"] == 3
    assert stats["categories"] == {"coffee": 2, "gas": 1}
    assert stats["model_loaded"] is True
    assert stats["last_loaded_at"] is not None


def test_training_set_payload_round_trip(fake_repository):
    engine = make_engine(fake_repository)
    training = engine.training_set()
    payload = training.to_payload()
    assert [e["name"] for e in payload["examples"]] == ["Starbucks", "Second Cup", "Shell"]
    assert np.allclose(payload["examples"][1]["embedding"], VECTORS["Second Cup"])
