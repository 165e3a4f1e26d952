"""
Embedding Similarity Engine

Classifies free text by nearest-neighbour vote over the merchant knowledge
base. Knowledge-base names are embedded once into a training set that is kept
in two cache levels: in-process for a short staleness window, and in the
shared durable cache until explicitly invalidated.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from spendsort.config import get_settings
from spendsort.embedder.encoder import SentenceTransformerEmbedder, TextEmbedder
from spendsort.models import EmbeddingMatch, Neighbor, utcnow
from spendsort.storage.cache import NullCache, TrainingSetCache, build_cache
from spendsort.storage.repository import KnowledgeRepository, SQLKnowledgeRepository
from spendsort.utils.exceptions import EmbeddingError
from spendsort.utils.logger import get_logger

log = get_logger("retrieval")

TRAINING_SET_KEY = "ml:embeddings:global"
TRAINING_SET_PATTERN = "ml:embeddings:*"

# Confidence adjustment applied to the winning group's mean similarity
HIGH_SIMILARITY = 0.85
HIGH_SIMILARITY_BOOST = 0.10
BOOSTED_CONFIDENCE_CAP = 0.95
LOW_SIMILARITY = 0.60
LOW_SIMILARITY_PENALTY = 0.7


@dataclass(frozen=True)
class TrainingExample:
    name: str
    category_id: str
    category_slug: str


@dataclass
class TrainingSet:
    """Examples and their embeddings, row i of `vectors` belongs to `examples[i]`."""
    examples: List[TrainingExample]
    vectors: np.ndarray
    built_at: float
    loaded_at: datetime = field(default_factory=utcnow)
    source: str = "database"

    def __len__(self) -> int:
        return len(self.examples)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "examples": [
                {
                    "name": ex.name,
                    "category_id": ex.category_id,
                    "category_slug": ex.category_slug,
                    "embedding": [float(x) for x in vec],
                }
                for ex, vec in zip(self.examples, self.vectors)
            ],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], built_at: float) -> "TrainingSet":
        items = payload["examples"]
        examples = [TrainingExample(i["name"], i["category_id"], i["category_slug"]) for i in items]
        if items:
            vectors = np.asarray([i["embedding"] for i in items], dtype=np.float32)
            if vectors.ndim != 2:
                raise ValueError("cached embeddings have inconsistent lengths")
        else:
            vectors = np.zeros((0, 0), dtype=np.float32)
        return cls(examples=examples, vectors=vectors, built_at=built_at, source="cache")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 when either has zero norm."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vectors must have the same length ({a.shape[0]} != {b.shape[0]})")
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def _cosine_scores(vectors: np.ndarray, query: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1) * np.linalg.norm(query)
    dots = vectors @ query
    scores = np.zeros(len(vectors), dtype=np.float64)
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / norms[nonzero]
    return scores


def adjust_confidence(mean_similarity: float, top_similarity: float) -> float:
    """Boost clearly close matches, penalise weak ones."""
    confidence = mean_similarity
    if top_similarity > HIGH_SIMILARITY:
        confidence = min(confidence + HIGH_SIMILARITY_BOOST, BOOSTED_CONFIDENCE_CAP)
    elif top_similarity < LOW_SIMILARITY:
        confidence = confidence * LOW_SIMILARITY_PENALTY
    return max(0.0, min(1.0, confidence))


def vote(neighbors: Sequence[Tuple[TrainingExample, float]]) -> EmbeddingMatch:
    """
    Pick a category from neighbours sorted by descending similarity.

    Neighbours are grouped by category and each group scores its mean
    similarity. The highest mean wins; on a tie the group seen first (i.e.
    holding the closer neighbour) keeps the win.
    """
    if not neighbors:
        return EmbeddingMatch()

    groups: Dict[str, List[Tuple[TrainingExample, float]]] = {}
    for example, similarity in neighbors:
        groups.setdefault(example.category_slug, []).append((example, similarity))

    best_slug: Optional[str] = None
    best_mean = 0.0
    for slug, members in groups.items():
        mean = sum(s for _, s in members) / len(members)
        if mean > best_mean:
            best_slug, best_mean = slug, mean

    top_example, top_similarity = neighbors[0]
    diagnostics = [
        Neighbor(name=ex.name, category_slug=ex.category_slug, similarity=sim)
        for ex, sim in neighbors
    ]
    if best_slug is None:
        # Nothing scored above zero
        return EmbeddingMatch(
            nearest_example_name=top_example.name,
            similarity=top_similarity,
            neighbors=diagnostics,
        )

    return EmbeddingMatch(
        category_id=groups[best_slug][0][0].category_id,
        category_slug=best_slug,
        confidence=adjust_confidence(best_mean, top_similarity),
        nearest_example_name=top_example.name,
        similarity=top_similarity,
        neighbors=diagnostics,
    )


class EmbeddingSimilarityEngine:
    """Nearest-neighbour categorization against the merchant knowledge base."""

    def __init__(
        self,
        embedder: TextEmbedder,
        repository: KnowledgeRepository,
        cache: Optional[TrainingSetCache] = None,
        top_k: Optional[int] = None,
        staleness_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.embedder = embedder
        self.repository = repository
        self.cache = cache or NullCache()
        self.top_k = top_k or settings.embedding_top_k
        self.staleness_seconds = (
            settings.training_cache_seconds if staleness_seconds is None else staleness_seconds
        )
        self._clock = clock

        self._training_set: Optional[TrainingSet] = None
        self._generation = 0
        self._rebuild_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self.rebuild_count = 0

    def ensure_loaded(self) -> None:
        """Load the embedding model now instead of on the first request."""
        self.embedder.ensure_loaded()

    def warm_up(self) -> int:
        """Load the model and build the training set; returns the example count."""
        self.ensure_loaded()
        return len(self.training_set())

    def _is_fresh(self, training: TrainingSet) -> bool:
        return self._clock() - training.built_at < self.staleness_seconds

    def training_set(self) -> TrainingSet:
        """
        Current training set, rebuilt when missing or stale.

        Only one rebuild runs at a time; callers that waited on it reuse its
        result. A failed rebuild leaves the previous set in place.
        """
        current = self._training_set
        if current is not None and self._is_fresh(current):
            return current

        with self._rebuild_lock:
            current = self._training_set
            if current is not None and self._is_fresh(current):
                return current

            generation = self._generation
            try:
                rebuilt = self._load(generation)
            except Exception as e:
                if current is None:
                    raise
                log.warning("Training set rebuild failed, serving stale set", extra={"error": str(e)})
                return current

            with self._state_lock:
                # An invalidation during the rebuild means the result may already be outdated
                if generation == self._generation:
                    self._training_set = rebuilt
            return rebuilt

    def _load(self, generation: int) -> TrainingSet:
        payload = self.cache.get(TRAINING_SET_KEY)
        if payload is not None:
            try:
                training = TrainingSet.from_payload(payload, built_at=self._clock())
                log.info("Training set loaded from cache", extra={"examples": len(training)})
                return training
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Ignoring malformed cached training set", extra={"error": str(e)})

        start = time.perf_counter()
        entries = self.repository.list_categorized_entries()
        examples = [
            TrainingExample(e.normalized_name, e.category_id, e.category_slug)
            for e in entries
            if e.category_id and e.category_slug
        ]
        if examples:
            vectors = np.asarray(self.embedder.embed_batch([ex.name for ex in examples]), dtype=np.float32)
        else:
            vectors = np.zeros((0, 0), dtype=np.float32)
        training = TrainingSet(examples=examples, vectors=vectors, built_at=self._clock())
        self.rebuild_count += 1

        log.info(
            "Training set built",
            extra={"examples": len(examples), "elapsed_ms": round((time.perf_counter() - start) * 1000, 1)},
        )
        if examples and generation == self._generation:
            self.cache.set(TRAINING_SET_KEY, training.to_payload(), ttl=0)
            # An invalidate() racing the write may have cleared the key before it landed
            with self._state_lock:
                outdated = generation != self._generation
            if outdated:
                log.info("Training set invalidated during rebuild, dropping cached copy")
                self.cache.invalidate(TRAINING_SET_KEY)
        return training

    def invalidate(self) -> None:
        """Drop the in-process and durable training sets."""
        with self._state_lock:
            self._generation += 1
            self._training_set = None
        self.cache.invalidate(TRAINING_SET_PATTERN)
        log.info("Training set invalidated")

    def nearest(self, text: str, k: Optional[int] = None) -> List[Tuple[TrainingExample, float]]:
        """Top-k (example, similarity) pairs, most similar first."""
        training = self.training_set()
        if len(training) == 0:
            return []

        query = np.asarray(self.embedder.embed(text), dtype=np.float32).ravel()
        if query.shape[0] != training.vectors.shape[1]:
            raise EmbeddingError(
                f"Query dimension {query.shape[0]} does not match training set dimension {training.vectors.shape[1]}"
            )
        scores = _cosine_scores(training.vectors, query)
        # Stable sort keeps knowledge-base order between equal scores
        order = np.argsort(-scores, kind="stable")[: k or self.top_k]
        return [(training.examples[i], float(scores[i])) for i in order]

    def classify(self, text: str) -> EmbeddingMatch:
        """Embed `text` and vote over its nearest knowledge-base examples."""
        return vote(self.nearest(text))

    def stats(self) -> Dict[str, Any]:
        training = self._training_set
        distribution: Dict[str, int] = {}
        if training is not None:
            for ex in training.examples:
                distribution[ex.category_slug] = distribution.get(ex.category_slug, 0) + 1
        return {
            "training_examples": len(training) if training is not None else 0,
            "categories": distribution,
            "model_loaded": self.embedder.is_loaded,
            "last_loaded_at": training.loaded_at.isoformat() if training is not None else None,
            "training_set_source": training.source if training is not None else None,
            "rebuild_count": self.rebuild_count,
            "top_k": self.top_k,
            "staleness_seconds": self.staleness_seconds,
        }


# Global similarity engine instance
_similarity_engine: Optional[EmbeddingSimilarityEngine] = None
_similarity_engine_lock = threading.Lock()


def get_similarity_engine() -> EmbeddingSimilarityEngine:
    """Get or create the process-wide engine wired to the configured database and cache."""
    global _similarity_engine
    if _similarity_engine is None:
        with _similarity_engine_lock:
            if _similarity_engine is None:
                from spendsort.storage.database import SessionLocal

                _similarity_engine = EmbeddingSimilarityEngine(
                    embedder=SentenceTransformerEmbedder(),
                    repository=SQLKnowledgeRepository(SessionLocal),
                    cache=build_cache(),
                )
    return _similarity_engine
