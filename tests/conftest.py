"""Shared fakes for the categorization tests.

The sentence-transformer model is never loaded here: similarity tests run
against a tiny hand-built vector space.
"""
from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from spendsort.embedder.encoder import TextEmbedder
from spendsort.models import CorrectionRecord, MerchantKnowledgeEntry
from spendsort.storage.database import init_db, make_engine, make_session_factory
from spendsort.storage.repository import KnowledgeRepository, SQLKnowledgeRepository


class FakeEmbedder(TextEmbedder):
    """Looks texts up in a fixed table; unknown texts map to `default`."""

    def __init__(self, vectors: Dict[str, Sequence[float]], default: Optional[Sequence[float]] = None,
                 fail: bool = False, delay: float = 0.0):
        self.vectors = {k: np.asarray(v, dtype=np.float32) for k, v in vectors.items()}
        dim = len(next(iter(self.vectors.values()))) if self.vectors else 3
        self.default = np.asarray(default if default is not None else [0.0] * dim, dtype=np.float32)
        self.fail = fail
        self.delay = delay
        self.embed_calls: List[str] = []
        self.batch_calls = 0
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return len(self.default)

    def embed(self, text: str) -> np.ndarray:
        if self.fail:
            raise RuntimeError("model unavailable")
        with self._lock:
            self.embed_calls.append(text)
        return self.vectors.get(text, self.default)

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        if self.fail:
            raise RuntimeError("model unavailable")
        with self._lock:
            self.batch_calls += 1
        if self.delay:
            time.sleep(self.delay)
        return np.vstack([self.vectors.get(t, self.default) for t in texts])


class FakeRepository(KnowledgeRepository):
    def __init__(self, entries: Optional[List[MerchantKnowledgeEntry]] = None,
                 categories: Optional[Dict[Tuple[str, Optional[str]], Tuple[str, Optional[str]]]] = None,
                 corrections: Optional[List[CorrectionRecord]] = None):
        self.entries: Dict[str, MerchantKnowledgeEntry] = {e.merchant_name: e for e in entries or []}
        self.categories = categories or {}
        self.corrections = corrections or []
        self.fail_listing = False
        self.fail_resolve = False

    def list_categorized_entries(self):
        if self.fail_listing:
            raise RuntimeError("database unavailable")
        return [e for e in self.entries.values() if e.category_id is not None]

    def list_entries(self):
        return list(self.entries.values())

    def get_entry(self, merchant_name):
        return self.entries.get(merchant_name)

    def upsert_entry(self, entry):
        self.entries[entry.merchant_name] = entry
        return entry

    def count_entries(self):
        return len(self.entries)

    def list_corrections(self, user_id=None):
        found = [c for c in self.corrections if user_id is None or c.user_id == user_id]
        return sorted(found, key=lambda c: c.updated_at, reverse=True)

    def resolve_category_ids(self, category_slug, subcategory_slug=None):
        if self.fail_resolve:
            raise RuntimeError("database unavailable")
        if (category_slug, subcategory_slug) in self.categories:
            return self.categories[(category_slug, subcategory_slug)]
        return self.categories.get((category_slug, None), (None, None))


def entry(name: str, category_slug: str, category_id: Optional[str] = None, **kwargs) -> MerchantKnowledgeEntry:
    return MerchantKnowledgeEntry(
        merchant_name=name.lower(),
        normalized_name=name,
        category_id=category_id or f"cat-{category_slug}",
        category_slug=category_slug,
        **kwargs,
    )


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


# Unit-length vectors keyed by knowledge-base display name
VECTORS = {
    "Starbucks": [1.0, 0.0, 0.0],
    "Second Cup": [0.6, 0.8, 0.0],
    "Shell": [0.0, 1.0, 0.0],
}


@pytest.fixture
def knowledge():
    return [
        entry("Starbucks", "coffee"),
        entry("Second Cup", "coffee"),
        entry("Shell", "gas"),
    ]


@pytest.fixture
def fake_repository(knowledge):
    return FakeRepository(knowledge)


@pytest.fixture
def sql_repository():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield SQLKnowledgeRepository(make_session_factory(engine=engine))
    engine.dispose()
