from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from spendsort.config import get_settings
from spendsort.utils.exceptions import EmbeddingError
from spendsort.utils.logger import get_logger

log = get_logger("embedder")


class TextEmbedder(ABC):
    """Anything that turns text into a fixed-length float vector."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    def is_loaded(self) -> bool:
        return True

    def ensure_loaded(self) -> None:
        """Load model weights ahead of the first request. No-op by default."""

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        pass

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return np.vstack([self.embed(t) for t in texts])


class SentenceTransformerEmbedder(TextEmbedder):
    """Encode text into sentence embeddings with a pretrained model.

    The model is loaded on `ensure_loaded()` or on first use, whichever
    comes first.
    """

    def __init__(self, model_name: str | None = None, fallback_path: str | None = None, batch_size: int = 50):
        settings = get_settings()
        # Prefer explicit param, then EMBEDDING_MODEL, then MODEL_PATH
        self.model_name = model_name or settings.embedding_model
        self.fallback_path = fallback_path or settings.model_path
        self.batch_size = batch_size
        self._model: SentenceTransformer | None = None
        self._dimension: int | None = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def dimension(self) -> int:
        self.ensure_loaded()
        return int(self._dimension)

    def ensure_loaded(self) -> None:
        if self._model is not None:
            return
        with self._lock:
            if self._model is not None:
                return
            log.info("Loading embedding model", extra={"model": self.model_name})
            # Allow local directory fallback to support offline environments
            try:
                model = SentenceTransformer(self.model_name)
            except Exception as e:
                if not self.fallback_path or self.fallback_path == self.model_name:
                    raise EmbeddingError(f"Could not load embedding model '{self.model_name}': {e}") from e
                log.warning("Falling back to local model", extra={"path": self.fallback_path, "error": str(e)})
                try:
                    model = SentenceTransformer(self.fallback_path)
                except Exception as e2:
                    raise EmbeddingError(f"Could not load embedding model '{self.fallback_path}': {e2}") from e2
            self._dimension = model.get_sentence_embedding_dimension()
            self._model = model
            log.info("Embedding model loaded", extra={"model": self.model_name, "dimension": self._dimension})

    def embed(self, text: str) -> np.ndarray:
        self.ensure_loaded()
        try:
            return self._model.encode(text, convert_to_numpy=True, normalize_embeddings=True)
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        self.ensure_loaded()
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        try:
            return self._model.encode(
                list(texts),
                batch_size=self.batch_size,
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            )
        except Exception as e:
            raise EmbeddingError(f"Batch embedding failed: {e}") from e


__all__: List[str] = ["TextEmbedder", "SentenceTransformerEmbedder"]
