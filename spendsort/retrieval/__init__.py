"""Embedding similarity module."""

from .service import EmbeddingSimilarityEngine, cosine_similarity, get_similarity_engine

__all__ = ["EmbeddingSimilarityEngine", "cosine_similarity", "get_similarity_engine"]
