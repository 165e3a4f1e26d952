"""Custom exception types for spendsort."""
from __future__ import annotations


class SpendSortError(Exception):
	"""Base error for domain-specific failures."""


class EmbeddingError(SpendSortError):
	"""The text-embedding provider failed or is unavailable."""


class KnowledgeBaseError(SpendSortError):
	pass


class RuleTableError(SpendSortError):
	pass


__all__ = [
	"SpendSortError",
	"EmbeddingError",
	"KnowledgeBaseError",
	"RuleTableError",
]
