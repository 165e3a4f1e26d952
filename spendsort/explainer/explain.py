"""Explanation builder for categorization results.

Turns the per-stage diagnostics carried on a CategorizationResult into a
structured trace and a one-line human summary.
"""
from __future__ import annotations

from typing import Any, Dict

from spendsort.models import CategorizationMethod, CategorizationResult


def _pct(value: float) -> float:
    return round(value * 100, 1)


def _label(result: CategorizationResult) -> str:
    if result.subcategory_slug and result.subcategory_slug != result.category_slug:
        return f"{result.category_slug}/{result.subcategory_slug}"
    return result.category_slug or "uncategorized"


def build_explanation(result: CategorizationResult, max_examples: int = 3) -> Dict[str, Any]:
    rule = result.rule_result
    ml = result.ml_result
    return {
        "decision_path": result.method.value,
        "review_action": result.review_action.value,
        "rule_matched": rule.matched_keyword if rule.matched else None,
        "rule_confidence": rule.confidence if rule.matched else None,
        "nearest_examples": [
            {"name": n.name, "category": n.category_slug, "similarity": n.similarity}
            for n in (ml.neighbors[:max_examples] if ml is not None else [])
        ],
        "ml_confidence": ml.confidence if ml is not None else None,
        "ml_error": ml.error if ml is not None else None,
    }


def summarize(result: CategorizationResult) -> str:
    if result.method == CategorizationMethod.NONE:
        base = "No category found."
        if result.ml_result is not None and result.ml_result.error:
            return base + " Similarity search was unavailable."
        return base

    base = f"Categorized as {_label(result)} with confidence {_pct(result.confidence_score)}%."
    rule = result.rule_result
    ml = result.ml_result
    if result.method == CategorizationMethod.RULE_BASED and rule.matched:
        return base + f" Rule matched: '{rule.matched_keyword}'."
    if result.method == CategorizationMethod.HYBRID and rule.matched and ml is not None:
        return base + (
            f" Rule matched: '{rule.matched_keyword}'; similarity search suggested "
            f"{ml.category_slug} ({_pct(ml.confidence)}%)."
        )
    if result.method == CategorizationMethod.ML and ml is not None and ml.nearest_example_name:
        return base + f" Similar to: {ml.nearest_example_name} ({_pct(ml.similarity)}%)."
    return base


__all__ = ["build_explanation", "summarize"]
