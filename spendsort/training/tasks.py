"""Celery tasks wrapping the online learner.

`train_from_corrections_task` runs nightly from beat and can also be enqueued
right after a user corrects a transaction:

    train_from_corrections_task.delay(user_id)
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from spendsort.training.celery_app import app
from spendsort.training.learner import get_learner
from spendsort.utils.exceptions import SpendSortError
from spendsort.utils.logger import get_logger

log = get_logger("tasks")


@app.task(name="spendsort.training.tasks.train_from_corrections_task")
def train_from_corrections_task(user_id: Optional[str] = None) -> Dict[str, Any]:
    """Fold user corrections into the knowledge base; returns the training stats."""
    try:
        stats = get_learner().train_from_corrections(user_id)
    except SpendSortError as e:
        log.error("Training run failed", extra={"scope": user_id, "error": str(e)})
        return {"status": "error", "scope": user_id, "error": str(e)}
    return {"status": "ok", **stats.model_dump(mode="json")}


@app.task(name="spendsort.training.tasks.refresh_training_set_task")
def refresh_training_set_task() -> int:
    """Rebuild the embedded training set so request handlers find it cached."""
    from spendsort.retrieval.service import get_similarity_engine

    try:
        count = get_similarity_engine().warm_up()
    except SpendSortError as e:
        log.error("Training set refresh failed", extra={"error": str(e)})
        return 0
    log.info("Training set refreshed", extra={"count": count})
    return count


__all__ = ["train_from_corrections_task", "refresh_training_set_task"]
