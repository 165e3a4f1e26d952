"""Online learning module."""

from .learner import OnlineLearner, get_training_overview, train_from_corrections

__all__ = [
    "OnlineLearner",
    "train_from_corrections",
    "get_training_overview",
]
