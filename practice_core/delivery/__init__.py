"""
Delivery: what to show next and where engine state lives.

Components:
- ReviewScheduler: priority queue of due spaced reviews
- QuestionSelector: reviews first, then weighted/exploratory pool draws
- State backends: memory, JSON file and SQL persistence of engine state
"""

from .scheduler import ReviewItem, ReviewScheduler, incorrect_review_delay, spaced_review_delay
from .selector import ExplorationPolicy, QuestionSelector, recency_factor
from .state_store import (
    JsonFileStateBackend,
    MemoryStateBackend,
    SqlStateBackend,
    StateBackend,
    create_backend,
)

__all__ = [
    # Scheduling
    "ReviewItem",
    "ReviewScheduler",
    "incorrect_review_delay",
    "spaced_review_delay",
    # Selection
    "ExplorationPolicy",
    "QuestionSelector",
    "recency_factor",
    # Persistence
    "StateBackend",
    "MemoryStateBackend",
    "JsonFileStateBackend",
    "SqlStateBackend",
    "create_backend",
]
