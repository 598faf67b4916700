"""
Question Selector - choose the next item to present.

Order of precedence:
1. A due review in the requested category (highest priority, then earliest)
2. Otherwise a pool item, drawn by weight:
       formula_weight * (1 + spaced_score * review_factor) * recency
   where recency = min(2, 1 + log10(hours_since_seen + 1)) and never-seen
   items get the full factor of 2. With probability `base_exploration` the
   draw is uniform instead.
"""

from __future__ import annotations

import math
import random
from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from practice_core.content.pool import ContentPool, QuestionPoolEntry
from practice_core.core.clock import now_ms
from practice_core.core.engine_config import EngineConfig
from practice_core.delivery.scheduler import ReviewScheduler
from practice_core.learning.mastery_model import MasteryModel

MS_PER_HOUR = 1000 * 60 * 60
MAX_RECENCY_FACTOR = 2.0


class ExplorationPolicy:
    """
    Randomness used by selection.

    Holding the RNG here keeps selection reproducible: seed it in tests,
    share one across the engine in production.
    """

    def __init__(self, rate: float = 0.08, rng: random.Random | None = None, seed: int | None = None):
        self.rate = rate
        self.rng = rng or random.Random(seed)

    def should_explore(self) -> bool:
        return self.rng.random() < self.rate

    def uniform(self, count: int) -> int:
        """Uniformly random index in [0, count)."""
        return self.rng.randrange(count)

    def weighted(self, weights: list[float]) -> int:
        """Index drawn proportionally to weight."""
        remaining = self.rng.random() * sum(weights)
        for index, weight in enumerate(weights):
            remaining -= weight
            if remaining <= 0:
                return index
        return len(weights) - 1


@dataclass
class WeightedCandidate:
    entry: QuestionPoolEntry
    weight: float


class QuestionSelector:
    """Combine due reviews, pool candidates and mastery weights."""

    def __init__(
        self,
        pool: ContentPool,
        scheduler: ReviewScheduler,
        model: MasteryModel,
        config: EngineConfig | None = None,
        policy: ExplorationPolicy | None = None,
    ):
        self.pool = pool
        self.scheduler = scheduler
        self.model = model
        self.config = config or model.config
        self.policy = policy or ExplorationPolicy(self.config.base_exploration)

    def pick_next(
        self,
        subject_filter: str | None = None,
        exclude_ids: Iterable[int] | None = None,
        now: int | None = None,
    ) -> int | None:
        """
        Pick the next item id.

        Args:
            subject_filter: Restrict to one category (None for any)
            exclude_ids: Recently shown items to skip in the pool draw
            now: Current time in epoch ms (wall clock if None)

        Returns:
            Item id, or None when nothing is due and no pool item matches
        """
        now = now_ms() if now is None else now

        review = self._take_due_review(subject_filter, now)
        if review is not None:
            return review

        candidates = self.weighted_candidates(subject_filter, exclude_ids, now)
        if not candidates:
            return None

        if self.policy.should_explore():
            chosen = candidates[self.policy.uniform(len(candidates))]
            logger.debug(f"Exploration pick: item {chosen.entry.item_id}")
            return chosen.entry.item_id

        chosen = candidates[self.policy.weighted([c.weight for c in candidates])]
        return chosen.entry.item_id

    def _take_due_review(self, subject_filter: str | None, now: int) -> int | None:
        for review in self.scheduler.due_items(now):
            entry = self.pool.get(review.item_id)
            if subject_filter is not None and (entry is None or entry.category != subject_filter):
                continue
            self.scheduler.pop(review.item_id)
            logger.debug(f"Serving due review of item {review.item_id} ({review.reason})")
            return review.item_id
        return None

    def weighted_candidates(
        self,
        subject_filter: str | None = None,
        exclude_ids: Iterable[int] | None = None,
        now: int | None = None,
    ) -> list[WeightedCandidate]:
        """Pool candidates with their selection weights."""
        now = now_ms() if now is None else now
        exclude = set(exclude_ids or ())
        return [
            WeightedCandidate(entry, self.item_weight(entry, now))
            for entry in self.pool.pick_candidates(subject_filter, exclude)
        ]

    def item_weight(self, entry: QuestionPoolEntry, now: int) -> float:
        cfg = self.config
        weight = (
            self.model.weight(entry.formula_id)
            * (1 + entry.spaced_score * cfg.review_factor)
            * recency_factor(entry.last_seen_at, now)
        )
        return max(cfg.min_weight * 0.2, min(cfg.max_weight * 2, weight))


def recency_factor(last_seen_at: int | None, now: int) -> float:
    """Boost for items not seen recently (2.0 for never seen)."""
    if last_seen_at is None:
        return MAX_RECENCY_FACTOR
    hours = max(0.0, (now - last_seen_at) / MS_PER_HOUR)
    return min(MAX_RECENCY_FACTOR, 1 + math.log10(hours + 1))
