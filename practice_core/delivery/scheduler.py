"""
Review Scheduler - priority queue of due spaced reviews.

Missed items come back quickly (minutes, by tier); correctly answered items
come back after an interval that doubles with each third of mastery. Each
item has at most one pending review: scheduling again supersedes it.

Interval policy:
    incorrect: hard and above 5 min, medium 15 min, easy 60 min (priority 2)
    correct:   round(86400 * max(1, 2 ** (3 * ewma))) seconds (priority 0.5)
"""

from __future__ import annotations

import bisect
import math
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from practice_core.core.clock import now_ms
from practice_core.core.tiers import DifficultyTier

# =============================================================================
# Interval Policy
# =============================================================================

INCORRECT_PRIORITY = 2.0
SPACED_PRIORITY = 0.5

INCORRECT_DELAYS = {
    DifficultyTier.EASY: 60 * 60,
    DifficultyTier.MEDIUM: 60 * 15,
    DifficultyTier.HARD: 60 * 5,
    DifficultyTier.VERY_HARD: 60 * 5,
    DifficultyTier.MASTER: 60 * 5,
}

SECONDS_PER_DAY = 60 * 60 * 24


def incorrect_review_delay(tier: DifficultyTier) -> int:
    """Seconds until a missed item is reviewed."""
    return INCORRECT_DELAYS[tier]


def spaced_review_delay(ewma: float) -> int:
    """Seconds until a correctly answered item is reviewed (at least one day)."""
    return round(SECONDS_PER_DAY * max(1.0, math.pow(2, 3 * ewma)))


# =============================================================================
# Queue
# =============================================================================


@dataclass
class ReviewItem:
    """A pending review."""

    item_id: int
    scheduled_at: int  # epoch ms
    priority: float
    reason: str  # "incorrect" | "spaced"

    def is_due(self, now: int) -> bool:
        return self.scheduled_at <= now

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewItem:
        return cls(
            item_id=int(data["item_id"]),
            scheduled_at=int(data["scheduled_at"]),
            priority=float(data.get("priority", SPACED_PRIORITY)),
            reason=data.get("reason", "spaced"),
        )


class ReviewScheduler:
    """
    Pending reviews kept ordered by scheduled time.

    Example:
        >>> scheduler = ReviewScheduler()
        >>> _ = scheduler.schedule_review(7, 300, 2.0, "incorrect", now=0)
        >>> [r.item_id for r in scheduler.due_items(now=300_000)]
        [7]
    """

    def __init__(self) -> None:
        self.queue: list[ReviewItem] = []

    def __len__(self) -> int:
        return len(self.queue)

    def schedule_review(
        self,
        item_id: int,
        delay_seconds: float,
        priority: float,
        reason: str,
        now: int | None = None,
    ) -> ReviewItem:
        """
        Schedule a review, replacing any pending review for the same item.

        Args:
            item_id: Item to review
            delay_seconds: Delay from now
            priority: Higher is served first among due reviews
            reason: Why the review was scheduled
            now: Current time in epoch ms (wall clock if None)
        """
        now = now_ms() if now is None else now
        self.pop(item_id)

        review = ReviewItem(
            item_id=item_id,
            scheduled_at=now + int(delay_seconds * 1000),
            priority=priority,
            reason=reason,
        )
        bisect.insort(self.queue, review, key=lambda r: r.scheduled_at)
        logger.debug(f"Review of item {item_id} scheduled in {delay_seconds}s ({reason})")
        return review

    def schedule_after_attempt(
        self, item_id: int, correct: bool, tier: DifficultyTier, ewma: float, now: int | None = None
    ) -> ReviewItem:
        """Apply the interval policy for an attempt outcome."""
        if correct:
            return self.schedule_review(item_id, spaced_review_delay(ewma), SPACED_PRIORITY, "spaced", now)
        return self.schedule_review(item_id, incorrect_review_delay(tier), INCORRECT_PRIORITY, "incorrect", now)

    def due_items(self, now: int | None = None) -> list[ReviewItem]:
        """Reviews due at `now`, highest priority first, then earliest."""
        now = now_ms() if now is None else now
        due = [r for r in self.queue if r.is_due(now)]
        return sorted(due, key=lambda r: (-r.priority, r.scheduled_at))

    def pop(self, item_id: int) -> ReviewItem | None:
        """Remove and return the pending review for an item, if any."""
        for i, review in enumerate(self.queue):
            if review.item_id == item_id:
                return self.queue.pop(i)
        return None

    def pending_for(self, item_id: int) -> ReviewItem | None:
        for review in self.queue:
            if review.item_id == item_id:
                return review
        return None

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_list(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.queue]

    @classmethod
    def from_list(cls, data: list[dict[str, Any]] | None) -> ReviewScheduler:
        scheduler = cls()
        for raw in data or []:
            review = ReviewItem.from_dict(raw)
            scheduler.pop(review.item_id)
            bisect.insort(scheduler.queue, review, key=lambda r: r.scheduled_at)
        return scheduler
