"""
Difficulty Adjuster - streak-driven tier transitions for practice items.

State machine over the three adaptive tiers (one step per attempt, never
skipping a tier):

    easy   --(streak >= up)-->       medium
    medium --(streak >= up + 2)-->   hard
    hard   --(streak <= down)-->     medium
    medium --(streak <= down - 1)--> easy

very-hard and master are only ever set explicitly and are left alone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from practice_core.core.engine_config import EngineConfig
from practice_core.core.tiers import DifficultyTier

if TYPE_CHECKING:
    from practice_core.content.pool import QuestionPoolEntry

ADAPTIVE_TIERS = (DifficultyTier.EASY, DifficultyTier.MEDIUM, DifficultyTier.HARD)


def ratio_to_difficulty(ratio: float) -> DifficultyTier:
    """
    Map a raw success ratio onto the full five-tier ladder.

    import-summary uses it to label the rows of a session summary that
    carries only an overall accuracy figure.
    """
    if ratio >= 0.94:
        return DifficultyTier.MASTER
    if ratio >= 0.86:
        return DifficultyTier.VERY_HARD
    if ratio >= 0.72:
        return DifficultyTier.HARD
    if ratio >= 0.55:
        return DifficultyTier.MEDIUM
    return DifficultyTier.EASY


class DifficultyAdjuster:
    """Move items between easy, medium and hard based on formula streaks."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def next_tier(self, current: DifficultyTier, streak: int) -> DifficultyTier:
        """Tier an item should move to given the formula's current streak."""
        up = self.config.up_streak_threshold
        down = self.config.down_streak_threshold

        if current not in ADAPTIVE_TIERS:
            return current

        promote_at = up if current == DifficultyTier.EASY else up + 2
        demote_at = down if current == DifficultyTier.HARD else down - 1
        if current != DifficultyTier.HARD and streak >= promote_at:
            return current.step_up()
        if current != DifficultyTier.EASY and streak <= demote_at:
            return current.step_down()
        return current

    def apply(self, entry: QuestionPoolEntry, streak: int) -> bool:
        """
        Adjust a pool entry in place.

        Returns:
            True if the entry changed tier
        """
        new_tier = self.next_tier(entry.difficulty_tier, streak)
        if new_tier == entry.difficulty_tier:
            return False

        logger.info(
            f"Item {entry.item_id} ({entry.formula_id}): {entry.difficulty_tier.value} -> "
            f"{new_tier.value} on streak {streak}"
        )
        entry.difficulty_tier = new_tier
        entry.difficulty_weight = new_tier.weight
        return True
