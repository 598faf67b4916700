"""
Difficulty tiers.

Items are registered at one tier and move at most one step at a time. The
first three tiers are what the adaptive engine promotes and demotes between;
the upper two exist for banks that ship harder material.
"""

from __future__ import annotations

from enum import Enum


class DifficultyTier(str, Enum):
    """Difficulty tier of a practice item, ordered easiest first."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    VERY_HARD = "very-hard"
    MASTER = "master"

    @classmethod
    def parse(cls, value: str | DifficultyTier) -> DifficultyTier:
        """
        Parse a tier from its wire value.

        Accepts underscores and any letter case ("VERY_HARD" -> VERY_HARD).

        Raises:
            ValueError: If the value names no tier
        """
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower().replace("_", "-"))

    @property
    def rank(self) -> int:
        """Position in the tier ladder (easy = 0)."""
        return _ORDER.index(self)

    @property
    def weight(self) -> int:
        """Difficulty weight attached to pool entries (easy = 1)."""
        return self.rank + 1

    def step_up(self) -> DifficultyTier:
        """Next harder tier (saturates at master)."""
        return _ORDER[min(self.rank + 1, len(_ORDER) - 1)]

    def step_down(self) -> DifficultyTier:
        """Next easier tier (saturates at easy)."""
        return _ORDER[max(self.rank - 1, 0)]


_ORDER: list[DifficultyTier] = [
    DifficultyTier.EASY,
    DifficultyTier.MEDIUM,
    DifficultyTier.HARD,
    DifficultyTier.VERY_HARD,
    DifficultyTier.MASTER,
]
