"""
Learning: mastery tracking and difficulty adaptation.

Components:
- MasteryModel: EWMA, streaks and selection weights per formula and category
- DifficultyAdjuster: streak-driven easy/medium/hard transitions
"""

from .difficulty_adjuster import DifficultyAdjuster, ratio_to_difficulty
from .mastery_model import CategoryStat, FormulaStat, MasteryModel, Stat

__all__ = [
    # Mastery
    "MasteryModel",
    "Stat",
    "FormulaStat",
    "CategoryStat",
    # Difficulty
    "DifficultyAdjuster",
    "ratio_to_difficulty",
]
