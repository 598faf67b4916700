"""
Mastery Model - per-formula and per-category performance statistics.

Each attempt updates an exponentially weighted moving average (EWMA) of
correctness, a signed streak and a running latency average, for both the
formula (skill) and its top-level category. The EWMA drives:

- Selection weight: weak or failing formulas are drawn more often
- Recommended difficulty: which tier to serve for a category
- Spaced-review interval after a correct answer

Formulas:
    ewma' = alpha * outcome + (1 - alpha) * ewma
    weight = clamp((1 + (1 - ewma) * aggressiveness) * penalty, min_weight, max_weight)
    penalty = 1 + |streak| * 0.25 on a failure run, else 1
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from practice_core.core.clock import now_ms
from practice_core.core.engine_config import EngineConfig
from practice_core.core.tiers import DifficultyTier

NEUTRAL_WEIGHT = 1.0
STREAK_PENALTY_STEP = 0.25


# =============================================================================
# Statistics
# =============================================================================


@dataclass
class Stat:
    """Running statistics for one formula or category."""

    attempts: int = 0
    correct: int = 0
    avg_latency_ms: float = 0.0
    last_attempt_at: int | None = None
    streak: int = 0  # >= 1 on success runs, <= -1 on failure runs, 0 before any attempt
    ewma: float = 0.0

    @property
    def accuracy(self) -> float:
        """Raw correct/attempts ratio (0.0 when never attempted)."""
        return self.correct / self.attempts if self.attempts else 0.0

    def record(self, correct: bool, latency_ms: float, at: int, alpha: float) -> None:
        """Fold one outcome into the statistics."""
        self.attempts += 1
        if correct:
            self.correct += 1
        self.avg_latency_ms = (self.avg_latency_ms * (self.attempts - 1) + latency_ms) / self.attempts
        self.last_attempt_at = at
        self.streak = max(1, self.streak + 1) if correct else min(-1, self.streak - 1)

        outcome = 1.0 if correct else 0.0
        self.ewma = alpha * outcome + (1 - alpha) * self.ewma
        self.ewma = min(1.0, max(0.0, self.ewma))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Stat:
        return cls(
            attempts=int(data.get("attempts", 0)),
            correct=int(data.get("correct", 0)),
            avg_latency_ms=float(data.get("avg_latency_ms", 0.0)),
            last_attempt_at=data.get("last_attempt_at"),
            streak=int(data.get("streak", 0)),
            ewma=float(data.get("ewma", 0.0)),
        )


@dataclass
class FormulaStat(Stat):
    """Statistics for a single formula (skill)."""


@dataclass
class CategoryStat(Stat):
    """Statistics for a top-level subject category."""


# =============================================================================
# Model
# =============================================================================


class MasteryModel:
    """
    Learner mastery across formulas and categories.

    Example:
        >>> model = MasteryModel(EngineConfig())
        >>> model.record_outcome("speed", "AR", correct=False, latency_ms=4200)
        >>> model.weight("speed")
        3.0
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()
        self.formulas: dict[str, FormulaStat] = {}
        self.categories: dict[str, CategoryStat] = {}

    def record_outcome(
        self,
        formula_id: str,
        category: str,
        correct: bool,
        latency_ms: float,
        at: int | None = None,
    ) -> None:
        """
        Update formula and category statistics with one outcome.

        Args:
            formula_id: Formula the item exercises
            category: Top-level subject of the formula
            correct: Whether the answer was correct
            latency_ms: Time to answer
            at: Attempt timestamp in epoch ms (now if None)
        """
        at = now_ms() if at is None else at
        alpha = self.config.alpha

        formula = self.formulas.setdefault(formula_id, FormulaStat())
        formula.record(correct, latency_ms, at, alpha)

        if category:
            self.categories.setdefault(category, CategoryStat()).record(correct, latency_ms, at, alpha)

        logger.debug(
            f"Mastery update {formula_id}/{category}: correct={correct} "
            f"ewma={formula.ewma:.3f} streak={formula.streak}"
        )

    # =========================================================================
    # Derived Values
    # =========================================================================

    def weight(self, formula_id: str) -> float:
        """
        Selection weight of a formula.

        A formula never attempted has the neutral weight 1.0.
        """
        stat = self.formulas.get(formula_id)
        if stat is None or stat.attempts == 0:
            return NEUTRAL_WEIGHT

        cfg = self.config
        weight = 1 + (1 - stat.ewma) * cfg.aggressiveness
        if stat.streak < 0:
            weight *= 1 + abs(stat.streak) * STREAK_PENALTY_STEP
        return max(cfg.min_weight, min(cfg.max_weight, weight))

    def recommended_difficulty(self, category: str) -> DifficultyTier:
        """Tier to serve for a category, based on its EWMA."""
        cfg = self.config
        stat = self.categories.get(category)
        if stat is None or stat.attempts < cfg.min_attempts_for_recommendation:
            return DifficultyTier.EASY
        if stat.ewma >= cfg.hard_threshold:
            return DifficultyTier.HARD
        if stat.ewma >= cfg.medium_threshold:
            return DifficultyTier.MEDIUM
        return DifficultyTier.EASY

    def ewma(self, formula_id: str) -> float:
        stat = self.formulas.get(formula_id)
        return stat.ewma if stat else 0.0

    def streak(self, formula_id: str) -> int:
        stat = self.formulas.get(formula_id)
        return stat.streak if stat else 0

    def mastery(self, key: str) -> float:
        """Raw accuracy of a formula, or of a category when no formula has that id."""
        stat = self.formulas.get(key) or self.categories.get(key)
        return stat.accuracy if stat else 0.0

    def is_mastered(self, formula_id: str) -> bool:
        return self.ewma(formula_id) >= self.config.mastery_threshold

    @property
    def total_attempts(self) -> int:
        return sum(s.attempts for s in self.formulas.values())

    @property
    def total_correct(self) -> int:
        return sum(s.correct for s in self.formulas.values())

    # =========================================================================
    # Persistence
    # =========================================================================

    def snapshot(self) -> dict[str, Any]:
        """Serializable copy of all statistics."""
        return {
            "formulas": {k: v.to_dict() for k, v in self.formulas.items()},
            "categories": {k: v.to_dict() for k, v in self.categories.items()},
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any] | None, config: EngineConfig | None = None) -> MasteryModel:
        model = cls(config)
        data = data or {}
        model.formulas = {k: FormulaStat.from_dict(v) for k, v in data.get("formulas", {}).items()}
        model.categories = {k: CategoryStat.from_dict(v) for k, v in data.get("categories", {}).items()}
        return model
