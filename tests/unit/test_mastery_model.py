"""
Unit tests for MasteryModel.

Tests:
- EWMA update and bounds
- Signed streaks and running latency
- Selection weight (neutral, monotonic in EWMA, failure-run penalty, clamping)
- Recommended difficulty thresholds
"""

import random

import pytest

from practice_core.core.engine_config import EngineConfig
from practice_core.core.tiers import DifficultyTier
from practice_core.learning.mastery_model import CategoryStat, FormulaStat, MasteryModel


@pytest.fixture
def model():
    return MasteryModel(EngineConfig())


class TestRecordOutcome:
    """Tests for folding outcomes into statistics."""

    def test_first_correct_answer(self, model):
        model.record_outcome("speed", "AR", correct=True, latency_ms=1000, at=5)
        stat = model.formulas["speed"]

        assert stat.attempts == 1
        assert stat.correct == 1
        assert stat.ewma == pytest.approx(0.18)
        assert stat.streak == 1
        assert stat.last_attempt_at == 5
        assert model.categories["AR"].attempts == 1

    def test_ewma_update_formula(self, model):
        model.record_outcome("speed", "AR", True, 0, at=1)
        model.record_outcome("speed", "AR", False, 0, at=2)

        # 0.18 * 0 + 0.82 * 0.18
        assert model.ewma("speed") == pytest.approx(0.82 * 0.18)

    def test_ewma_stays_in_unit_interval(self, model):
        rng = random.Random(7)
        for i in range(500):
            model.record_outcome("f", "AR", rng.random() < 0.7, rng.uniform(0, 9000), at=i)
            assert 0.0 <= model.ewma("f") <= 1.0

    def test_streak_sign_flips(self, model):
        for correct in (True, True):
            model.record_outcome("f", "AR", correct, 0, at=1)
        assert model.streak("f") == 2

        model.record_outcome("f", "AR", False, 0, at=2)
        assert model.streak("f") == -1

        model.record_outcome("f", "AR", False, 0, at=3)
        assert model.streak("f") == -2

        model.record_outcome("f", "AR", True, 0, at=4)
        assert model.streak("f") == 1

    def test_running_latency_average(self, model):
        model.record_outcome("f", "AR", True, 1000, at=1)
        model.record_outcome("f", "AR", True, 3000, at=2)

        assert model.formulas["f"].avg_latency_ms == pytest.approx(2000)

    def test_empty_category_is_not_tracked(self, model):
        model.record_outcome("f", "", True, 0, at=1)
        assert model.categories == {}


class TestWeight:
    """Tests for selection weight."""

    def test_unattempted_formula_is_neutral(self, model):
        assert model.weight("never-seen") == 1.0

    def test_low_mastery_outweighs_high_mastery(self, model):
        model.formulas["weak"] = FormulaStat(attempts=5, correct=1, ewma=0.1, streak=1)
        model.formulas["strong"] = FormulaStat(attempts=5, correct=5, ewma=0.9, streak=1)

        assert model.weight("weak") > model.weight("strong")

    def test_weight_non_increasing_in_ewma(self, model):
        weights = []
        for i, ewma in enumerate([0.0, 0.2, 0.4, 0.6, 0.8, 1.0]):
            key = f"f{i}"
            model.formulas[key] = FormulaStat(attempts=6, correct=3, ewma=ewma, streak=2)
            weights.append(model.weight(key))

        assert weights == sorted(weights, reverse=True)

    def test_failure_run_penalty(self, model):
        model.formulas["short"] = FormulaStat(attempts=6, ewma=0.5, streak=-1)
        model.formulas["long"] = FormulaStat(attempts=6, ewma=0.7, streak=-3)

        # (1 + 0.5 * 2.2) * 1.25 = 2.625
        assert model.weight("short") == pytest.approx(2.625)
        # (1 + 0.3 * 2.2) * 1.75 = 2.905
        assert model.weight("long") == pytest.approx(2.905)

    def test_weight_is_clamped(self, model):
        model.formulas["perfect"] = FormulaStat(attempts=10, correct=10, ewma=1.0, streak=10)
        model.formulas["failing"] = FormulaStat(attempts=10, ewma=0.0, streak=-6)

        assert model.weight("perfect") == pytest.approx(1.0)
        assert model.weight("failing") == 3.0

    def test_weight_floor(self):
        model = MasteryModel(EngineConfig(min_weight=1.5))
        model.formulas["perfect"] = FormulaStat(attempts=10, correct=10, ewma=1.0, streak=10)

        assert model.weight("perfect") == 1.5


class TestRecommendedDifficulty:
    """Tests for category tier recommendation."""

    def test_too_few_attempts_is_easy(self, model):
        model.categories["AR"] = CategoryStat(attempts=4, ewma=0.99)
        assert model.recommended_difficulty("AR") == DifficultyTier.EASY

    def test_unknown_category_is_easy(self, model):
        assert model.recommended_difficulty("MK") == DifficultyTier.EASY

    @pytest.mark.parametrize(
        "ewma, expected",
        [
            (0.86, DifficultyTier.HARD),
            (0.9, DifficultyTier.HARD),
            (0.65, DifficultyTier.MEDIUM),
            (0.7, DifficultyTier.MEDIUM),
            (0.64, DifficultyTier.EASY),
        ],
    )
    def test_thresholds(self, model, ewma, expected):
        model.categories["AR"] = CategoryStat(attempts=10, ewma=ewma)
        assert model.recommended_difficulty("AR") == expected


class TestSnapshot:
    """Tests for persistence and totals."""

    def test_snapshot_restores_statistics(self, model):
        model.record_outcome("f", "AR", True, 1200, at=10)
        model.record_outcome("g", "MK", False, 800, at=11)

        restored = MasteryModel.from_snapshot(model.snapshot(), model.config)

        assert restored.formulas == model.formulas
        assert restored.categories == model.categories
        assert restored.total_attempts == 2
        assert restored.total_correct == 1

    def test_mastery_ratio_and_mastered_flag(self, model):
        model.formulas["f"] = FormulaStat(attempts=4, correct=3, ewma=0.9)

        assert model.mastery("f") == pytest.approx(0.75)
        assert model.is_mastered("f")
        assert model.mastery("missing") == 0.0
