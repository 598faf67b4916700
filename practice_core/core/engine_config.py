"""
Engine tuning constants.

The defaults were chosen empirically and have no derivation behind them, so
they are kept as named, overridable configuration rather than invariants.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

from loguru import logger


@dataclass
class EngineConfig:
    """Configuration for mastery tracking, selection, scheduling and gating."""

    # Mastery
    alpha: float = 0.18  # EWMA smoothing factor
    aggressiveness: float = 2.2  # How much weight rises when mastery is low
    min_weight: float = 0.5
    max_weight: float = 3.0
    mastery_threshold: float = 0.85
    min_attempts_for_recommendation: int = 5
    hard_threshold: float = 0.86
    medium_threshold: float = 0.65

    # Selection & scheduling
    base_exploration: float = 0.08
    review_factor: float = 0.25
    up_streak_threshold: int = 3
    down_streak_threshold: int = -2

    # Ledger & pool
    ledger_cap: int = 10000
    max_pool_size: int = 5000

    # Content gate
    duplicate_threshold: float = 0.65
    embedding_threshold: float = 0.92
    recent_accepted_window: int = 200
    generation_max_attempts: int = 4
    generation_timeout_seconds: float = 20.0
    yield_every: int = 2

    @classmethod
    def from_settings(cls, settings: Any = None) -> EngineConfig:
        """
        Build the config from application settings.

        Args:
            settings: Settings instance (uses the cached settings if None)
        """
        if settings is None:
            from config import get_settings

            settings = get_settings()
        return cls.from_dict(settings.get_engine_config())

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EngineConfig:
        """
        Build a config from a (possibly partial or outdated) dictionary.

        Missing keys take their defaults and unknown keys are dropped, so
        configs persisted by older versions load without error.
        """
        known = {f.name for f in fields(cls)}
        data = data or {}
        unknown = set(data) - known
        if unknown:
            logger.debug(f"Ignoring unknown engine config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
