"""
Configuration settings for the adaptive practice core.

Uses Pydantic Settings for environment variable management with .env file support.
Every tunable engine constant lives here so deployments can calibrate without
touching code; EngineConfig.from_settings() turns these into the runtime config.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Mastery Model
    # ========================================
    ewma_alpha: float = Field(
        default=0.18,
        ge=0.0,
        le=1.0,
        description="EWMA smoothing factor for mastery updates",
    )
    aggressiveness: float = Field(
        default=2.2,
        description="Scales how much selection weight rises when mastery is low",
    )
    min_weight: float = Field(
        default=0.5,
        description="Floor for formula selection weight",
    )
    max_weight: float = Field(
        default=3.0,
        description="Ceiling for formula selection weight",
    )
    mastery_threshold: float = Field(
        default=0.85,
        description="EWMA at which a formula counts as mastered",
    )
    min_attempts_for_recommendation: int = Field(
        default=5,
        description="Category attempts required before recommending above easy",
    )
    hard_threshold: float = Field(
        default=0.86,
        description="Category EWMA at which hard items are recommended",
    )
    medium_threshold: float = Field(
        default=0.65,
        description="Category EWMA at which medium items are recommended",
    )

    # ========================================
    # Selection & Scheduling
    # ========================================
    base_exploration: float = Field(
        default=0.08,
        ge=0.0,
        le=1.0,
        description="Probability of picking a uniformly random candidate",
    )
    review_factor: float = Field(
        default=0.25,
        description="Weight bonus applied per unit of spaced score",
    )
    up_streak_threshold: int = Field(
        default=3,
        description="Success streak that promotes an item one tier",
    )
    down_streak_threshold: int = Field(
        default=-2,
        description="Failure streak that demotes an item one tier",
    )

    # ========================================
    # Ledger & Pool
    # ========================================
    ledger_cap: int = Field(
        default=10000,
        description="Maximum attempt log entries retained (oldest dropped)",
    )
    max_pool_size: int = Field(
        default=5000,
        description="Maximum registered pool entries before eviction",
    )

    # ========================================
    # Content Gate
    # ========================================
    duplicate_threshold: float = Field(
        default=0.65,
        description="Levenshtein similarity at which a candidate is a duplicate",
    )
    embedding_threshold: float = Field(
        default=0.92,
        description="Cosine similarity against canonical embeddings that rejects a candidate",
    )
    recent_accepted_window: int = Field(
        default=200,
        description="Number of recently accepted items checked with is_duplicate",
    )
    generation_max_attempts: int = Field(
        default=4,
        description="Candidates requested before falling back to a local item",
    )
    generation_timeout_seconds: float = Field(
        default=20.0,
        description="Deadline for a single call to the generation backend",
    )
    generation_endpoint: str = Field(
        default="",
        description="URL of the external item-generation backend (empty = local only)",
    )
    yield_every: int = Field(
        default=2,
        description="Retry iterations between cooperative yields",
    )
    signature_store_path: str = Field(
        default="db/unique_signatures.json",
        description="JSON file backing the canonical signature store",
    )

    # ========================================
    # State Persistence
    # ========================================
    state_backend: Literal["memory", "json", "sql"] = Field(
        default="json",
        description="Where engine state is persisted",
    )
    state_path: str = Field(
        default="~/.practice_core/state.json",
        description="Engine state file for the json backend",
    )
    database_url: str = Field(
        default="sqlite:///practice_core.db",
        description="SQLAlchemy URL for the sql backend",
    )
    state_key: str = Field(
        default="default",
        description="Learner/device key the state is stored under",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    def get_engine_config(self) -> dict[str, float | int]:
        """Get engine tuning constants as a dictionary."""
        return {
            "alpha": self.ewma_alpha,
            "base_exploration": self.base_exploration,
            "mastery_threshold": self.mastery_threshold,
            "up_streak_threshold": self.up_streak_threshold,
            "down_streak_threshold": self.down_streak_threshold,
            "aggressiveness": self.aggressiveness,
            "review_factor": self.review_factor,
            "max_weight": self.max_weight,
            "min_weight": self.min_weight,
            "min_attempts_for_recommendation": self.min_attempts_for_recommendation,
            "hard_threshold": self.hard_threshold,
            "medium_threshold": self.medium_threshold,
            "ledger_cap": self.ledger_cap,
            "max_pool_size": self.max_pool_size,
            "duplicate_threshold": self.duplicate_threshold,
            "embedding_threshold": self.embedding_threshold,
            "recent_accepted_window": self.recent_accepted_window,
            "generation_max_attempts": self.generation_max_attempts,
            "generation_timeout_seconds": self.generation_timeout_seconds,
            "yield_every": self.yield_every,
        }

    def has_generation_backend(self) -> bool:
        """Check if an external generation endpoint is configured."""
        return bool(self.generation_endpoint)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
