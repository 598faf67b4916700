"""
Attempt event schema.

Attempts arrive from live answers, imported session summaries and backfills,
each in a slightly different shape. AttemptEvent is the validated common
form; camelCase keys from client payloads are accepted alongside snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from practice_core.core.clock import now_ms
from practice_core.core.errors import InvalidAttemptEvent
from practice_core.core.tiers import DifficultyTier

AttemptSource = Literal["live", "synthetic", "backfill", "study", "quiz", "full_test"]


class AttemptEvent(BaseModel):
    """A single answered item, as reported by any source."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ts: int = Field(
        default_factory=now_ms,
        ge=0,
        validation_alias=AliasChoices("ts", "timestamp"),
        description="Attempt time in epoch ms",
    )
    item_id: int | None = Field(
        None,
        validation_alias=AliasChoices("item_id", "itemId", "qId"),
        description="Concrete item answered; absent for synthetic attempts",
    )
    formula_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("formula_id", "formulaId"),
        description="Formula (skill) the item exercises",
    )
    category: str = Field("", description="Top-level subject")
    correct: bool
    latency_ms: float = Field(
        0.0,
        ge=0,
        validation_alias=AliasChoices("latency_ms", "latencyMs", "timeMs"),
        description="Time to answer",
    )
    difficulty_tier: DifficultyTier = Field(
        DifficultyTier.EASY,
        validation_alias=AliasChoices("difficulty_tier", "difficultyTier", "difficulty"),
    )
    source: AttemptSource = "live"

    @field_validator("difficulty_tier", mode="before")
    @classmethod
    def _parse_tier(cls, value: Any) -> DifficultyTier:
        return DifficultyTier.parse(value)

    @property
    def is_synthetic(self) -> bool:
        """True for attempts reconstructed without a concrete item."""
        return self.item_id is None

    @classmethod
    def parse(cls, data: dict[str, Any] | AttemptEvent) -> AttemptEvent:
        """
        Validate a raw payload.

        Raises:
            InvalidAttemptEvent: If the payload does not describe an attempt
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidAttemptEvent(str(e)) from e
