"""
Content Pool - registry of practice items available for selection.

Every registered item gets a QuestionPoolEntry carrying its per-item
selection state (times seen, spaced score, current tier). Entries are
mutated by attempts and by the DifficultyAdjuster; when the pool outgrows
its size bound the stalest entry is evicted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from practice_core.core.clock import now_ms
from practice_core.core.tiers import DifficultyTier

MISS_SPACED_BONUS = 0.35
HIT_SPACED_DECAY = 0.25


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class PracticeItem:
    """A practice item as registered with the pool."""

    item_id: int
    formula_id: str
    category: str
    difficulty_tier: DifficultyTier = DifficultyTier.EASY
    text: str = ""
    answer: str = ""
    explanation: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PracticeItem:
        """Build from a registration payload ("id" or "item_id", snake or camel case)."""
        item_id = data.get("item_id", data.get("id"))
        if item_id is None:
            raise ValueError("Practice item requires an id")
        return cls(
            item_id=int(item_id),
            formula_id=str(data.get("formula_id", data.get("formulaId", ""))),
            category=str(data.get("category", "")),
            difficulty_tier=DifficultyTier.parse(
                data.get("difficulty_tier", data.get("difficulty", DifficultyTier.EASY))
            ),
            text=data.get("text", ""),
            answer=str(data.get("answer", "")),
            explanation=data.get("explanation", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "formula_id": self.formula_id,
            "category": self.category,
            "difficulty_tier": self.difficulty_tier.value,
            "text": self.text,
            "answer": self.answer,
            "explanation": self.explanation,
        }


@dataclass
class QuestionPoolEntry:
    """Selection state of one registered item."""

    item_id: int
    formula_id: str
    category: str
    difficulty_tier: DifficultyTier = DifficultyTier.EASY
    difficulty_weight: int = 1
    times_seen: int = 0
    last_seen_at: int | None = None
    spaced_score: float = 0.0  # 0..1, raised by misses, lowered by hits
    registered_at: int = field(default_factory=now_ms)

    @property
    def staleness_key(self) -> tuple[int, int]:
        """Sort key putting the least recently touched entry first."""
        return (self.last_seen_at or self.registered_at, self.item_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "formula_id": self.formula_id,
            "category": self.category,
            "difficulty_tier": self.difficulty_tier.value,
            "difficulty_weight": self.difficulty_weight,
            "times_seen": self.times_seen,
            "last_seen_at": self.last_seen_at,
            "spaced_score": self.spaced_score,
            "registered_at": self.registered_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionPoolEntry:
        tier = DifficultyTier.parse(data.get("difficulty_tier", DifficultyTier.EASY))
        return cls(
            item_id=int(data["item_id"]),
            formula_id=data.get("formula_id", ""),
            category=data.get("category", ""),
            difficulty_tier=tier,
            difficulty_weight=int(data.get("difficulty_weight", tier.weight)),
            times_seen=int(data.get("times_seen", 0)),
            last_seen_at=data.get("last_seen_at"),
            spaced_score=float(data.get("spaced_score", 0.0)),
            registered_at=int(data.get("registered_at") or 0),
        )


# =============================================================================
# Pool
# =============================================================================


class ContentPool:
    """
    Registered practice items keyed by item id.

    Example:
        >>> pool = ContentPool()
        >>> _ = pool.register({"id": 7, "formula_id": "speed", "category": "AR"})
        >>> [e.item_id for e in pool.pick_candidates("AR", exclude_ids=[])]
        [7]
    """

    def __init__(self, max_size: int = 5000):
        self.max_size = max(1, max_size)
        self.entries: dict[int, QuestionPoolEntry] = {}
        self.items: dict[int, PracticeItem] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.entries

    def register(self, item: PracticeItem | dict[str, Any], at: int | None = None) -> QuestionPoolEntry:
        """
        Register an item; a no-op returning the existing entry if already known.

        Args:
            item: PracticeItem or registration payload
            at: Registration time in epoch ms (now if None)
        """
        if isinstance(item, dict):
            item = PracticeItem.from_dict(item)

        existing = self.entries.get(item.item_id)
        if existing is not None:
            return existing

        entry = QuestionPoolEntry(
            item_id=item.item_id,
            formula_id=item.formula_id,
            category=item.category,
            difficulty_tier=item.difficulty_tier,
            difficulty_weight=item.difficulty_tier.weight,
            registered_at=now_ms() if at is None else at,
        )
        self.entries[item.item_id] = entry
        self.items[item.item_id] = item
        self._evict(keep=item.item_id)
        return entry

    def get(self, item_id: int) -> QuestionPoolEntry | None:
        return self.entries.get(item_id)

    def get_item(self, item_id: int) -> PracticeItem | None:
        return self.items.get(item_id)

    def pick_candidates(
        self, subject_filter: str | None = None, exclude_ids: list[int] | set[int] | None = None
    ) -> list[QuestionPoolEntry]:
        """Entries matching the category filter and not excluded."""
        excluded = set(exclude_ids or ())
        return [
            entry
            for entry in self.entries.values()
            if entry.item_id not in excluded and (subject_filter is None or entry.category == subject_filter)
        ]

    def record_attempt(self, item_id: int, correct: bool, at: int | None = None) -> QuestionPoolEntry | None:
        """
        Fold an attempt into the item's selection state.

        Returns:
            The updated entry, or None if the item is not registered
        """
        entry = self.entries.get(item_id)
        if entry is None:
            return None

        entry.times_seen += 1
        entry.last_seen_at = now_ms() if at is None else at
        if correct:
            entry.spaced_score = max(0.0, entry.spaced_score - HIT_SPACED_DECAY)
        else:
            entry.spaced_score = min(1.0, entry.spaced_score + MISS_SPACED_BONUS)
        return entry

    def _evict(self, keep: int) -> None:
        while len(self.entries) > self.max_size:
            stalest = min(
                (e for e in self.entries.values() if e.item_id != keep),
                key=lambda e: e.staleness_key,
            )
            del self.entries[stalest.item_id]
            self.items.pop(stalest.item_id, None)
            logger.debug(f"Evicted stale pool entry {stalest.item_id}")

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries.values()],
            "items": [i.to_dict() for i in self.items.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, max_size: int = 5000) -> ContentPool:
        pool = cls(max_size=max_size)
        data = data or {}
        for raw in data.get("entries", []):
            entry = QuestionPoolEntry.from_dict(raw)
            pool.entries[entry.item_id] = entry
        for raw in data.get("items", []):
            item = PracticeItem.from_dict(raw)
            pool.items[item.item_id] = item
        return pool
