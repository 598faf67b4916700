"""
Attempt Ledger - append-only, idempotent log of answered items.

The ledger is the source of truth: mastery statistics, the review queue and
pool counters are caches that can be rebuilt by replaying it.

Attempts arrive from several uncoordinated sources. Canonical attempts carry
a concrete item id; synthetic attempts (reconstructed from session summaries
or backfills) carry none. Append rules:

1. Canonical attempt whose item id is already logged -> skipped
2. Canonical attempt matching a synthetic entry on (formula, day, correct)
   -> the synthetic entry is replaced in place, keeping its category
3. Synthetic attempt matching any entry on (formula, day, correct) -> skipped
4. Otherwise -> added, dropping the oldest entries beyond the retention cap

Entries dropped by the cap are folded into a LedgerArchive: their totals
seed every rebuild, their item ids and match keys still count as logged, and
their months still count in the rollup.

Calendar days and months are UTC.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from practice_core.core.clock import day_key, month_key, now_ms, to_datetime
from practice_core.core.engine_config import EngineConfig
from practice_core.core.errors import LedgerWriteSkipped
from practice_core.core.tiers import DifficultyTier
from practice_core.ledger.events import AttemptEvent
from practice_core.learning.mastery_model import MasteryModel, Stat

MONTHS_IN_ROLLUP = 12
MS_PER_DAY = 1000 * 60 * 60 * 24


# =============================================================================
# Data Classes
# =============================================================================


class LedgerAction(str, Enum):
    """Outcome of an append."""

    ADDED = "added"
    REPLACED = "replaced"
    SKIPPED = "skipped"


class UserDifficulty(str, Enum):
    """Overall level label derived from recent correct answers."""

    EASY = "Easy"
    INTERMEDIATE = "Intermediate"
    HARD = "Hard"
    UNKNOWN = "Unknown"


@dataclass
class AttemptLogEntry:
    """One logged attempt."""

    timestamp: int
    formula_id: str
    category: str
    correct: bool
    latency_ms: float = 0.0
    difficulty_tier: DifficultyTier = DifficultyTier.EASY
    source: str = "live"
    item_id: int | None = None

    @property
    def is_synthetic(self) -> bool:
        return self.item_id is None

    @property
    def day(self) -> str:
        return day_key(self.timestamp)

    @property
    def match_key(self) -> tuple[str, str, bool]:
        """(formula, calendar day, correct) used to pair synthetic and canonical entries."""
        return (self.formula_id, self.day, self.correct)

    @classmethod
    def from_event(cls, event: AttemptEvent) -> AttemptLogEntry:
        return cls(
            timestamp=event.ts,
            formula_id=event.formula_id,
            category=event.category,
            correct=event.correct,
            latency_ms=event.latency_ms,
            difficulty_tier=event.difficulty_tier,
            source=event.source,
            item_id=event.item_id,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["difficulty_tier"] = self.difficulty_tier.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttemptLogEntry:
        item_id = data.get("item_id")
        return cls(
            timestamp=int(data["timestamp"]),
            formula_id=data["formula_id"],
            category=data.get("category", ""),
            correct=bool(data["correct"]),
            latency_ms=float(data.get("latency_ms", 0.0)),
            difficulty_tier=DifficultyTier.parse(data.get("difficulty_tier", DifficultyTier.EASY)),
            source=data.get("source", "live"),
            item_id=int(item_id) if item_id is not None else None,
        )


@dataclass
class MonthlySummary:
    """Attempt totals for one calendar month."""

    month_key: str  # YYYY-MM
    attempts: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempts if self.attempts else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "month_key": self.month_key,
            "attempts": self.attempts,
            "correct": self.correct,
            "accuracy": self.accuracy,
        }


@dataclass
class Divergence:
    """A key whose live totals differ from the totals rebuilt from the ledger."""

    kind: str  # "formula" | "category"
    key: str
    live_attempts: int
    rebuilt_attempts: int
    live_correct: int
    rebuilt_correct: int


@dataclass
class ReconciliationReport:
    """Result of comparing the live model with a ledger replay."""

    rebuilt: MasteryModel
    divergences: list[Divergence] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.divergences


@dataclass
class LedgerArchive:
    """
    What remains of entries dropped by the retention cap.

    Attributes:
        model: Statistics of the dropped entries, folded in log order
        retired_items: Item id -> timestamp of dropped canonical entries
        retired_keys: Match keys of every dropped entry
        replaceable_keys: Match keys of dropped synthetic entries no canonical
            attempt has claimed yet
        months: Month key -> [attempts, correct] of dropped entries
    """

    model: MasteryModel = field(default_factory=MasteryModel)
    retired_items: dict[int, int] = field(default_factory=dict)
    retired_keys: set[tuple[str, str, bool]] = field(default_factory=set)
    replaceable_keys: set[tuple[str, str, bool]] = field(default_factory=set)
    months: dict[str, list[int]] = field(default_factory=dict)

    def fold(self, entry: AttemptLogEntry) -> None:
        self.model.record_outcome(
            entry.formula_id, entry.category, entry.correct, entry.latency_ms, at=entry.timestamp
        )
        self.retired_keys.add(entry.match_key)
        if entry.is_synthetic:
            self.replaceable_keys.add(entry.match_key)
        else:
            self.retired_items[entry.item_id] = entry.timestamp

        totals = self.months.setdefault(month_key(entry.timestamp), [0, 0])
        totals[0] += 1
        if entry.correct:
            totals[1] += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "mastery": self.model.snapshot(),
            "retired_items": [[item_id, ts] for item_id, ts in self.retired_items.items()],
            "retired_keys": [list(key) for key in sorted(self.retired_keys)],
            "replaceable_keys": [list(key) for key in sorted(self.replaceable_keys)],
            "months": self.months,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, config: EngineConfig | None = None) -> LedgerArchive:
        data = data or {}
        return cls(
            model=MasteryModel.from_snapshot(data.get("mastery"), config),
            retired_items={int(item_id): int(ts) for item_id, ts in data.get("retired_items", [])},
            retired_keys={(f, d, bool(c)) for f, d, c in data.get("retired_keys", [])},
            replaceable_keys={(f, d, bool(c)) for f, d, c in data.get("replaceable_keys", [])},
            months={k: [int(v[0]), int(v[1])] for k, v in (data.get("months") or {}).items()},
        )


# =============================================================================
# Ledger
# =============================================================================


class AttemptLedger:
    """
    Ordered, capped attempt log.

    Example:
        >>> ledger = AttemptLedger()
        >>> event = AttemptEvent(item_id=1, formula_id="speed", category="AR", correct=True)
        >>> ledger.append(event)
        <LedgerAction.ADDED: 'added'>
        >>> ledger.append(event)
        <LedgerAction.SKIPPED: 'skipped'>
    """

    def __init__(self, cap: int = 10000, config: EngineConfig | None = None):
        self.cap = max(1, cap)
        self.config = config or EngineConfig()
        self.entries: list[AttemptLogEntry] = []
        self.archive = LedgerArchive(model=MasteryModel(self.config))
        self.monthly: list[MonthlySummary] = self.monthly_rollup()

    def __len__(self) -> int:
        return len(self.entries)

    # =========================================================================
    # Append
    # =========================================================================

    def append(self, entry: AttemptEvent | AttemptLogEntry, now: int | None = None) -> LedgerAction:
        """
        Append an attempt idempotently.

        Args:
            entry: Attempt to log
            now: Current time in epoch ms, for the monthly rollup

        Returns:
            ADDED, REPLACED or SKIPPED
        """
        if isinstance(entry, AttemptEvent):
            entry = AttemptLogEntry.from_event(entry)

        try:
            action = self._merge(entry)
        except LedgerWriteSkipped as e:
            logger.debug(f"Ledger append skipped: {e.reason}")
            return LedgerAction.SKIPPED

        self.monthly = self.monthly_rollup(now)
        return action

    def _merge(self, entry: AttemptLogEntry) -> LedgerAction:
        """
        Apply the append rules.

        Raises:
            LedgerWriteSkipped: When the attempt is already represented
        """
        archive = self.archive
        if not entry.is_synthetic:
            if entry.item_id in archive.retired_items or any(e.item_id == entry.item_id for e in self.entries):
                raise LedgerWriteSkipped(f"item {entry.item_id} already logged")

            for index, existing in enumerate(self.entries):
                if existing.is_synthetic and existing.match_key == entry.match_key:
                    # mastery already counted the synthetic entry under its category
                    entry.category = existing.category
                    self.entries[index] = entry
                    logger.debug(f"Replaced synthetic entry for {entry.match_key} with item {entry.item_id}")
                    return LedgerAction.REPLACED

            if entry.match_key in archive.replaceable_keys:
                archive.replaceable_keys.discard(entry.match_key)
                archive.retired_items[entry.item_id] = entry.timestamp
                logger.debug(f"Item {entry.item_id} claims archived synthetic entry {entry.match_key}")
                return LedgerAction.REPLACED
        elif entry.match_key in archive.retired_keys or any(e.match_key == entry.match_key for e in self.entries):
            raise LedgerWriteSkipped(f"synthetic attempt {entry.match_key} already represented")

        self.entries.append(entry)
        self._enforce_cap()
        return LedgerAction.ADDED

    def _enforce_cap(self) -> None:
        overflow = len(self.entries) - self.cap
        if overflow <= 0:
            return
        for dropped in self.entries[:overflow]:
            self.archive.fold(dropped)
        del self.entries[:overflow]
        logger.debug(f"Archived {overflow} ledger entries beyond the cap of {self.cap}")

    # =========================================================================
    # Queries
    # =========================================================================

    def monthly_rollup(self, now: int | None = None) -> list[MonthlySummary]:
        """Totals for the 12 calendar months ending with the current month."""
        current = to_datetime(now_ms() if now is None else now)
        months: list[str] = []
        year, month = current.year, current.month
        for _ in range(MONTHS_IN_ROLLUP):
            months.append(f"{year:04d}-{month:02d}")
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        months.reverse()

        summaries = {key: MonthlySummary(key) for key in months}
        for key, (attempts, correct) in self.archive.months.items():
            if key in summaries:
                summaries[key].attempts += attempts
                summaries[key].correct += correct
        for entry in self.entries:
            summary = summaries.get(month_key(entry.timestamp))
            if summary is None:
                continue
            summary.attempts += 1
            if entry.correct:
                summary.correct += 1
        return [summaries[key] for key in months]

    def timestamp_of(self, item_id: int) -> int | None:
        """When an item's attempt was logged, or None if it was never logged."""
        for entry in self.entries:
            if entry.item_id == item_id:
                return entry.timestamp
        return self.archive.retired_items.get(item_id)

    def entries_for_day(self, day: str | int) -> list[AttemptLogEntry]:
        """Entries on a calendar day, given as YYYY-MM-DD or any epoch-ms time on it."""
        key = day if isinstance(day, str) else day_key(day)
        return [e for e in self.entries if e.day == key]

    def user_difficulty(self, days: int = 30, now: int | None = None) -> UserDifficulty:
        """
        Overall level from correct answers per tier in the trailing window.

        Rules, on correct answers within the last `days` calendar days:
        - fewer than 5 in total -> Unknown
        - hard has >= 5 and >= 50% of them -> Hard
        - medium has >= 5 and >= 40% -> Intermediate
        - easy has >= 5 and >= 50% -> Easy
        - otherwise Intermediate

        Tiers above hard count as hard.
        """
        now = now_ms() if now is None else now
        today_start = now - now % MS_PER_DAY
        cutoff = today_start - (days - 1) * MS_PER_DAY

        correct = {DifficultyTier.EASY: 0, DifficultyTier.MEDIUM: 0, DifficultyTier.HARD: 0}
        for entry in self.entries:
            if entry.timestamp < cutoff or not entry.correct:
                continue
            tier = entry.difficulty_tier if entry.difficulty_tier in correct else DifficultyTier.HARD
            correct[tier] += 1

        total = sum(correct.values())
        if total < 5:
            return UserDifficulty.UNKNOWN
        hard, medium, easy = correct[DifficultyTier.HARD], correct[DifficultyTier.MEDIUM], correct[DifficultyTier.EASY]
        if hard >= 5 and hard / total >= 0.5:
            return UserDifficulty.HARD
        if medium >= 5 and medium / total >= 0.4:
            return UserDifficulty.INTERMEDIATE
        if easy >= 5 and easy / total >= 0.5:
            return UserDifficulty.EASY
        return UserDifficulty.INTERMEDIATE

    # =========================================================================
    # Rebuild & Reconciliation
    # =========================================================================

    def rebuild_aggregates(self, config: EngineConfig | None = None) -> MasteryModel:
        """Replay the ledger, in order, on top of the archived totals."""
        model = MasteryModel.from_snapshot(self.archive.model.snapshot(), config or self.config)
        for entry in self.entries:
            model.record_outcome(
                entry.formula_id, entry.category, entry.correct, entry.latency_ms, at=entry.timestamp
            )
        return model

    def reconcile(self, live: MasteryModel) -> ReconciliationReport:
        """
        Compare live totals with a replay of the ledger.

        Divergence is logged and reported, never raised.
        """
        rebuilt = self.rebuild_aggregates(live.config)
        report = ReconciliationReport(rebuilt=rebuilt)
        report.divergences.extend(_diff("formula", live.formulas, rebuilt.formulas))
        report.divergences.extend(_diff("category", live.categories, rebuilt.categories))

        for d in report.divergences:
            logger.warning(
                f"Ledger divergence on {d.kind} {d.key!r}: live {d.live_correct}/{d.live_attempts}, "
                f"rebuilt {d.rebuilt_correct}/{d.rebuilt_attempts}"
            )
        return report

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_list(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self.entries]

    @classmethod
    def from_list(
        cls,
        data: list[dict[str, Any]] | None,
        cap: int = 10000,
        archive: dict[str, Any] | None = None,
        config: EngineConfig | None = None,
    ) -> AttemptLedger:
        """
        Restore a ledger, folding rows beyond the cap into the archive.

        Args:
            data: Persisted entries, oldest first
            cap: Retention cap
            archive: Persisted LedgerArchive, if any
            config: Engine configuration for rebuilt models
        """
        ledger = cls(cap=cap, config=config)
        if archive:
            ledger.archive = LedgerArchive.from_dict(archive, ledger.config)
        ledger.entries = [AttemptLogEntry.from_dict(raw) for raw in (data or [])]
        ledger._enforce_cap()
        ledger.monthly = ledger.monthly_rollup()
        return ledger


def _diff(kind: str, live: dict[str, Stat], rebuilt: dict[str, Stat]) -> list[Divergence]:
    empty = Stat()
    out = []
    for key in sorted(set(live) | set(rebuilt)):
        a = live.get(key, empty)
        b = rebuilt.get(key, empty)
        if a.attempts != b.attempts or a.correct != b.correct:
            out.append(Divergence(kind, key, a.attempts, b.attempts, a.correct, b.correct))
    return out
