"""
Engine state container and its persisted document format.

EngineState bundles everything the adaptive engine mutates, so the engine
itself holds no hidden globals and any backend can persist it as one JSON
document. Documents carry a version; migrate_state_document() upgrades older
shapes once, at load time.

Version history:
    0: camelCase document (statsByFormula, questionPool, reviewQueue, attemptLog, engineConfig)
    1: current snake_case document
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from practice_core.content.pool import ContentPool
from practice_core.core.engine_config import EngineConfig
from practice_core.delivery.scheduler import ReviewScheduler
from practice_core.learning.mastery_model import MasteryModel
from practice_core.ledger.attempt_ledger import AttemptLedger

STATE_VERSION = 1
FIRST_LOCAL_ITEM_ID = 1000

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class EngineState:
    """All mutable engine data for one learner."""

    config: EngineConfig = field(default_factory=EngineConfig)
    model: MasteryModel | None = None
    pool: ContentPool | None = None
    scheduler: ReviewScheduler = field(default_factory=ReviewScheduler)
    ledger: AttemptLedger | None = None
    next_item_id: int = FIRST_LOCAL_ITEM_ID
    version: int = STATE_VERSION

    def __post_init__(self) -> None:
        if self.model is None:
            self.model = MasteryModel(self.config)
        if self.pool is None:
            self.pool = ContentPool(max_size=self.config.max_pool_size)
        if self.ledger is None:
            self.ledger = AttemptLedger(cap=self.config.ledger_cap, config=self.config)

    def allocate_item_id(self) -> int:
        """Next id for a locally generated item, skipping ids already registered."""
        while self.next_item_id in self.pool:
            self.next_item_id += 1
        item_id = self.next_item_id
        self.next_item_id += 1
        return item_id

    def to_document(self, now: int | None = None) -> dict[str, Any]:
        """Persistable document; the monthly summary ends with the month of `now`."""
        return {
            "version": STATE_VERSION,
            "config": self.config.to_dict(),
            "mastery": self.model.snapshot(),
            "pool": self.pool.to_dict(),
            "review_queue": self.scheduler.to_list(),
            "ledger": self.ledger.to_list(),
            "ledger_archive": self.ledger.archive.to_dict(),
            "monthly_summary": [m.to_dict() for m in self.ledger.monthly_rollup(now)],
            "next_item_id": self.next_item_id,
        }

    @classmethod
    def from_document(cls, document: dict[str, Any], config: EngineConfig | None = None) -> EngineState:
        """
        Build state from a persisted document of any known version.

        Args:
            document: Persisted state document
            config: Config to run with (the document's own config if None)
        """
        doc = migrate_state_document(document)
        config = config or EngineConfig.from_dict(doc["config"])
        return cls(
            config=config,
            model=MasteryModel.from_snapshot(doc["mastery"], config),
            pool=ContentPool.from_dict(doc["pool"], max_size=config.max_pool_size),
            scheduler=ReviewScheduler.from_list(doc["review_queue"]),
            ledger=AttemptLedger.from_list(
                doc["ledger"], cap=config.ledger_cap, archive=doc["ledger_archive"], config=config
            ),
            next_item_id=int(doc["next_item_id"]),
        )


# =============================================================================
# Migration
# =============================================================================


def migrate_state_document(document: dict[str, Any] | None) -> dict[str, Any]:
    """
    Upgrade a persisted document to the current version and fill defaults.

    Unknown versions newer than this code are loaded as-is with defaults
    filled in, and a warning is logged.
    """
    doc = dict(document or {})
    version = int(doc.get("version", 0))

    if version == 0:
        doc = _migrate_v0(doc)
        logger.info("Migrated engine state document from version 0")
    elif version > STATE_VERSION:
        logger.warning(f"Engine state version {version} is newer than supported version {STATE_VERSION}")

    doc.setdefault("config", {})
    doc.setdefault("mastery", {"formulas": {}, "categories": {}})
    doc.setdefault("pool", {"entries": [], "items": []})
    doc.setdefault("review_queue", [])
    doc.setdefault("ledger", [])
    doc.setdefault("ledger_archive", {})
    doc.setdefault("monthly_summary", [])
    doc.setdefault("next_item_id", FIRST_LOCAL_ITEM_ID)
    doc["version"] = STATE_VERSION
    return doc


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _migrate_stat(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "attempts": raw.get("attempts", 0),
        "correct": raw.get("correct", 0),
        "avg_latency_ms": raw.get("avgTimeMs", 0.0),
        "last_attempt_at": raw.get("lastAttemptAt"),
        "streak": raw.get("streak", 0),
        "ewma": raw.get("ewma", 0.0),
    }


def _migrate_v0(doc: dict[str, Any]) -> dict[str, Any]:
    config = {_snake(k): v for k, v in (doc.get("engineConfig") or {}).items()}
    mastery = {
        "formulas": {k: _migrate_stat(v) for k, v in (doc.get("statsByFormula") or {}).items()},
        "categories": {k: _migrate_stat(v) for k, v in (doc.get("statsByCategory") or {}).items()},
    }

    entries = []
    for item_id, raw in (doc.get("questionPool") or {}).items():
        entries.append(
            {
                "item_id": int(item_id),
                "formula_id": raw.get("formulaId", ""),
                "category": raw.get("category", ""),
                "difficulty_tier": raw.get("difficulty", "easy"),
                "difficulty_weight": raw.get("difficultyWeight", 1),
                "times_seen": raw.get("timesSeen", 0),
                "last_seen_at": raw.get("lastSeen"),
                "spaced_score": raw.get("spacedScore", 0.0),
                "registered_at": raw.get("registeredAt", 0),
            }
        )

    review_queue = [
        {
            "item_id": r["qId"],
            "scheduled_at": r["scheduledAt"],
            "priority": r.get("priority", 1.0),
            "reason": r.get("reason", "spaced"),
        }
        for r in doc.get("reviewQueue") or []
        if "qId" in r and "scheduledAt" in r
    ]

    ledger = [
        {
            "timestamp": e["ts"],
            "item_id": e.get("qId") or None,
            "formula_id": e["formulaId"],
            "category": e.get("category", ""),
            "correct": e.get("correct", False),
            "latency_ms": e.get("timeMs", 0.0),
            "difficulty_tier": e.get("difficulty", "easy"),
            "source": e.get("source") or "live",
        }
        for e in doc.get("attemptLog") or []
        if e and e.get("ts") and e.get("formulaId")
    ]

    return {
        "version": STATE_VERSION,
        "config": config,
        "mastery": mastery,
        "pool": {"entries": entries, "items": []},
        "review_queue": review_queue,
        "ledger": ledger,
        "next_item_id": doc.get("nextItemId", FIRST_LOCAL_ITEM_ID),
    }
