"""
Unit tests for EngineState documents and their migration.
"""

import pytest

from practice_core.core.engine_config import EngineConfig
from practice_core.core.state import STATE_VERSION, EngineState, migrate_state_document
from practice_core.core.tiers import DifficultyTier
from practice_core.ledger.events import AttemptEvent

NOW = 1_718_452_800_000
DAY_MS = 24 * 60 * 60 * 1000


@pytest.fixture
def v0_document():
    """State as written by the original camelCase client."""
    return {
        "engineConfig": {"alpha": 0.2, "baseExploration": 0.1, "upStreakThreshold": 4, "legacyKnob": 1},
        "statsByFormula": {
            "speed": {"attempts": 3, "correct": 2, "avgTimeMs": 4100, "lastAttemptAt": NOW, "streak": 2, "ewma": 0.3}
        },
        "statsByCategory": {"AR": {"attempts": 3, "correct": 2, "avgTimeMs": 4100, "streak": 2}},
        "questionPool": {
            "7": {
                "formulaId": "speed",
                "category": "AR",
                "difficulty": "medium",
                "difficultyWeight": 2,
                "timesSeen": 3,
                "lastSeen": NOW,
                "spacedScore": 0.35,
            }
        },
        "reviewQueue": [
            {"qId": 7, "scheduledAt": NOW + 900_000, "priority": 2, "reason": "incorrect"},
            {"scheduledAt": NOW},
        ],
        "attemptLog": [
            {"ts": NOW, "qId": 7, "formulaId": "speed", "category": "AR", "correct": True, "timeMs": 4100,
             "difficulty": "medium", "source": "live"},
            {"ts": NOW - 1000, "qId": 0, "formulaId": "speed", "category": "AR", "correct": False,
             "difficulty": "easy", "source": "synthetic"},
            {"ts": NOW, "category": "AR", "correct": True},
            None,
        ],
        "nextItemId": 1042,
    }


class TestMigration:
    """Tests for migrate_state_document()."""

    def test_v0_document_is_migrated(self, v0_document):
        state = EngineState.from_document(v0_document)

        assert state.config.alpha == 0.2
        assert state.config.base_exploration == 0.1
        assert state.config.up_streak_threshold == 4

        speed = state.model.formulas["speed"]
        assert (speed.attempts, speed.correct, speed.streak) == (3, 2, 2)
        assert speed.avg_latency_ms == 4100
        assert speed.ewma == pytest.approx(0.3)
        assert state.model.categories["AR"].ewma == 0.0

        entry = state.pool.get(7)
        assert entry.difficulty_tier == DifficultyTier.MEDIUM
        assert entry.times_seen == 3
        assert entry.last_seen_at == NOW

        assert [(r.item_id, r.reason) for r in state.scheduler.queue] == [(7, "incorrect")]
        assert state.next_item_id == 1042

    def test_v0_attempt_log(self, v0_document):
        state = EngineState.from_document(v0_document)
        entries = state.ledger.entries

        assert len(entries) == 2
        assert entries[0].item_id == 7
        assert entries[1].is_synthetic
        assert entries[1].latency_ms == 0.0

    def test_empty_document_gets_defaults(self):
        doc = migrate_state_document({})

        assert doc["version"] == STATE_VERSION
        assert doc["ledger"] == []
        assert doc["next_item_id"] == 1000

    def test_newer_version_loads_with_defaults(self):
        state = EngineState.from_document({"version": STATE_VERSION + 1, "next_item_id": 1500})

        assert state.next_item_id == 1500
        assert len(state.pool) == 0

    def test_runtime_config_overrides_document(self, v0_document):
        config = EngineConfig(alpha=0.5)
        state = EngineState.from_document(v0_document, config=config)

        assert state.config is config
        assert state.model.config is config


class TestEngineState:
    """Tests for EngineState itself."""

    def test_document_round_trip(self):
        state = EngineState()
        state.pool.register({"id": 3, "formula_id": "speed", "category": "AR"}, at=NOW)
        state.model.record_outcome("speed", "AR", True, 1500, at=NOW)
        state.scheduler.schedule_review(3, 300, 2.0, "incorrect", now=NOW)
        state.allocate_item_id()

        document = state.to_document()
        restored = EngineState.from_document(document)

        assert document["version"] == STATE_VERSION
        assert len(document["monthly_summary"]) == 12
        assert restored.next_item_id == 1001
        assert restored.pool.get(3) == state.pool.get(3)
        assert restored.model.formulas == state.model.formulas
        assert restored.scheduler.to_list() == state.scheduler.to_list()

    def test_allocate_item_id_skips_registered_ids(self):
        state = EngineState()
        state.pool.register({"id": 1000, "formula_id": "speed", "category": "AR"})
        state.pool.register({"id": 1001, "formula_id": "speed", "category": "AR"})

        assert state.allocate_item_id() == 1002
        assert state.allocate_item_id() == 1003

    def test_components_use_config_bounds(self):
        state = EngineState(config=EngineConfig(ledger_cap=50, max_pool_size=10))

        assert state.ledger.cap == 50
        assert state.pool.max_size == 10

    def test_fresh_state_has_twelve_month_summary(self):
        assert len(EngineState().to_document()["monthly_summary"]) == 12

    def test_monthly_summary_ends_at_save_time(self):
        state = EngineState()
        state.ledger.append(AttemptEvent(ts=NOW, item_id=1, formula_id="speed", category="AR", correct=True), now=NOW)

        # 2024-09-23, three months after the last append
        summary = state.to_document(now=NOW + 100 * DAY_MS)["monthly_summary"]

        assert len(summary) == 12
        assert summary[-1]["month_key"] == "2024-09"
        assert (summary[-4]["month_key"], summary[-4]["attempts"]) == ("2024-06", 1)

    def test_archived_entries_survive_round_trip(self):
        state = EngineState(config=EngineConfig(ledger_cap=2))
        for item_id in range(1, 5):
            e = AttemptEvent(ts=NOW + item_id, item_id=item_id, formula_id="speed", category="AR", correct=True)
            state.ledger.append(e, now=NOW)
            state.model.record_outcome(e.formula_id, e.category, e.correct, e.latency_ms, at=e.ts)

        restored = EngineState.from_document(state.to_document())

        assert len(restored.ledger) == 2
        assert restored.ledger.reconcile(restored.model).is_consistent
        assert restored.ledger.timestamp_of(1) == NOW + 1
