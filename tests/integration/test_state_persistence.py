"""
Integration Tests for engine state persistence.

Exercises each StateBackend against real files and a SQLite database, and
the full save/load cycle through AdaptiveEngine.
"""
import json

import pytest
from sqlalchemy import create_engine, text

from practice_core.core.engine import AdaptiveEngine
from practice_core.core.errors import EngineStateMissing
from practice_core.delivery.state_store import (
    JsonFileStateBackend,
    MemoryStateBackend,
    SqlStateBackend,
    create_backend,
)

pytestmark = pytest.mark.integration

NOW = 1_718_452_800_000

DOCUMENT = {"version": 1, "next_item_id": 1003, "ledger": []}


@pytest.fixture(params=["memory", "json", "sql"])
def backend(request, tmp_path):
    """Each backend kind, backed by tmp_path where it needs storage."""
    return create_backend(
        request.param,
        path=str(tmp_path / "state.json"),
        database_url=f"sqlite:///{tmp_path / 'state.db'}",
    )


class TestBackends:
    """Behaviour shared by every backend."""

    def test_missing_key_raises(self, backend):
        with pytest.raises(EngineStateMissing):
            backend.load("nobody")

    def test_save_then_load(self, backend):
        backend.save("learner-1", DOCUMENT)

        assert backend.load("learner-1") == DOCUMENT

    def test_save_overwrites(self, backend):
        backend.save("learner-1", DOCUMENT)
        backend.save("learner-1", {**DOCUMENT, "next_item_id": 2000})

        assert backend.load("learner-1")["next_item_id"] == 2000

    def test_keys_are_independent(self, backend):
        backend.save("a", {**DOCUMENT, "next_item_id": 1})
        backend.save("b", {**DOCUMENT, "next_item_id": 2})

        assert backend.load("a")["next_item_id"] == 1
        assert backend.load("b")["next_item_id"] == 2

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            create_backend("redis")


class TestMemoryBackend:
    def test_loaded_document_is_a_copy(self):
        backend = MemoryStateBackend()
        backend.save("k", DOCUMENT)

        backend.load("k")["ledger"].append({"oops": True})

        assert backend.load("k")["ledger"] == []


class TestJsonFileBackend:
    """File layout and damaged files."""

    def test_file_holds_every_key(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        backend = JsonFileStateBackend(path)
        backend.save("a", DOCUMENT)
        backend.save("b", DOCUMENT)

        assert set(json.loads(path.read_text())) == {"a", "b"}
        assert not path.with_suffix(".json.tmp").exists()

    def test_unreadable_file_is_treated_as_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("not json")

        with pytest.raises(EngineStateMissing):
            JsonFileStateBackend(path).load("a")


class TestSqlBackend:
    """Table layout."""

    def test_row_records_version(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'state.db'}")
        backend = SqlStateBackend(engine=engine)
        backend.save("learner-1", DOCUMENT)
        backend.save("learner-1", DOCUMENT)

        with engine.connect() as conn:
            rows = conn.execute(text("SELECT state_key, version FROM engine_state")).fetchall()

        assert [tuple(r) for r in rows] == [("learner-1", 1)]


class TestEngineRoundTrip:
    """Full save/load through the engine."""

    def test_state_survives_restart(self, tmp_path):
        backend = JsonFileStateBackend(tmp_path / "state.json")
        engine = AdaptiveEngine(backend=backend, state_key="learner-1")
        engine.register_item({"id": 7, "formula_id": "speed", "category": "AR", "text": "How far?"})
        engine.record_attempt(
            {"ts": NOW, "itemId": 7, "formulaId": "speed", "category": "AR", "correct": False}, now=NOW
        )
        engine.save()

        restored = AdaptiveEngine(backend=backend, state_key="learner-1")
        restored.load()

        assert len(restored.state.ledger) == 1
        assert restored.state.model.formulas == engine.state.model.formulas
        assert restored.state.pool.get(7) == engine.state.pool.get(7)
        assert restored.state.pool.get_item(7).text == "How far?"
        assert restored.state.scheduler.pending_for(7).reason == "incorrect"
        assert restored.stats() == engine.stats()

    def test_load_without_saved_state_keeps_defaults(self):
        engine = AdaptiveEngine(backend=MemoryStateBackend())

        state = engine.load()

        assert len(state.ledger) == 0
        assert state.next_item_id == 1000
