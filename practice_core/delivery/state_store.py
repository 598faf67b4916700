"""
Engine state persistence backends.

The engine persists one JSON document per learner key. Backends only move
documents; versioning and migration happen in EngineState.from_document().

- MemoryStateBackend: process-local, for tests and ephemeral sessions
- JsonFileStateBackend: one JSON file holding every key (~/.practice_core/state.json)
- SqlStateBackend: a single key/value table behind any SQLAlchemy URL
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from practice_core.core.clock import now_ms
from practice_core.core.errors import EngineStateMissing


class StateBackend(Protocol):
    """Load and save engine state documents by key."""

    def load(self, key: str) -> dict[str, Any]:
        """
        Raises:
            EngineStateMissing: If nothing is stored under the key
        """
        ...

    def save(self, key: str, document: dict[str, Any]) -> None: ...


# =============================================================================
# Memory
# =============================================================================


class MemoryStateBackend:
    """Documents kept in a dict; copies are stored so callers cannot alias them."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    def load(self, key: str) -> dict[str, Any]:
        if key not in self._documents:
            raise EngineStateMissing(f"No state for {key!r}")
        return json.loads(self._documents[key])

    def save(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = json.dumps(document)


# =============================================================================
# JSON File
# =============================================================================


class JsonFileStateBackend:
    """
    All keys in one JSON file, rewritten atomically on save.

    File layout: {"<key>": <state document>, ...}
    """

    DEFAULT_PATH = Path.home() / ".practice_core" / "state.json"

    def __init__(self, path: Path | str | None = None):
        """
        Initialize the backend.

        Args:
            path: State file (defaults to ~/.practice_core/state.json)
        """
        self.path = Path(path).expanduser() if path else self.DEFAULT_PATH

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(f"Unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, key: str) -> dict[str, Any]:
        documents = self._read_all()
        if key not in documents:
            raise EngineStateMissing(f"No state for {key!r} in {self.path}")
        return documents[key]

    def save(self, key: str, document: dict[str, Any]) -> None:
        documents = self._read_all()
        documents[key] = document

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(documents), encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved state {key!r} to {self.path}")


# =============================================================================
# SQL
# =============================================================================


class SqlStateBackend:
    """Key/value table of state documents behind a SQLAlchemy engine."""

    TABLE = "engine_state"

    def __init__(self, database_url: str = "sqlite:///practice_core.db", engine: Engine | None = None):
        """
        Initialize the backend.

        Args:
            database_url: SQLAlchemy URL (ignored if engine is given)
            engine: Existing SQLAlchemy engine
        """
        self.engine = engine or create_engine(database_url, pool_pre_ping=True)
        self._init_schema()

    def _init_schema(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.TABLE} (
                        state_key VARCHAR(255) PRIMARY KEY,
                        version INTEGER NOT NULL,
                        document TEXT NOT NULL,
                        updated_at BIGINT NOT NULL
                    )
                    """
                )
            )

    def load(self, key: str) -> dict[str, Any]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT document FROM {self.TABLE} WHERE state_key = :key"),
                {"key": key},
            ).fetchone()
        if row is None:
            raise EngineStateMissing(f"No state for {key!r} in {self.TABLE}")
        return json.loads(row[0])

    def save(self, key: str, document: dict[str, Any]) -> None:
        params = {
            "key": key,
            "version": int(document.get("version", 0)),
            "document": json.dumps(document),
            "updated_at": now_ms(),
        }
        with self.engine.begin() as conn:
            conn.execute(text(f"DELETE FROM {self.TABLE} WHERE state_key = :key"), {"key": key})
            conn.execute(
                text(
                    f"INSERT INTO {self.TABLE} (state_key, version, document, updated_at) "
                    "VALUES (:key, :version, :document, :updated_at)"
                ),
                params,
            )
        logger.debug(f"Saved state {key!r} to {self.TABLE}")


def create_backend(kind: str, path: str | None = None, database_url: str | None = None) -> StateBackend:
    """
    Build a backend by name.

    Args:
        kind: "memory", "json" or "sql"
        path: State file for the json backend
        database_url: SQLAlchemy URL for the sql backend
    """
    if kind == "memory":
        return MemoryStateBackend()
    if kind == "json":
        return JsonFileStateBackend(path)
    if kind == "sql":
        return SqlStateBackend(database_url or "sqlite:///practice_core.db")
    raise ValueError(f"Unknown state backend: {kind}")
