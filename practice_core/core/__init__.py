"""
Core: configuration, tiers, time helpers and the error taxonomy.

The engine facade and its state container live in practice_core.core.engine
and practice_core.core.state; they are not re-exported here because they
depend on every other subpackage.
"""

from .engine_config import EngineConfig
from .errors import (
    EngineStateMissing,
    GenerationRejectedDuplicate,
    GenerationTimeout,
    InvalidAttemptEvent,
    LedgerWriteSkipped,
    PracticeCoreError,
    SignatureStoreUnavailable,
)
from .tiers import DifficultyTier

__all__ = [
    "EngineConfig",
    "DifficultyTier",
    # Errors
    "PracticeCoreError",
    "GenerationTimeout",
    "GenerationRejectedDuplicate",
    "LedgerWriteSkipped",
    "EngineStateMissing",
    "SignatureStoreUnavailable",
    "InvalidAttemptEvent",
]
