"""
Ledger: the append-only attempt log and its event schema.

Components:
- AttemptEvent: validated attempt payload from any source
- AttemptLedger: idempotent append, monthly rollup, rebuild and reconciliation
"""

from .attempt_ledger import (
    AttemptLedger,
    AttemptLogEntry,
    Divergence,
    LedgerAction,
    MonthlySummary,
    ReconciliationReport,
    UserDifficulty,
)
from .events import AttemptEvent, AttemptSource

__all__ = [
    # Events
    "AttemptEvent",
    "AttemptSource",
    # Ledger
    "AttemptLedger",
    "AttemptLogEntry",
    "LedgerAction",
    "MonthlySummary",
    "UserDifficulty",
    # Reconciliation
    "Divergence",
    "ReconciliationReport",
]
