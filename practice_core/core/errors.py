"""
Error taxonomy for the practice core.

Every error here is recovered locally by the component that catches it; the
user-facing contract is "always return some valid next item or ledger state".
"""

from __future__ import annotations


class PracticeCoreError(Exception):
    """Base class for practice core errors."""


class GenerationTimeout(PracticeCoreError):
    """The external generation call exceeded its deadline or was cancelled."""


class GenerationRejectedDuplicate(PracticeCoreError):
    """Every candidate failed the duplicate gate within the attempt budget."""

    def __init__(self, topic: str, attempts: int):
        super().__init__(f"No unique candidate for topic {topic!r} after {attempts} attempts")
        self.topic = topic
        self.attempts = attempts


class LedgerWriteSkipped(PracticeCoreError):
    """An idempotent ledger append that was a no-op (already recorded)."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class EngineStateMissing(PracticeCoreError):
    """No persisted engine state exists for the requested key."""


class SignatureStoreUnavailable(PracticeCoreError):
    """The canonical signature store could not be read or written."""


class InvalidAttemptEvent(PracticeCoreError):
    """An incoming attempt event failed schema validation."""
