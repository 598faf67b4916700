"""
Adaptive practice core.

Tracks per-formula mastery, picks the next practice item, schedules spaced
review of missed items, and gates generated content through duplicate
detection. The attempt ledger is the source of truth every other structure
can be rebuilt from.

Subpackages:
- core: EngineConfig, EngineState, AdaptiveEngine facade, error taxonomy
- semantic: DuplicateDetector and the canonical signature store
- content: ContentPool, generation client, ContentGate
- learning: MasteryModel and DifficultyAdjuster
- delivery: ReviewScheduler, QuestionSelector, state backends
- ledger: AttemptLedger and attempt event schema
- cli: operator commands
"""

__version__ = "1.0.0"
