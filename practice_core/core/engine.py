"""
Adaptive Engine - facade over the ledger, mastery model, pool and scheduler.

Post-attempt flow:
    AttemptEvent -> AttemptLedger -> MasteryModel -> ContentPool
                 -> ReviewScheduler -> DifficultyAdjuster

Retrieval flow:
    ReviewScheduler -> ContentPool -> mastery weights -> QuestionSelector
                    -> (nothing available) ContentGate -> ContentPool

All mutable data lives in an explicit EngineState, persisted through an
injected backend.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Iterable
from typing import Any

from loguru import logger

from practice_core.content.gate import ContentGate
from practice_core.content.generator import ContentGenerationClient, LocalFallbackGenerator
from practice_core.content.pool import PracticeItem, QuestionPoolEntry
from practice_core.core.clock import now_ms
from practice_core.core.engine_config import EngineConfig
from practice_core.core.errors import EngineStateMissing, InvalidAttemptEvent
from practice_core.core.state import EngineState
from practice_core.delivery.selector import ExplorationPolicy, QuestionSelector
from practice_core.delivery.state_store import MemoryStateBackend, StateBackend, create_backend
from practice_core.learning.difficulty_adjuster import DifficultyAdjuster
from practice_core.ledger.attempt_ledger import LedgerAction, ReconciliationReport
from practice_core.ledger.events import AttemptEvent
from practice_core.semantic.signature_store import CanonicalSignatureStore, SignatureKind


class AdaptiveEngine:
    """
    Single-writer adaptive practice engine for one learner.

    Example:
        >>> engine = AdaptiveEngine()
        >>> _ = engine.register_item({"id": 1, "formula_id": "speed", "category": "AR"})
        >>> engine.record_attempt({"itemId": 1, "formulaId": "speed", "category": "AR", "correct": False})
        <LedgerAction.ADDED: 'added'>
    """

    def __init__(
        self,
        state: EngineState | None = None,
        backend: StateBackend | None = None,
        state_key: str = "default",
        gate: ContentGate | None = None,
        policy: ExplorationPolicy | None = None,
    ):
        """
        Initialize the engine.

        Args:
            state: Engine state (fresh defaults if None)
            backend: Where save()/load() persist state (in-memory if None)
            state_key: Learner/device key the state is stored under
            gate: Content gate for generated items (local generator if None)
            policy: Exploration policy (seedable) for selection
        """
        self.state = state or EngineState()
        self.backend = backend or MemoryStateBackend()
        self.state_key = state_key
        self.gate = gate or ContentGate(config=self.config)
        self.policy = policy or ExplorationPolicy(self.config.base_exploration)
        self.adjuster = DifficultyAdjuster(self.config)

    @classmethod
    def from_settings(cls, settings: Any = None, load: bool = True) -> AdaptiveEngine:
        """
        Build an engine wired from application settings.

        Args:
            settings: Settings instance (cached settings if None)
            load: Load persisted state for the configured key
        """
        if settings is None:
            from config import get_settings

            settings = get_settings()

        config = EngineConfig.from_settings(settings)
        backend = create_backend(settings.state_backend, settings.state_path, settings.database_url)
        if settings.has_generation_backend():
            generator = ContentGenerationClient(settings.generation_endpoint, config.generation_timeout_seconds)
        else:
            generator = LocalFallbackGenerator()
        gate = ContentGate(
            backend=generator,
            config=config,
            store=CanonicalSignatureStore(settings.signature_store_path),
        )

        engine = cls(EngineState(config=config), backend=backend, state_key=settings.state_key, gate=gate)
        if load:
            engine.load()
        return engine

    @property
    def config(self) -> EngineConfig:
        return self.state.config

    @property
    def selector(self) -> QuestionSelector:
        return QuestionSelector(self.state.pool, self.state.scheduler, self.state.model, self.config, self.policy)

    # =========================================================================
    # Attempts
    # =========================================================================

    def record_attempt(self, event: AttemptEvent | dict[str, Any], now: int | None = None) -> LedgerAction:
        """
        Record one answered item.

        Args:
            event: Attempt event or raw payload
            now: Current time in epoch ms, for review scheduling

        A SKIPPED attempt never touches the ledger or mastery. If it is a new
        answer to an item already logged (a review), the pool entry, review
        schedule and tier are still updated; a redelivered event changes nothing.

        Returns:
            The ledger action

        Raises:
            InvalidAttemptEvent: If the payload is malformed
        """
        event = AttemptEvent.parse(event)
        now = now_ms() if now is None else now
        state = self.state

        action = state.ledger.append(event, now=now)
        if action == LedgerAction.SKIPPED:
            if not self._is_repeat_answer(event):
                return action
        elif action == LedgerAction.ADDED:
            state.model.record_outcome(
                event.formula_id, event.category, event.correct, event.latency_ms, at=event.ts
            )

        if event.item_id is not None:
            entry = state.pool.record_attempt(event.item_id, event.correct, at=event.ts)
            if entry is not None:
                state.scheduler.schedule_after_attempt(
                    entry.item_id,
                    event.correct,
                    entry.difficulty_tier,
                    state.model.ewma(entry.formula_id),
                    now=now,
                )
                self.adjuster.apply(entry, state.model.streak(entry.formula_id))

        logger.debug(f"Attempt on {event.formula_id} (item {event.item_id}): {action.value}")
        return action

    def _is_repeat_answer(self, event: AttemptEvent) -> bool:
        if event.item_id is None or event.item_id not in self.state.pool:
            return False
        logged_at = self.state.ledger.timestamp_of(event.item_id)
        return logged_at is not None and logged_at != event.ts

    def import_attempts(self, events: Iterable[AttemptEvent | dict[str, Any]]) -> Counter[str]:
        """
        Record a batch of attempts (e.g. an imported session summary).

        Malformed events are logged and counted as "invalid"; the rest of the
        batch is still recorded.

        Returns:
            Counts keyed by ledger action value, plus "invalid"
        """
        outcomes: Counter[str] = Counter()
        for event in events:
            try:
                outcomes[self.record_attempt(event).value] += 1
            except InvalidAttemptEvent as e:
                logger.warning(f"Skipping invalid attempt event: {e}")
                outcomes["invalid"] += 1
        logger.info(f"Imported attempts: {dict(outcomes)}")
        return outcomes

    # =========================================================================
    # Items
    # =========================================================================

    def register_item(self, item: PracticeItem | dict[str, Any]) -> QuestionPoolEntry:
        return self.state.pool.register(item)

    def pick_next(
        self,
        subject_filter: str | None = None,
        exclude_ids: Iterable[int] | None = None,
        now: int | None = None,
    ) -> int | None:
        return self.selector.pick_next(subject_filter, exclude_ids, now)

    async def next_item(
        self,
        topic: str,
        subject_filter: str | None = None,
        exclude_ids: Iterable[int] | None = None,
        cancel_token: asyncio.Event | None = None,
    ) -> PracticeItem:
        """
        Get the next item, generating one when the pool has nothing to offer.

        Args:
            topic: Subject used for generation
            subject_filter: Category filter for selection (defaults to topic)
            exclude_ids: Recently shown items to skip
            cancel_token: Event that abandons remote generation once set

        Returns:
            A registered practice item
        """
        subject_filter = topic if subject_filter is None else subject_filter
        item_id = self.pick_next(subject_filter, exclude_ids)
        if item_id is not None:
            return self._item_for(item_id)

        tier = self.state.model.recommended_difficulty(topic)
        candidate = await self.gate.acquire(topic, tier, cancel_token)
        item = PracticeItem(
            item_id=self.state.allocate_item_id(),
            formula_id=candidate.formula_id or f"{topic.lower()}_generated",
            category=topic,
            difficulty_tier=candidate.difficulty_tier,
            text=candidate.text,
            answer=candidate.answer,
            explanation=candidate.explanation,
        )
        self.register_item(item)
        logger.info(f"Registered generated item {item.item_id} for {topic!r} ({candidate.source})")
        return item

    async def close(self) -> None:
        """Release the content gate's generation backend."""
        await self.gate.close()

    def _item_for(self, item_id: int) -> PracticeItem:
        item = self.state.pool.get_item(item_id)
        if item is not None:
            return item
        entry = self.state.pool.get(item_id)
        if entry is None:
            return PracticeItem(item_id=item_id, formula_id="", category="")
        return PracticeItem(
            item_id=entry.item_id,
            formula_id=entry.formula_id,
            category=entry.category,
            difficulty_tier=entry.difficulty_tier,
        )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile(self, apply: bool = False) -> ReconciliationReport:
        """
        Compare the live mastery model with a ledger replay.

        Args:
            apply: Adopt the rebuilt statistics when they diverge
        """
        report = self.state.ledger.reconcile(self.state.model)
        if apply and not report.is_consistent:
            self.state.model = report.rebuilt
            logger.info(f"Adopted rebuilt statistics ({len(report.divergences)} divergent keys)")
        return report

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self) -> None:
        self.backend.save(self.state_key, self.state.to_document())

    def load(self) -> EngineState:
        """Load state for this engine's key, keeping defaults if none is stored."""
        try:
            document = self.backend.load(self.state_key)
        except EngineStateMissing:
            logger.info(f"No saved state for {self.state_key!r}, starting fresh")
            return self.state

        self.state = EngineState.from_document(document, config=self.config)
        logger.info(f"Loaded state for {self.state_key!r}: {len(self.state.ledger)} attempts")
        return self.state

    def stats(self) -> dict[str, Any]:
        """Headline numbers for display."""
        state = self.state
        return {
            "attempts": state.model.total_attempts,
            "correct": state.model.total_correct,
            "ledger_entries": len(state.ledger),
            "pool_size": len(state.pool),
            "pending_reviews": len(state.scheduler),
            "mastered_formulas": sum(1 for f in state.model.formulas if state.model.is_mastered(f)),
            "canonical_signatures": self.gate.store.count(SignatureKind.STRUCTURAL),
            "user_difficulty": state.ledger.user_difficulty().value,
        }
