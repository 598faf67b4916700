"""
Content Gate - duplicate-resistant acceptance of generated items.

Every candidate from a generation backend is checked, in order, against:
1. Normalized text, structural signature and token fingerprint seen in the
   current batch or in the CanonicalSignatureStore
2. Embedding similarity against the store's accepted embeddings
3. DuplicateDetector.is_duplicate() against recently accepted texts

A rejected candidate costs one attempt. When the attempt budget runs out,
the deadline passes or the caller cancels, the gate returns a deterministic
local item instead, so acquire() always completes with some item.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass

import httpx
from loguru import logger

from practice_core.content.generator import CandidateContent, GenerationBackend, LocalFallbackGenerator
from practice_core.core.engine_config import EngineConfig
from practice_core.core.errors import GenerationRejectedDuplicate, GenerationTimeout
from practice_core.core.tiers import DifficultyTier
from practice_core.semantic.duplicate_detector import DuplicateDetector, TextSignatures
from practice_core.semantic.signature_store import CanonicalSignatureStore, SignatureKind

EXCLUSION_HINT_LIMIT = 5


@dataclass
class GateDecision:
    """Outcome of checking one candidate."""

    accepted: bool
    reason: str = ""


class ContentGate:
    """
    Wrap a generation backend with duplicate detection and bounded retries.

    Example:
        >>> gate = ContentGate(LocalFallbackGenerator(seed=7))
        >>> candidate = asyncio.run(gate.acquire("AR", DifficultyTier.EASY))
        >>> candidate.source
        'local'
    """

    def __init__(
        self,
        backend: GenerationBackend | None = None,
        config: EngineConfig | None = None,
        store: CanonicalSignatureStore | None = None,
        detector: DuplicateDetector | None = None,
        fallback: LocalFallbackGenerator | None = None,
    ):
        """
        Initialize the gate.

        Args:
            backend: Candidate supplier (a seeded local generator if None)
            config: Engine configuration (attempt budget, deadline, thresholds)
            store: Cross-session signature store (in-memory if None)
            detector: Duplicate detector
            fallback: Deterministic generator used when the gate gives up
        """
        self.config = config or EngineConfig()
        self.backend = backend or LocalFallbackGenerator(seed=0)
        self.store = store or CanonicalSignatureStore()
        self.detector = detector or DuplicateDetector(self.config.duplicate_threshold)
        self.fallback = fallback or LocalFallbackGenerator(seed=0)

        self._batch: dict[SignatureKind, set[str]] = {kind: set() for kind in SignatureKind}
        self._recent: deque[str] = deque(maxlen=self.config.recent_accepted_window)

    # =========================================================================
    # Acquisition
    # =========================================================================

    async def acquire(
        self,
        topic: str,
        difficulty_tier: DifficultyTier = DifficultyTier.EASY,
        cancel_token: asyncio.Event | None = None,
    ) -> CandidateContent:
        """
        Get one accepted candidate.

        Args:
            topic: Subject to generate for
            difficulty_tier: Requested tier
            cancel_token: Event that, once set, abandons the remote backend

        Returns:
            An accepted candidate; source "fallback" when the gate gave up
        """
        try:
            return await self._generate_unique(topic, difficulty_tier, cancel_token)
        except GenerationTimeout as e:
            logger.warning(f"Generation for {topic!r} abandoned ({e}), using local fallback")
        except GenerationRejectedDuplicate as e:
            logger.warning(f"{e}, using local fallback")

        return self._accept_fallback(topic, difficulty_tier)

    async def _generate_unique(
        self,
        topic: str,
        difficulty_tier: DifficultyTier,
        cancel_token: asyncio.Event | None,
    ) -> CandidateContent:
        """
        Retry the backend until a candidate passes the gate.

        Raises:
            GenerationTimeout: On deadline or cancellation
            GenerationRejectedDuplicate: When every attempt was rejected or failed
        """
        max_attempts = max(1, self.config.generation_max_attempts)
        yield_every = max(1, self.config.yield_every)
        hints = list(self._recent)[-EXCLUSION_HINT_LIMIT:]

        for attempt in range(1, max_attempts + 1):
            if attempt > 1 and (attempt - 1) % yield_every == 0:
                await asyncio.sleep(0)

            try:
                candidate = await self._request(topic, difficulty_tier, hints, cancel_token)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Generation attempt {attempt}/{max_attempts} for {topic!r} failed: {e}")
                continue

            signatures = self.detector.signatures(candidate.text)
            decision = self.check(candidate, signatures)
            if decision.accepted:
                self._record(candidate, signatures)
                logger.debug(f"Accepted candidate for {topic!r} on attempt {attempt}")
                return candidate

            logger.debug(f"Rejected candidate for {topic!r} on attempt {attempt}: {decision.reason}")
            hints = (hints + [candidate.text])[-EXCLUSION_HINT_LIMIT:]

        raise GenerationRejectedDuplicate(topic, max_attempts)

    async def _request(
        self,
        topic: str,
        difficulty_tier: DifficultyTier,
        hints: list[str],
        cancel_token: asyncio.Event | None,
    ) -> CandidateContent:
        """Call the backend under the deadline, racing the cancellation token."""
        if cancel_token is not None and cancel_token.is_set():
            raise GenerationTimeout("cancelled before request")

        timeout = self.config.generation_timeout_seconds
        request = asyncio.ensure_future(self.backend.request_candidate(topic, difficulty_tier, hints))
        if cancel_token is None:
            try:
                return await asyncio.wait_for(request, timeout)
            except asyncio.TimeoutError as e:
                raise GenerationTimeout(f"no response within {timeout}s") from e

        cancelled = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {request, cancelled}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancelled.cancel()

        if request not in done:
            request.cancel()
            reason = "cancelled" if cancel_token.is_set() else f"no response within {timeout}s"
            raise GenerationTimeout(reason)
        return request.result()

    # =========================================================================
    # Checks
    # =========================================================================

    def check(self, candidate: CandidateContent, signatures: TextSignatures | None = None) -> GateDecision:
        """Decide whether a candidate is new enough to accept."""
        signatures = signatures or self.detector.signatures(candidate.text)

        for kind, value in (
            (SignatureKind.TEXT, signatures.normalized),
            (SignatureKind.STRUCTURAL, signatures.structural),
            (SignatureKind.FINGERPRINT, signatures.fingerprint),
        ):
            if not value:
                continue
            if value in self._batch[kind]:
                return GateDecision(False, f"{kind.value} seen in batch")
            if self.store.has_signature(value, kind):
                return GateDecision(False, f"{kind.value} seen in store")

        if self.store.has_similar_embedding(self._embedding(candidate), self.config.embedding_threshold):
            return GateDecision(False, "similar embedding in store")

        for existing in self._recent:
            if self.detector.is_duplicate(existing, candidate.text):
                return GateDecision(False, "duplicate of a recent item")

        return GateDecision(True)

    def _embedding(self, candidate: CandidateContent) -> list[float]:
        if candidate.embedding:
            return candidate.embedding
        return self.detector.text_embedding(candidate.text).tolist()

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    def _record(self, candidate: CandidateContent, signatures: TextSignatures) -> None:
        entries = {
            SignatureKind.TEXT: signatures.normalized,
            SignatureKind.STRUCTURAL: signatures.structural,
            SignatureKind.FINGERPRINT: signatures.fingerprint,
        }
        for kind, value in entries.items():
            if value:
                self._batch[kind].add(value)
                self.store.add_signatures([value], kind)
        self.store.add_embeddings([self._embedding(candidate)])
        self._recent.append(candidate.text)

    def _accept_fallback(self, topic: str, difficulty_tier: DifficultyTier) -> CandidateContent:
        """
        Build a fallback item whose exact text has never been accepted.

        Only the normalized text is required to be new here; structural
        collisions are tolerated so the gate always makes progress.
        """
        candidate = self.fallback.generate(topic, difficulty_tier)
        base_text = candidate.text
        variant = 0
        signatures = self.detector.signatures(candidate.text)
        while signatures.normalized in self._batch[SignatureKind.TEXT] or self.store.has_signature(
            signatures.normalized, SignatureKind.TEXT
        ):
            variant += 1
            candidate.text = f"{base_text} (variant {variant})"
            signatures = self.detector.signatures(candidate.text)

        candidate.source = "fallback"
        self._record(candidate, signatures)
        logger.info(f"Fallback item for {topic!r} accepted" + (f" as variant {variant}" if variant else ""))
        return candidate

    async def close(self) -> None:
        """Release the generation backend (the canonical store needs no closing)."""
        await self.backend.close()

    def reset_batch(self) -> None:
        """Forget the current batch (the canonical store is kept)."""
        for kind in SignatureKind:
            self._batch[kind].clear()
