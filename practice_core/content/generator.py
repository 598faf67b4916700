"""
Content generation backends.

The remote backend is an opaque HTTP service that returns candidate item
text; the local generator builds varied word problems from small templates
and is used whenever no endpoint is configured or the remote call fails its
deadline. Neither backend decides uniqueness: every candidate goes through
the ContentGate.
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from loguru import logger

from practice_core.core.errors import GenerationTimeout
from practice_core.core.tiers import DifficultyTier

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class CandidateContent:
    """Raw candidate returned by a generation backend."""

    text: str
    answer: str = ""
    explanation: str = ""
    topic: str = ""
    difficulty_tier: DifficultyTier = DifficultyTier.EASY
    embedding: list[float] | None = None
    formula_id: str = ""
    source: str = "remote"  # remote | local | fallback

    @classmethod
    def from_response(
        cls, data: Any, topic: str, difficulty_tier: DifficultyTier
    ) -> CandidateContent:
        """
        Parse a backend response.

        Accepts a JSON object, a JSON string, or an object whose "text" field
        holds a JSON string. The item text may be keyed "text" or "problem".

        Raises:
            ValueError: If no item text can be found
        """
        if isinstance(data, str):
            data = json.loads(data)
        if isinstance(data, dict) and isinstance(data.get("text"), str) and data["text"].lstrip().startswith("{"):
            data = json.loads(data["text"])
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected generation response type: {type(data).__name__}")

        text = data.get("text") or data.get("problem")
        if not text:
            raise ValueError("Generation response has no item text")

        embedding = data.get("embedding")
        return cls(
            text=str(text),
            answer=str(data.get("answer", "")),
            explanation=str(data.get("explanation", "")),
            topic=topic,
            difficulty_tier=difficulty_tier,
            embedding=[float(x) for x in embedding] if isinstance(embedding, list) else None,
            formula_id=str(data.get("formula_id", data.get("formulaId", ""))),
            source="remote",
        )


class GenerationBackend(Protocol):
    """Anything that can supply a candidate item."""

    async def request_candidate(
        self, topic: str, difficulty_tier: DifficultyTier, exclusion_hints: list[str]
    ) -> CandidateContent: ...

    async def close(self) -> None: ...


# =============================================================================
# Remote Backend
# =============================================================================


class ContentGenerationClient:
    """HTTP client for an external item-generation service."""

    def __init__(self, endpoint: str, timeout_seconds: float = 20.0):
        """
        Initialize the client.

        Args:
            endpoint: URL accepting a JSON POST and returning a candidate
            timeout_seconds: Transport timeout for a single request
        """
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def request_candidate(
        self, topic: str, difficulty_tier: DifficultyTier, exclusion_hints: list[str]
    ) -> CandidateContent:
        """
        Request one candidate item.

        Args:
            topic: Subject to generate for
            difficulty_tier: Requested tier
            exclusion_hints: Recently accepted or rejected texts to steer away from

        Returns:
            Parsed candidate

        Raises:
            GenerationTimeout: If the service does not answer in time
            httpx.HTTPError: On other communication failures
            ValueError: If the response carries no usable item
        """
        payload = {
            "topic": topic,
            "difficulty": difficulty_tier.value,
            "exclusion_hints": exclusion_hints,
        }
        try:
            response = await self.client.post(self.endpoint, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"Generation request for {topic!r} timed out after {self.timeout_seconds}s")
            raise GenerationTimeout(str(e)) from e

        return CandidateContent.from_response(response.json(), topic, difficulty_tier)


# =============================================================================
# Local Backend
# =============================================================================


NAMES = ["Ava", "Noah", "Liam", "Olivia", "Ethan", "Mia", "Lucas", "Emma", "Isabella", "Jacob"]
PLACES = ["farm", "bakery", "factory", "store", "park", "construction site", "classroom", "garage"]
ACTIONS = ["sold", "collected", "delivered", "bought", "assembled", "measured"]


class LocalFallbackGenerator:
    """
    Template-based word problem generator.

    Deterministic for a given seed: the same seed yields the same sequence
    of candidates, which keeps the fallback path reproducible in tests.
    """

    def __init__(self, seed: int | None = None, rng: random.Random | None = None):
        self.rng = rng or random.Random(seed)

    def generate(self, topic: str, difficulty_tier: DifficultyTier = DifficultyTier.EASY) -> CandidateContent:
        """Build one candidate for a topic ("AR", "MK", anything else is mixed)."""
        rng = self.rng
        name = rng.choice(NAMES)
        place = rng.choice(PLACES)
        action = rng.choice(ACTIONS)

        scale = difficulty_tier.weight
        a = rng.randint(5, 94) * scale
        b = rng.randint(1, 9)

        if topic == "AR":
            text = (
                f"{name} {action} {a * b} items at a {place}. If each batch contains {b} items, "
                f"how many batches did {name} handle?"
            )
            answer = str(a)
            explanation = f"Divide total items ({a * b}) by items per batch ({b}) to get {a}."
            formula_id = "division_batches"
        elif topic == "MK":
            c = rng.randint(2, 21)
            text = (
                f"{name} needs to fit {a * b} meters of wire into rolls of length {c} meters. "
                f"How many full rolls can {name} make?"
            )
            answer = str((a * b) // c)
            explanation = f"Divide total wire {a * b} by {c} and take the floor for full rolls."
            formula_id = "division_floor"
        else:
            x = rng.randint(1, 30)
            text = (
                f"{name} went to the {place} and {action} {a} items. Later, {name} gave {b} of them "
                f"to a friend and {x} were returned. How many does {name} have now?"
            )
            answer = str(a - b + x)
            explanation = f"Start with {a}. After giving away {b}: {a - b}. After {x} returned: {a - b + x}."
            formula_id = "add_subtract"

        return CandidateContent(
            text=text,
            answer=answer,
            explanation=explanation,
            topic=topic,
            difficulty_tier=difficulty_tier,
            formula_id=formula_id,
            source="local",
        )

    async def request_candidate(
        self, topic: str, difficulty_tier: DifficultyTier, exclusion_hints: list[str] | None = None
    ) -> CandidateContent:
        return self.generate(topic, difficulty_tier)

    async def close(self) -> None:
        """Nothing to release."""
