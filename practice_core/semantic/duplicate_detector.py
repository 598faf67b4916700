"""
Duplicate Detector - text-level duplicate detection for generated items.

Three complementary views of a text are compared:
- Normalized text: punctuation stripped, whitespace collapsed, lowercased
- Structural signature: numbers and names abstracted, so "same template,
  different numbers/names" variants collide
- Token fingerprint: order-insensitive digest of the token multiset, so
  reordered restatements collide

Plus a Levenshtein similarity ratio for near-identical wording and an
exact numeric-sequence check (reusing every number verbatim is always a
duplicate, whatever the wording).

Precedence: exact signature matches (normalized text, structural signature,
fingerprint) are decided first by the ContentGate; is_duplicate() then checks
the numeric sequence before falling back to the similarity ratio.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

import numpy as np
from rapidfuzz.distance import Levenshtein

NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")
NAME_PATTERN = re.compile(r"\b[A-Z][a-z]{1,10}\b")
PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")
WHITESPACE_PATTERN = re.compile(r"\s+")

EMBEDDING_DIMENSIONS = 64


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert/delete/substitute = 1)."""
    return Levenshtein.distance(a or "", b or "")


@dataclass(frozen=True)
class TextSignatures:
    """All comparison keys of one text, computed once."""

    text: str
    normalized: str
    structural: str
    fingerprint: str
    numbers: tuple[str, ...]


class DuplicateDetector:
    """
    Detect duplicate practice items by text.

    Example:
        >>> detector = DuplicateDetector()
        >>> a = "A car travels at 50 mph for 2 hours"
        >>> b = "A car travels at 73 mph for 4 hours"
        >>> detector.structural_signature(a) == detector.structural_signature(b)
        True
    """

    DEFAULT_THRESHOLD = 0.65

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        """
        Initialize the detector.

        Args:
            threshold: Similarity ratio at or above which texts are duplicates
        """
        self.threshold = threshold

    # =========================================================================
    # Text Views
    # =========================================================================

    @staticmethod
    def normalize(text: str) -> str:
        """Strip punctuation, collapse whitespace and lowercase."""
        stripped = PUNCTUATION_PATTERN.sub("", text or "")
        return WHITESPACE_PATTERN.sub(" ", stripped).strip().lower()

    @staticmethod
    def extract_numbers(text: str) -> list[str]:
        """Numeric literals in order of appearance."""
        return NUMBER_PATTERN.findall(text or "")

    @classmethod
    def structural_signature(cls, text: str) -> str:
        """
        Abstract numbers and capitalized name-like tokens, then normalize.

        "Ava sold 12 apples" and "Noah sold 40 apples" share the signature
        "name sold num apples".
        """
        if not text:
            return ""
        abstracted = NUMBER_PATTERN.sub("NUM", text)
        abstracted = NAME_PATTERN.sub("NAME", abstracted)
        return cls.normalize(abstracted)

    @classmethod
    def token_fingerprint(cls, text: str, max_tokens: int = 100) -> str:
        """
        Order-insensitive digest of the normalized token multiset.

        Args:
            text: Source text
            max_tokens: Distinct tokens (alphabetical) included in the digest
        """
        counts: dict[str, int] = {}
        for token in cls.normalize(text).split():
            counts[token] = counts.get(token, 0) + 1
        parts = [f"{token}:{counts[token]}" for token in sorted(counts)[:max_tokens]]
        return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()

    @classmethod
    def signatures(cls, text: str) -> TextSignatures:
        """Compute every comparison key for a text."""
        return TextSignatures(
            text=text,
            normalized=cls.normalize(text),
            structural=cls.structural_signature(text),
            fingerprint=cls.token_fingerprint(text),
            numbers=tuple(cls.extract_numbers(text)),
        )

    # =========================================================================
    # Similarity
    # =========================================================================

    @staticmethod
    def similarity(a: str, b: str) -> float:
        """
        Levenshtein similarity ratio, case-insensitive.

        Returns:
            1 - distance / max(len(a), len(b)); 0.0 if either text is empty
        """
        if not a or not b:
            return 0.0
        return Levenshtein.normalized_similarity(a.lower(), b.lower())

    def is_duplicate(self, existing: str, candidate: str, threshold: float | None = None) -> bool:
        """
        Check whether a candidate duplicates an existing text.

        Args:
            existing: Previously accepted text
            candidate: Newly generated text
            threshold: Similarity threshold (detector default if None)

        Returns:
            True if both reuse the same non-empty number sequence, or if the
            normalized texts are at least `threshold` similar
        """
        threshold = self.threshold if threshold is None else threshold

        existing_numbers = self.extract_numbers(existing)
        if existing_numbers and existing_numbers == self.extract_numbers(candidate):
            return True

        return self.similarity(self.normalize(existing), self.normalize(candidate)) >= threshold

    # =========================================================================
    # Embeddings
    # =========================================================================

    @classmethod
    def text_embedding(cls, text: str, dimensions: int = EMBEDDING_DIMENSIONS) -> np.ndarray:
        """
        Deterministic hashed bag-of-tokens vector.

        Used when the generation backend does not supply an embedding. Each
        normalized token increments one bucket chosen by a stable hash, so
        the vector is identical across processes.
        """
        vector = np.zeros(dimensions, dtype=np.float32)
        for token in cls.normalize(text).split():
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimensions
            vector[bucket] += 1.0
        return vector

    @staticmethod
    def cosine_similarity(a: np.ndarray | list[float], b: np.ndarray | list[float]) -> float:
        """Cosine similarity of two vectors (0.0 if either is zero or sizes differ)."""
        vec_a = np.asarray(a, dtype=np.float32)
        vec_b = np.asarray(b, dtype=np.float32)
        if vec_a.shape != vec_b.shape:
            return 0.0

        norm_a = np.linalg.norm(vec_a)
        norm_b = np.linalg.norm(vec_b)
        if norm_a == 0 or norm_b == 0:
            return 0.0

        return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
