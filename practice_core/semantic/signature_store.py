"""
Canonical Signature Store - cross-session registry of accepted content.

Holds every structural signature, token fingerprint and normalized text the
ContentGate has accepted, plus the embedding vectors of accepted items, so a
candidate can be rejected even when its twin was accepted in an earlier
session or on another device.

File layout (JSON):
    {"structural": [...], "fingerprint": [...], "text": [...], "embeddings": [[...], ...]}

A legacy file holding a plain array is read as the structural set.

The store fails open: if the file cannot be read it behaves as empty, and if
it cannot be written the accepted item is still delivered. Writes are set
unions merged with whatever is on disk, so repeating them is harmless.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np
from loguru import logger

from practice_core.core.errors import SignatureStoreUnavailable
from practice_core.semantic.duplicate_detector import DuplicateDetector


class SignatureKind(str, Enum):
    """Kinds of exact-match signatures kept by the store."""

    STRUCTURAL = "structural"
    FINGERPRINT = "fingerprint"
    TEXT = "text"


class CanonicalSignatureStore:
    """
    JSON-file backed signature and embedding registry.

    Example:
        >>> store = CanonicalSignatureStore(Path("db/unique_signatures.json"))
        >>> store.add_signatures(["name sold num apples"], SignatureKind.STRUCTURAL)
        >>> store.has_signature("name sold num apples", SignatureKind.STRUCTURAL)
        True
    """

    DEFAULT_THRESHOLD = 0.92

    def __init__(self, path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            path: Backing JSON file (None keeps the store in memory only)
        """
        self.path = Path(path).expanduser() if path else None
        self._signatures: dict[SignatureKind, set[str]] = {kind: set() for kind in SignatureKind}
        self._embeddings: list[list[float]] = []
        self._loaded = False

    # =========================================================================
    # Queries
    # =========================================================================

    def has_signature(self, signature: str, kind: SignatureKind | str) -> bool:
        """Check whether a signature of the given kind was accepted before."""
        if not signature:
            return False
        self._ensure_loaded()
        return signature in self._signatures[SignatureKind(kind)]

    def has_similar_embedding(
        self, vector: np.ndarray | list[float], threshold: float = DEFAULT_THRESHOLD
    ) -> bool:
        """
        Check whether any stored embedding is at least `threshold` cosine-similar.

        Vectors of a different dimension are never similar.
        """
        self._ensure_loaded()
        for stored in self._embeddings:
            if DuplicateDetector.cosine_similarity(stored, vector) >= threshold:
                return True
        return False

    def count(self, kind: SignatureKind | str) -> int:
        self._ensure_loaded()
        return len(self._signatures[SignatureKind(kind)])

    @property
    def embedding_count(self) -> int:
        self._ensure_loaded()
        return len(self._embeddings)

    # =========================================================================
    # Writes
    # =========================================================================

    def add_signatures(self, signatures: list[str], kind: SignatureKind | str) -> None:
        """Union signatures of one kind into the store."""
        self._ensure_loaded()
        new = {s for s in signatures if s} - self._signatures[SignatureKind(kind)]
        if not new:
            return
        self._signatures[SignatureKind(kind)] |= new
        self._persist()

    def add_embeddings(self, vectors: list[np.ndarray | list[float]]) -> None:
        """Append embeddings not already stored verbatim."""
        self._ensure_loaded()
        added = False
        for vector in vectors:
            as_list = [float(x) for x in np.asarray(vector, dtype=np.float32).tolist()]
            if as_list and as_list not in self._embeddings:
                self._embeddings.append(as_list)
                added = True
        if added:
            self._persist()

    # =========================================================================
    # File I/O
    # =========================================================================

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self.path is None:
            return
        try:
            self._merge(self._read())
        except SignatureStoreUnavailable as e:
            logger.warning(f"Signature store unavailable, treating as empty: {e}")

    def _read(self) -> dict[str, Any]:
        """
        Read the backing file.

        Raises:
            SignatureStoreUnavailable: If the file exists but cannot be parsed
        """
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SignatureStoreUnavailable(f"{self.path}: {e}") from e

        if isinstance(data, list):
            logger.info(f"Migrating legacy signature list in {self.path}")
            return {SignatureKind.STRUCTURAL.value: data}
        if not isinstance(data, dict):
            raise SignatureStoreUnavailable(f"{self.path}: unexpected document type {type(data).__name__}")
        return data

    def _merge(self, data: dict[str, Any]) -> None:
        for kind in SignatureKind:
            self._signatures[kind] |= {str(s) for s in data.get(kind.value, []) if s}
        for vector in data.get("embeddings", []):
            if isinstance(vector, list) and vector and vector not in self._embeddings:
                self._embeddings.append([float(x) for x in vector])

    def _persist(self) -> None:
        """Merge with the file on disk and write back; failures are logged only."""
        if self.path is None:
            return
        try:
            self._merge(self._read())
            self.path.parent.mkdir(parents=True, exist_ok=True)
            document = {kind.value: sorted(self._signatures[kind]) for kind in SignatureKind}
            document["embeddings"] = self._embeddings
            self.path.write_text(json.dumps(document), encoding="utf-8")
        except (SignatureStoreUnavailable, OSError) as e:
            logger.warning(f"Could not persist signature store: {e}")
