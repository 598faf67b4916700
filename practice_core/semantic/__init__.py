"""
Semantic: duplicate detection for generated practice items.

Components:
- DuplicateDetector: normalization, structural signatures, fingerprints, similarity
- CanonicalSignatureStore: cross-session registry of accepted signatures
"""

from .duplicate_detector import DuplicateDetector, TextSignatures, levenshtein
from .signature_store import CanonicalSignatureStore, SignatureKind

__all__ = [
    "DuplicateDetector",
    "TextSignatures",
    "levenshtein",
    "CanonicalSignatureStore",
    "SignatureKind",
]
