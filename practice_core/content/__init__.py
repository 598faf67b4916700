"""
Content: the practice item pool and the duplicate-resistant generation path.

Components:
- ContentPool: registered items and their per-item selection state
- ContentGenerationClient: HTTP client for the external generation backend
- LocalFallbackGenerator: seeded template generator
- ContentGate: duplicate gate with bounded retries and deterministic fallback
"""

from .gate import ContentGate, GateDecision
from .generator import CandidateContent, ContentGenerationClient, GenerationBackend, LocalFallbackGenerator
from .pool import ContentPool, PracticeItem, QuestionPoolEntry

__all__ = [
    # Pool
    "ContentPool",
    "PracticeItem",
    "QuestionPoolEntry",
    # Generation
    "CandidateContent",
    "ContentGenerationClient",
    "GenerationBackend",
    "LocalFallbackGenerator",
    # Gate
    "ContentGate",
    "GateDecision",
]
