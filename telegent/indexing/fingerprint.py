"""
Telegent — Fingerprint Generator
Deterministic bag-of-buckets text fingerprints for recency/relevance lookup.

This is a cheap locality-sensitive surrogate, not a learned embedding:
- Free (no API calls, works offline)
- Deterministic (same text + same dimensions → bit-identical vector)
- Texts sharing words share buckets, so cosine similarity tracks word overlap
"""
import hashlib
from typing import List, Sequence

import numpy as np


DEFAULT_DIMENSIONS = 1536


def _stable_hash(token: str) -> int:
    """Process-independent string hash (builtin hash() is salted per process)."""
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


class FingerprintGenerator:
    """
    Map text to a fixed-length, L2-normalised float vector.

    Each distinct lower-cased whitespace token adds 1.0 to bucket
    hash(token) % dimensions. Collisions fold together.
    """

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS):
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self.dimensions = dimensions

    def fingerprint(self, text: str) -> List[float]:
        vec = np.zeros(self.dimensions, dtype=np.float64)
        for token in set((text or "").lower().split()):
            vec[_stable_hash(token) % self.dimensions] += 1.0
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec = vec / norm
        return vec.tolist()

    async def fingerprint_async(self, text: str) -> List[float]:
        """Coroutine form so callers can gather it alongside I/O."""
        return self.fingerprint(text)

    def similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector is zero or lengths differ."""
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    a_arr = np.asarray(a, dtype=np.float64)
    b_arr = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / (norm_a * norm_b))
