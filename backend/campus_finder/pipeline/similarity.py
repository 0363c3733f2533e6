"""Similarity measures used by the match strategies."""

from __future__ import annotations

import math
from typing import Sequence

from ..utils.text import keyword_set


def cosine_similarity(vec_a: Sequence[float] | None, vec_b: Sequence[float] | None) -> float:
    """Cosine of the angle between two vectors.

    Returns 0.0 when either vector is missing or empty, when the lengths
    differ, or when either has zero norm.
    """
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0
    dot = norm_a = norm_b = 0.0
    for a, b in zip(vec_a, vec_b):
        dot += a * b
        norm_a += a * a
        norm_b += b * b
    if norm_a == 0 or norm_b == 0:
        return 0.0
    sim = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # Clamp float drift just outside the valid range
    return max(-1.0, min(1.0, sim))


def keyword_overlap(text_a: str | None, text_b: str | None) -> float:
    """Shared-word ratio ``|common| / max(|A|, |B|)`` over words longer than two letters."""
    words_a = keyword_set(text_a)
    words_b = keyword_set(text_b)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


__all__ = ["cosine_similarity", "keyword_overlap"]
