"""Similarity and metadata matching helpers used by every index backend."""
from __future__ import annotations

import math
from typing import Any, Mapping, Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return dot(a, b) / (|a| * |b|), or 0.0 when either norm is zero."""
    if len(a) != len(b):
        raise ValueError("Vectors must have the same dimension.")
    numerator = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return numerator / (norm_a * norm_b)


def matches_filter(metadata: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    """Exact match per key; list/tuple/set filter values mean membership."""
    if not where:
        return True
    for key, expected in where.items():
        if expected is None:
            continue
        actual = metadata.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


__all__ = ["cosine_similarity", "matches_filter"]
