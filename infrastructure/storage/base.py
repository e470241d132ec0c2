"""Helpers shared by the vector index backends."""
from __future__ import annotations

import functools
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

from domain.entities import VectorHit, VectorRecord
from domain.errors import ValidationError
from domain.similarity import cosine_similarity, matches_filter

_Method = TypeVar("_Method", bound=Callable[..., Any])


def synchronized(method: _Method) -> _Method:
    """Run an index method while holding the instance's ``_lock``."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def check_dimensions(records: Sequence[VectorRecord], dimension: int, collection: str) -> None:
    for record in records:
        if len(record.vector) != dimension:
            raise ValidationError(
                f"Vector for '{record.id}' has dimension {len(record.vector)}, "
                f"collection '{collection}' expects {dimension}."
            )


def check_query_vector(query_vector: Sequence[float], dimension: int, collection: str) -> None:
    if len(query_vector) != dimension:
        raise ValidationError(
            f"Query vector has dimension {len(query_vector)}, "
            f"collection '{collection}' expects {dimension}."
        )


def rank_exhaustive(
    records: Iterable[VectorRecord],
    query_vector: Sequence[float],
    k: int,
    where: Mapping[str, Any] | None = None,
) -> list[VectorHit]:
    """Score every record in insertion order; ``sorted`` keeps ties stable."""
    if k <= 0:
        return []
    scored = [
        VectorHit(
            id=record.id,
            score=cosine_similarity(query_vector, record.vector),
            text=record.text,
            metadata=dict(record.metadata),
        )
        for record in records
        if matches_filter(record.metadata, where)
    ]
    scored.sort(key=lambda hit: hit.score, reverse=True)
    return scored[:k]


__all__ = ["check_dimensions", "check_query_vector", "rank_exhaustive", "synchronized"]
