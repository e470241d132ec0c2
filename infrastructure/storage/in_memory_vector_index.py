"""Brute-force vector index kept in process memory."""
from __future__ import annotations

import threading
from typing import Any, Mapping, Sequence

from domain.entities import VectorHit, VectorRecord
from domain.interfaces import VectorIndex
from infrastructure.storage.base import check_dimensions, check_query_vector, rank_exhaustive, synchronized


class InMemoryVectorIndex(VectorIndex):
    """Stores records in an insertion-ordered dict and searches by full scan.

    Used for session collections, which must not survive a restart.
    """

    def __init__(self, name: str, dimension: int) -> None:
        self.name = name
        self.dimension = dimension
        self._lock = threading.Lock()
        self._records: dict[str, VectorRecord] = {}

    @synchronized
    def insert(self, records: Sequence[VectorRecord]) -> None:
        check_dimensions(records, self.dimension, self.name)
        for record in records:
            self._records[record.id] = VectorRecord(
                id=record.id,
                vector=list(record.vector),
                text=record.text,
                metadata=dict(record.metadata),
            )

    @synchronized
    def delete(self, ids: Sequence[str]) -> None:
        for record_id in ids:
            self._records.pop(record_id, None)

    @synchronized
    def fetch(self, ids: Sequence[str]) -> list[VectorRecord]:
        return [self._records[record_id] for record_id in ids if record_id in self._records]

    @synchronized
    def query(
        self,
        query_vector: Sequence[float],
        k: int,
        where: Mapping[str, Any] | None = None,
    ) -> list[VectorHit]:
        check_query_vector(query_vector, self.dimension, self.name)
        return rank_exhaustive(list(self._records.values()), query_vector, k, where)

    @synchronized
    def count(self) -> int:
        return len(self._records)

    @synchronized
    def drop(self) -> None:
        self._records.clear()


__all__ = ["InMemoryVectorIndex"]
