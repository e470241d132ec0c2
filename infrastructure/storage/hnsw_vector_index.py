"""ANN vector index on top of hnswlib."""
from __future__ import annotations

import json
import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import hnswlib
import numpy as np

from domain.entities import VectorHit, VectorRecord
from domain.errors import ValidationError
from domain.interfaces import VectorIndex
from domain.similarity import matches_filter
from infrastructure.storage.base import check_dimensions, check_query_vector, rank_exhaustive, synchronized

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HnswParams:
    max_elements: int = 10_000
    ef_construction: int = 200
    ef_search: int = 50
    M: int = 16


@dataclass(slots=True)
class _Entry:
    label: int
    seq: int
    text: str
    metadata: dict[str, Any]


class HnswVectorIndex(VectorIndex):
    """Stores one collection in an hnswlib index plus a JSON sidecar.

    hnswlib keeps only vectors and integer labels, so ids, text and metadata
    live in ``records.json`` next to ``index.bin``. Upserts and deletes use
    ``mark_deleted`` so stale labels never come back from a query.
    """

    def __init__(
        self,
        name: str,
        dimension: int,
        *,
        index_root: str | Path = "indexes",
        params: HnswParams | None = None,
    ) -> None:
        self.name = name
        self.dimension = dimension
        self._params = params or HnswParams()
        self._dir = Path(index_root) / name
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "index.bin"
        self._meta_path = self._dir / "records.json"
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._next_label = 0
        self._next_seq = 0
        self._index = self._load_or_create_index()

    def _load_or_create_index(self) -> hnswlib.Index:
        index = hnswlib.Index(space="cosine", dim=self.dimension)
        if self._index_path.exists() and self._meta_path.exists():
            stored = json.loads(self._meta_path.read_text(encoding="utf-8"))
            if stored.get("dimension") != self.dimension:
                raise ValidationError(f"HNSW collection '{self.name}' dimension mismatch.")
            logger.info("Loading HNSW index %s", self._index_path)
            index.load_index(str(self._index_path), max_elements=int(stored["max_elements"]))
            self._next_label = int(stored["next_label"])
            self._next_seq = int(stored["next_seq"])
            self._entries = {
                record_id: _Entry(
                    label=int(entry["label"]),
                    seq=int(entry["seq"]),
                    text=entry["text"],
                    metadata=entry["metadata"],
                )
                for record_id, entry in stored["records"].items()
            }
        else:
            index.init_index(
                max_elements=self._params.max_elements,
                ef_construction=self._params.ef_construction,
                M=self._params.M,
            )
        index.set_ef(self._params.ef_search)
        return index

    def _save(self) -> None:
        self._index.save_index(str(self._index_path))
        payload = {
            "dimension": self.dimension,
            "max_elements": self._index.get_max_elements(),
            "next_label": self._next_label,
            "next_seq": self._next_seq,
            "records": {
                record_id: {
                    "label": entry.label,
                    "seq": entry.seq,
                    "text": entry.text,
                    "metadata": entry.metadata,
                }
                for record_id, entry in self._entries.items()
            },
        }
        self._meta_path.write_text(json.dumps(payload), encoding="utf-8")

    def _ensure_capacity(self, extra: int) -> None:
        # Labels are never reused, so capacity tracks allocated labels.
        needed = self._next_label + extra
        capacity = self._index.get_max_elements()
        if needed > capacity:
            new_capacity = max(needed, capacity * 2)
            logger.debug("Resizing HNSW index %s to %d elements", self.name, new_capacity)
            self._index.resize_index(new_capacity)

    @synchronized
    def insert(self, records: Sequence[VectorRecord]) -> None:
        check_dimensions(records, self.dimension, self.name)
        if not records:
            return
        records = list({record.id: record for record in records}.values())
        self._ensure_capacity(len(records))
        labels: list[int] = []
        for record in records:
            previous = self._entries.get(record.id)
            if previous is not None:
                self._index.mark_deleted(previous.label)
            seq = previous.seq if previous is not None else self._next_seq
            if previous is None:
                self._next_seq += 1
            label = self._next_label
            self._next_label += 1
            self._entries[record.id] = _Entry(
                label=label,
                seq=seq,
                text=record.text,
                metadata=dict(record.metadata),
            )
            labels.append(label)
        vectors = np.array([record.vector for record in records], dtype="float32")
        self._index.add_items(vectors, np.array(labels, dtype="int64"))
        self._save()

    @synchronized
    def delete(self, ids: Sequence[str]) -> None:
        removed = False
        for record_id in ids:
            entry = self._entries.pop(record_id, None)
            if entry is None:
                continue
            self._index.mark_deleted(entry.label)
            removed = True
        if removed:
            self._save()

    @synchronized
    def fetch(self, ids: Sequence[str]) -> list[VectorRecord]:
        present = [(record_id, self._entries[record_id]) for record_id in ids if record_id in self._entries]
        if not present:
            return []
        vectors = self._index.get_items([entry.label for _, entry in present])
        return [
            VectorRecord(
                id=record_id,
                vector=[float(value) for value in vector],
                text=entry.text,
                metadata=dict(entry.metadata),
            )
            for (record_id, entry), vector in zip(present, vectors)
        ]

    @synchronized
    def query(
        self,
        query_vector: Sequence[float],
        k: int,
        where: Mapping[str, Any] | None = None,
    ) -> list[VectorHit]:
        check_query_vector(query_vector, self.dimension, self.name)
        candidates = {
            entry.label: (record_id, entry)
            for record_id, entry in self._entries.items()
            if matches_filter(entry.metadata, where)
        }
        top_k = min(k, len(candidates))
        if top_k <= 0:
            return []
        vector = np.array([query_vector], dtype="float32")
        if not np.any(vector):
            return self._exhaustive(list(candidates.values()), query_vector, top_k)
        self._index.set_ef(max(self._params.ef_search, top_k))
        try:
            labels, distances = self._index.knn_query(
                vector,
                k=top_k,
                filter=lambda label: label in candidates,
            )
        except RuntimeError:
            logger.debug("HNSW query on %s returned too few neighbours, scanning instead", self.name)
            return self._exhaustive(list(candidates.values()), query_vector, top_k)

        hits: list[tuple[int, VectorHit]] = []
        for label, distance in zip(labels[0].tolist(), distances[0].tolist()):
            record_id, entry = candidates[int(label)]
            hits.append(
                (
                    entry.seq,
                    VectorHit(
                        id=record_id,
                        score=1.0 - float(distance),
                        text=entry.text,
                        metadata=dict(entry.metadata),
                    ),
                )
            )
        hits.sort(key=lambda item: (-item[1].score, item[0]))
        return [hit for _, hit in hits]

    def _exhaustive(
        self,
        candidates: list[tuple[str, _Entry]],
        query_vector: Sequence[float],
        k: int,
    ) -> list[VectorHit]:
        candidates.sort(key=lambda item: item[1].seq)
        records = self.fetch([record_id for record_id, _ in candidates])
        return rank_exhaustive(records, query_vector, k)

    @synchronized
    def count(self) -> int:
        return len(self._entries)

    @synchronized
    def drop(self) -> None:
        self._entries.clear()
        shutil.rmtree(self._dir, ignore_errors=True)


__all__ = ["HnswParams", "HnswVectorIndex"]
