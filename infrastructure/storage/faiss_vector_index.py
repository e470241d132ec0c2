"""FAISS-based vector index with persistence per collection."""
from __future__ import annotations

import json
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import faiss
import numpy as np

from domain.entities import VectorHit, VectorRecord
from domain.errors import ValidationError
from domain.interfaces import VectorIndex
from domain.similarity import matches_filter
from infrastructure.storage.base import check_dimensions, check_query_vector, synchronized


@dataclass(slots=True)
class _Entry:
    label: int
    seq: int
    text: str
    metadata: dict[str, Any]


class FaissVectorIndex(VectorIndex):
    """Exact inner-product search over L2-normalised vectors.

    Stored vectors are normalised, so ``fetch`` returns unit vectors.
    """

    def __init__(self, name: str, dimension: int, *, index_root: str | Path = "indexes") -> None:
        self.name = name
        self.dimension = dimension
        self._dir = Path(index_root) / name
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "faiss.index"
        self._meta_path = self._dir / "records.json"
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._next_label = 0
        self._next_seq = 0
        self._index = self._load_or_create_index()

    def _load_or_create_index(self) -> faiss.IndexIDMap2:
        if self._meta_path.exists() and self._index_path.exists():
            stored = json.loads(self._meta_path.read_text(encoding="utf-8"))
            if stored.get("dimension") != self.dimension:
                raise ValidationError(f"FAISS collection '{self.name}' dimension mismatch.")
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
            index = faiss.read_index(str(self._index_path))
            if not isinstance(index, faiss.IndexIDMap2):
                index = faiss.IndexIDMap2(index)
            return index
        return faiss.IndexIDMap2(faiss.IndexFlatIP(self.dimension))

    def _persist(self) -> None:
        faiss.write_index(self._index, str(self._index_path))
        payload = {
            "dimension": self.dimension,
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

    @synchronized
    def insert(self, records: Sequence[VectorRecord]) -> None:
        check_dimensions(records, self.dimension, self.name)
        if not records:
            return
        records = list({record.id: record for record in records}.values())

        replaced = [self._entries[record.id].label for record in records if record.id in self._entries]
        if replaced:
            self._index.remove_ids(np.array(replaced, dtype="int64"))

        labels: list[int] = []
        for record in records:
            previous = self._entries.get(record.id)
            if previous is None:
                seq = self._next_seq
                self._next_seq += 1
            else:
                seq = previous.seq
            label = self._next_label
            self._next_label += 1
            self._entries[record.id] = _Entry(label=label, seq=seq, text=record.text, metadata=dict(record.metadata))
            labels.append(label)

        vectors = np.array([record.vector for record in records], dtype="float32")
        faiss.normalize_L2(vectors)
        self._index.add_with_ids(vectors, np.array(labels, dtype="int64"))
        self._persist()

    @synchronized
    def delete(self, ids: Sequence[str]) -> None:
        labels = [self._entries.pop(record_id).label for record_id in ids if record_id in self._entries]
        if not labels:
            return
        self._index.remove_ids(np.array(labels, dtype="int64"))
        self._persist()

    @synchronized
    def fetch(self, ids: Sequence[str]) -> list[VectorRecord]:
        records: list[VectorRecord] = []
        for record_id in ids:
            entry = self._entries.get(record_id)
            if entry is None:
                continue
            vector = self._index.reconstruct(entry.label)
            records.append(
                VectorRecord(
                    id=record_id,
                    vector=[float(value) for value in vector],
                    text=entry.text,
                    metadata=dict(entry.metadata),
                )
            )
        return records

    @synchronized
    def query(
        self,
        query_vector: Sequence[float],
        k: int,
        where: Mapping[str, Any] | None = None,
    ) -> list[VectorHit]:
        check_query_vector(query_vector, self.dimension, self.name)
        if k <= 0 or self._index.ntotal == 0:
            return []
        by_label = {
            entry.label: (record_id, entry)
            for record_id, entry in self._entries.items()
            if matches_filter(entry.metadata, where)
        }
        if not by_label:
            return []
        vector = np.array([query_vector], dtype="float32")
        faiss.normalize_L2(vector)
        # Flat index: scoring everything keeps the filter ahead of the top-k cut.
        scores, labels = self._index.search(vector, int(self._index.ntotal))
        ranked: list[tuple[float, int, str, _Entry]] = []
        for score, label in zip(scores[0].tolist(), labels[0].tolist()):
            if label < 0 or label not in by_label:
                continue
            record_id, entry = by_label[label]
            ranked.append((float(score), entry.seq, record_id, entry))
        ranked.sort(key=lambda item: (-item[0], item[1]))
        return [
            VectorHit(id=record_id, score=score, text=entry.text, metadata=dict(entry.metadata))
            for score, _, record_id, entry in ranked[:k]
        ]

    @synchronized
    def count(self) -> int:
        return len(self._entries)

    @synchronized
    def drop(self) -> None:
        self._entries.clear()
        self._index.reset()
        shutil.rmtree(self._dir, ignore_errors=True)


__all__ = ["FaissVectorIndex"]
