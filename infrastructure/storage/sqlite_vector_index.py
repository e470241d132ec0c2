"""Persistent vector index in SQLite with brute-force search."""
from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Mapping, Sequence

from domain.entities import VectorHit, VectorRecord
from domain.interfaces import VectorIndex
from infrastructure.storage.base import check_dimensions, check_query_vector, rank_exhaustive


class SqliteVectorIndex(VectorIndex):
    """Keeps one collection's vectors in a shared SQLite table and scans them."""

    def __init__(self, name: str, dimension: int, *, db_path: str | Path = "knowledge_base.db") -> None:
        self.name = name
        self.dimension = dimension
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vector_records (
                    collection TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    vector TEXT NOT NULL,
                    PRIMARY KEY (collection, record_id)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_vector_records_collection_seq
                ON vector_records (collection, seq)
                """
            )

    def insert(self, records: Sequence[VectorRecord]) -> None:
        check_dimensions(records, self.dimension, self.name)
        if not records:
            return
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(seq), -1) FROM vector_records WHERE collection = ?",
                (self.name,),
            ).fetchone()
            next_seq = int(row[0]) + 1
            conn.executemany(
                """
                INSERT INTO vector_records (collection, record_id, seq, text, metadata, vector)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (collection, record_id) DO UPDATE SET
                    text = excluded.text,
                    metadata = excluded.metadata,
                    vector = excluded.vector
                """,
                [
                    (
                        self.name,
                        record.id,
                        next_seq + offset,
                        record.text,
                        json.dumps(record.metadata),
                        json.dumps([float(value) for value in record.vector]),
                    )
                    for offset, record in enumerate(records)
                ],
            )

    def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        with self._connect() as conn:
            conn.executemany(
                "DELETE FROM vector_records WHERE collection = ? AND record_id = ?",
                [(self.name, record_id) for record_id in ids],
            )

    def fetch(self, ids: Sequence[str]) -> list[VectorRecord]:
        wanted = list(ids)
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT record_id, text, metadata, vector
                FROM vector_records
                WHERE collection = ? AND record_id IN ({placeholders})
                """,
                (self.name, *wanted),
            ).fetchall()
        by_id = {row[0]: _row_to_record(row) for row in rows}
        return [by_id[record_id] for record_id in wanted if record_id in by_id]

    def query(
        self,
        query_vector: Sequence[float],
        k: int,
        where: Mapping[str, Any] | None = None,
    ) -> list[VectorHit]:
        check_query_vector(query_vector, self.dimension, self.name)
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT record_id, text, metadata, vector
                FROM vector_records
                WHERE collection = ?
                ORDER BY seq
                """,
                (self.name,),
            ).fetchall()
        return rank_exhaustive((_row_to_record(row) for row in rows), query_vector, k, where)

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM vector_records WHERE collection = ?",
                (self.name,),
            ).fetchone()
        return int(row[0])

    def drop(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM vector_records WHERE collection = ?", (self.name,))


def _row_to_record(row: tuple[str, str, str, str]) -> VectorRecord:
    return VectorRecord(
        id=row[0],
        text=row[1],
        metadata=json.loads(row[2]),
        vector=json.loads(row[3]),
    )


__all__ = ["SqliteVectorIndex"]
