"""Abstract interfaces for the knowledge base."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Protocol, Sequence

from domain.entities import ContextMode, IngestEvent, ParsedDocument, TextSpan, VectorHit, VectorRecord
from domain.similarity import cosine_similarity


class TextExtractor(ABC):
    """Turns raw bytes of one file format into a parsed document."""

    @abstractmethod
    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        """Return the textual representation of a source."""


class ChunkSplitter(ABC):
    """Splits document text into overlapping windows."""

    @abstractmethod
    def split(self, text: str) -> list[TextSpan]:
        """Return chunks for the provided text."""


class Embedder(ABC):
    """Turns text (documents or queries) into fixed-dimension vectors."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the stable identifier for this embedding model."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension for this model."""

    @property
    @abstractmethod
    def max_input_length(self) -> int:
        """Maximum input length in characters; longer input is truncated."""

    def initialize(self) -> None:
        """Load model state. Called lazily before the first embedding."""

    @abstractmethod
    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed a batch of texts into dense vectors."""

    def embed(self, text: str) -> list[float]:
        return self.embed_texts([text])[0]

    def truncate(self, text: str) -> str:
        """Cut text to ``max_input_length`` at the last word boundary."""
        limit = self.max_input_length
        if len(text) <= limit:
            return text
        head = text[:limit]
        boundary = head.rfind(" ")
        if boundary > 0:
            return head[:boundary]
        return head

    @staticmethod
    def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)


class VectorIndex(ABC):
    """One collection's vector store with k-nearest-neighbour search."""

    name: str
    dimension: int

    @abstractmethod
    def insert(self, records: Sequence[VectorRecord]) -> None:
        """Upsert records. A wrong vector dimension rejects the whole batch."""

    @abstractmethod
    def delete(self, ids: Sequence[str]) -> None:
        """Remove records by id; unknown ids are ignored."""

    @abstractmethod
    def fetch(self, ids: Sequence[str]) -> list[VectorRecord]:
        """Return stored records for the ids that exist, in request order."""

    @abstractmethod
    def query(
        self,
        query_vector: Sequence[float],
        k: int,
        where: Mapping[str, Any] | None = None,
    ) -> list[VectorHit]:
        """Return the top ``k`` hits by cosine similarity, best first."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored records."""

    def stats(self) -> dict[str, Any]:
        return {"name": self.name, "count": self.count(), "dimension": self.dimension}

    @abstractmethod
    def drop(self) -> None:
        """Delete every record and any persisted state."""

    def close(self) -> None:
        """Release backend resources."""


class SettingsRepository(ABC):
    """Durable key/value store for JSON-compatible values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value or ``default``."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""


class TextCompleter(ABC):
    """Black-box text completion (the LLM)."""

    @abstractmethod
    def complete(self, prompt: str, context: str, mode: ContextMode) -> str:
        """Return free-form text or raise ``UpstreamFailure``."""


class IngestObserver(Protocol):
    """Receives ingestion progress events in emission order."""

    def notify(self, event: IngestEvent) -> None:
        ...


__all__ = [
    "ChunkSplitter",
    "Embedder",
    "IngestObserver",
    "SettingsRepository",
    "TextCompleter",
    "TextExtractor",
    "VectorIndex",
]
