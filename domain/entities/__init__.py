"""Domain entities for the knowledge base."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

DocumentSource = Literal["manual", "webpage", "bookmark", "upload", "import"]
ContextMode = Literal["augment", "priority", "only"]
CollectionKind = Literal["named", "session"]

SESSION_PREFIX = "session_"


def session_collection_name(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def chunk_id_for(document_id: str, index: int) -> str:
    return f"{document_id}_chunk_{index}"


@dataclass(slots=True)
class Document:
    """A parsed document owned by the document store."""

    id: str
    title: str
    content: str
    source: DocumentSource = "manual"
    url: str | None = None
    collection: str | None = None
    session: str | None = None
    created_at: str = ""
    word_count: int = 0
    type: str = "text"
    metadata: dict[str, Any] = field(default_factory=dict)
    chunk_ids: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        """Return the persisted form. Raw content is never part of it."""
        return {
            "id": self.id,
            "title": self.title,
            "source": self.source,
            "url": self.url,
            "collection": self.collection,
            "createdAt": self.created_at,
            "wordCount": self.word_count,
            "type": self.type,
            "metadata": self.metadata,
            "chunkIds": list(self.chunk_ids),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Document":
        return cls(
            id=record["id"],
            title=record.get("title") or "Untitled Document",
            content="",
            source=record.get("source") or "manual",
            url=record.get("url"),
            collection=record.get("collection"),
            session=None,
            created_at=record.get("createdAt") or "",
            word_count=int(record.get("wordCount") or 0),
            type=record.get("type") or "text",
            metadata=dict(record.get("metadata") or {}),
            chunk_ids=list(record.get("chunkIds") or []),
        )


@dataclass(slots=True)
class TextSpan:
    """A trimmed window of text with offsets into the source string."""

    text: str
    start: int
    end: int


@dataclass(slots=True)
class Chunk:
    """A chunk of a larger document used for retrieval."""

    id: str
    document_id: str
    index: int
    text: str
    start: int
    end: int


@dataclass(slots=True)
class VectorRecord:
    """A vector stored inside exactly one collection index."""

    id: str
    vector: list[float]
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VectorHit:
    """A single nearest-neighbour match returned by an index."""

    id: str
    score: float
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CollectionInfo:
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    count: int = 0
    kind: CollectionKind = "named"


@dataclass(slots=True)
class ChunkHit:
    content: str
    score: float
    chunk_index: int


@dataclass(slots=True)
class SearchResult:
    """Chunk hits grouped under their parent document."""

    document_id: str
    title: str
    source: str
    timestamp: str
    chunks: list[ChunkHit] = field(default_factory=list)
    max_score: float = 0.0


@dataclass(slots=True)
class SearchOptions:
    collections: list[str] = field(default_factory=lambda: ["personal"])
    include_session: bool = False
    session_id: str | None = None
    limit: int = 10
    score_threshold: float = 0.5


@dataclass(slots=True)
class ParsedDocument:
    """Output of a text extractor."""

    title: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    word_count: int = 0


@dataclass(slots=True)
class Session:
    """Ephemeral document scope; never persisted."""

    id: str
    created_at: str
    documents: list[Document] = field(default_factory=list)


@dataclass(slots=True)
class IngestEvent:
    """Progress notification emitted while a document moves through ingestion."""

    stage: str
    document_id: str
    collection: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Answer:
    """Completion text together with the results it was grounded on."""

    text: str
    mode: ContextMode
    sources: list[SearchResult] = field(default_factory=list)


def count_words(text: str) -> int:
    return len(text.split())


__all__ = [
    "SESSION_PREFIX",
    "Answer",
    "ChunkHit",
    "Chunk",
    "CollectionInfo",
    "CollectionKind",
    "ContextMode",
    "Document",
    "DocumentSource",
    "IngestEvent",
    "ParsedDocument",
    "SearchOptions",
    "SearchResult",
    "Session",
    "TextSpan",
    "VectorHit",
    "VectorRecord",
    "chunk_id_for",
    "count_words",
    "session_collection_name",
]
