"""Facade that ties parsing, ingestion, retrieval and context assembly together."""
from __future__ import annotations

import copy
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, get_args

from application.services.collection_registry import CollectionRegistry
from application.services.document_store import DocumentStore
from application.use_cases.context import build_context, check_mode
from application.use_cases.ingest_documents import ingest_document, target_collection
from application.use_cases.search import search as run_search
from domain.entities import (
    Answer,
    CollectionInfo,
    ContextMode,
    Document,
    DocumentSource,
    IngestEvent,
    SearchOptions,
    SearchResult,
    count_words,
    session_collection_name,
)
from domain.errors import KnowledgeBaseError, NotFoundError, UpstreamFailure, ValidationError
from domain.interfaces import ChunkSplitter, Embedder, IngestObserver, SettingsRepository, TextCompleter
from infrastructure.text_extraction.document_parser import DocumentParser

logger = logging.getLogger(__name__)

SETTINGS_KEY = "knowledgeBase"
EXPORT_VERSION = "1.0"
DEFAULT_COLLECTION = "personal"
BOOKMARKS_COLLECTION = "bookmarks"

DEFAULT_SETTINGS: dict[str, Any] = {
    "enabled": True,
    "collections": [DEFAULT_COLLECTION],
    "sessions": {"includeByDefault": False},
    "settings": {"limit": 10, "scoreThreshold": 0.5, "contextMode": "augment"},
}

_SOURCES = frozenset(get_args(DocumentSource))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class KnowledgeBaseManager:
    """Entry point for every knowledge base operation.

    Documents are parsed, split into overlapping chunks, embedded in one batch
    and inserted into the collection they belong to. Session documents go to
    an ephemeral ``session_<id>`` collection instead. Search fans out over the
    requested collections and groups chunk hits by document.
    """

    def __init__(
        self,
        *,
        registry: CollectionRegistry,
        document_store: DocumentStore,
        splitter: ChunkSplitter,
        embedder: Embedder,
        parser: DocumentParser,
        settings: SettingsRepository,
        completer: TextCompleter | None = None,
        observers: Iterable[IngestObserver] = (),
    ) -> None:
        self.registry = registry
        self.document_store = document_store
        self.splitter = splitter
        self.embedder = embedder
        self.parser = parser
        self._settings = settings
        self._completer = completer
        self._observers: list[IngestObserver] = list(observers)

    def init(self) -> None:
        logger.info("Initializing knowledge base with embedder %s", self.embedder.model_id)
        self.embedder.initialize()
        self.registry.init()
        self.document_store.init()

    def close(self) -> None:
        self.document_store.close()
        self.registry.close()

    def add_observer(self, observer: IngestObserver) -> None:
        self._observers.append(observer)

    def _emit(self, event: IngestEvent) -> None:
        for observer in self._observers:
            try:
                observer.notify(event)
            except Exception:
                logger.warning("Ingest observer %r failed on %s", observer, event.stage, exc_info=True)

    def add_document(self, content: str, metadata: dict[str, Any] | None = None) -> str:
        meta = dict(metadata or {})
        title = meta.pop("title", None) or "Untitled Document"
        document = self._new_document(content, meta, title=title, word_count=None)
        return self._ingest(document)

    def add_file(self, buffer: bytes | str, file_type: str, metadata: dict[str, Any] | None = None) -> str:
        meta = dict(metadata or {})
        file_name = meta.get("fileName") or meta.get("title") or "unknown"
        parsed = self.parser.parse(buffer, file_type, file_name)
        title = meta.pop("title", None) or parsed.title
        meta.setdefault("source", "upload")
        meta.setdefault("type", parsed.metadata.get("fileType", "text"))
        meta.update(parsed.metadata)
        document = self._new_document(parsed.content, meta, title=title, word_count=parsed.word_count)
        return self._ingest(document)

    def add_web_page(self, url: str, html: bytes | str, metadata: dict[str, Any] | None = None) -> str:
        parsed = self.parser.parse_web_page(url, html)
        meta = dict(metadata or {})
        meta.pop("title", None)
        meta.update(url=url, source="webpage", type="html", pageMetadata=parsed.metadata)
        document = self._new_document(parsed.content, meta, title=parsed.title, word_count=parsed.word_count)
        return self._ingest(document)

    def add_bookmark(self, url: str, title: str, metadata: dict[str, Any] | None = None) -> str:
        meta = dict(metadata or {})
        notes = meta.get("notes") or ""
        meta.setdefault("tags", [])
        meta.update(url=url, source="bookmark", collection=BOOKMARKS_COLLECTION, type="bookmark")
        content = f"{title}\n{url}\n{notes}"
        document = self._new_document(content, meta, title=title or url, word_count=None)
        return self._ingest(document)

    def _new_document(
        self,
        content: str,
        meta: dict[str, Any],
        *,
        title: str,
        word_count: int | None,
    ) -> Document:
        if not isinstance(content, str):
            raise ValidationError("Document content must be a string")
        source = meta.pop("source", None) or "manual"
        if source not in _SOURCES:
            raise ValidationError(f"Unknown document source '{source}'")
        session = meta.pop("session", None) or None
        collection = meta.pop("collection", None) or (None if session else DEFAULT_COLLECTION)
        return Document(
            id=DocumentStore.allocate_id(),
            title=title,
            content=content,
            source=source,
            url=meta.pop("url", None),
            collection=collection,
            session=str(session) if session is not None else None,
            created_at=_now(),
            word_count=count_words(content) if word_count is None else word_count,
            type=meta.pop("type", None) or "text",
            metadata=meta,
        )

    def _ingest(self, document: Document) -> str:
        try:
            return ingest_document(
                document,
                splitter=self.splitter,
                embedder=self.embedder,
                registry=self.registry,
                document_store=self.document_store,
                notify=self._emit,
            )
        except Exception as exc:
            logger.error("Failed to add document %s: %s", document.title, exc)
            self._emit(IngestEvent("failed", document.id, document.collection, {"error": str(exc)}))
            if isinstance(exc, KnowledgeBaseError):
                raise
            raise UpstreamFailure(f"Failed to add document '{document.title}': {exc}") from exc

    def default_search_options(self) -> SearchOptions:
        settings = self.get_settings()
        tuning = settings["settings"]
        return SearchOptions(
            collections=list(settings["collections"]),
            include_session=bool(settings["sessions"].get("includeByDefault", False)),
            limit=int(tuning["limit"]),
            score_threshold=float(tuning["scoreThreshold"]),
        )

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        return run_search(
            query,
            options or self.default_search_options(),
            embedder=self.embedder,
            registry=self.registry,
        )

    def ask(self, question: str, options: SearchOptions | None = None, mode: str | None = None) -> Answer:
        """Answer ``question`` with the text completer, grounded on retrieved chunks."""
        if self._completer is None:
            raise UpstreamFailure("No text completer configured")
        settings = self.get_settings()
        context_mode: ContextMode = check_mode(mode or settings["settings"]["contextMode"])
        results = self.search(question, options) if settings["enabled"] else []
        context = build_context(results, context_mode)
        try:
            text = self._completer.complete(question, context, context_mode)
        except UpstreamFailure:
            raise
        except Exception as exc:
            raise UpstreamFailure(f"Text completion failed: {exc}") from exc
        return Answer(text=text, mode=context_mode, sources=results)

    def get_document(self, document_id: str) -> Document | None:
        return self.document_store.get(document_id)

    def delete_document(self, document_id: str, *, missing_ok: bool = True) -> bool:
        """Remove a document and every chunk it wrote. Returns False if it was absent."""
        document = self.document_store.get(document_id)
        if document is None:
            if missing_ok:
                logger.debug("Document %s already absent", document_id)
                return False
            raise NotFoundError(f"Document {document_id} not found")

        collection = target_collection(document)
        with self.registry.lock(collection):
            try:
                index = self.registry.get(collection)
            except NotFoundError:
                logger.warning("Collection %s of document %s no longer exists", collection, document_id)
            else:
                index.delete(document.chunk_ids)
            self.document_store.remove(document_id)
        self._emit(IngestEvent("deleted", document_id, collection, {"chunks": len(document.chunk_ids)}))
        logger.info("Deleted document: %s", document_id)
        return True

    def create_collection(self, name: str, metadata: dict[str, Any] | None = None) -> CollectionInfo:
        return self.registry.create(name, metadata)

    def delete_collection(self, name: str) -> None:
        self.registry.delete(name)
        for document in self.document_store.list(name):
            self.document_store.remove(document.id)

    def list_collections(self, include_sessions: bool = False) -> list[CollectionInfo]:
        return self.registry.list(include_sessions=include_sessions)

    def clear_session(self, session_id: str) -> int:
        """Drop a session's documents and its collection. Returns the document count."""
        removed = 0
        found = False
        try:
            removed = len(self.document_store.clear_session(session_id).documents)
            found = True
        except NotFoundError:
            pass
        try:
            self.registry.delete(session_collection_name(session_id))
            found = True
        except NotFoundError:
            pass
        if not found:
            raise NotFoundError(f"Session {session_id} not found")
        logger.info("Cleared session %s (%d documents)", session_id, removed)
        return removed

    def get_stats(self) -> dict[str, Any]:
        documents = self.document_store.list()
        per_collection = Counter(document.collection or DEFAULT_COLLECTION for document in documents)
        sessions = self.document_store.sessions()
        return {
            "totalDocuments": len(documents),
            "collections": {
                info.name: {
                    "documents": per_collection.get(info.name, 0),
                    "chunks": info.count,
                    "metadata": info.metadata,
                }
                for info in self.registry.list(include_sessions=False)
            },
            "sessionDocuments": sum(len(session.documents) for session in sessions),
            "activeSessions": len(sessions),
        }

    def export_documents(self, collection: str | None = None) -> dict[str, Any]:
        exported = []
        for document in self.document_store.list(collection):
            record = document.to_record()
            record["content"] = document.content or self._reconstruct_content(document)
            exported.append(record)
        return {"version": EXPORT_VERSION, "exportDate": _now(), "documents": exported}

    def _reconstruct_content(self, document: Document) -> str:
        """Rebuild raw text from stored chunks. Overlaps are merged, gaps become one space."""
        try:
            index = self.registry.get(target_collection(document))
        except NotFoundError:
            return ""
        records = sorted(index.fetch(document.chunk_ids), key=lambda record: int(record.metadata.get("start", 0)))
        text = ""
        covered = -1
        for record in records:
            start = int(record.metadata.get("start", 0))
            end = int(record.metadata.get("end", start + len(record.text)))
            if covered < 0:
                text = record.text
            elif start >= covered:
                text += " " + record.text
            elif end > covered:
                text += record.text[covered - start:]
            covered = max(covered, end)
        return text

    def import_documents(self, data: Any) -> list[str]:
        """Add each exported document again. Items that fail are logged and skipped."""
        if not isinstance(data, dict) or not isinstance(data.get("documents"), list):
            raise ValidationError("Invalid import data format")

        imported: list[str] = []
        for item in data["documents"]:
            if not isinstance(item, dict):
                logger.error("Skipping malformed import entry: %r", item)
                continue
            metadata = dict(item.get("metadata") or {})
            metadata.update(
                title=item.get("title"),
                source=item.get("source") or "import",
                collection=item.get("collection"),
                type=item.get("type"),
                url=item.get("url"),
                importedFrom=data.get("exportDate"),
            )
            try:
                imported.append(self.add_document(item.get("content") or "", metadata))
            except Exception as exc:
                logger.error("Failed to import document %s: %s", item.get("title"), exc)
        logger.info("Imported %d/%d documents", len(imported), len(data["documents"]))
        return imported

    def get_settings(self) -> dict[str, Any]:
        stored = self._settings.get(SETTINGS_KEY, {}) or {}
        return _merge(DEFAULT_SETTINGS, stored)

    def update_settings(self, changes: dict[str, Any]) -> dict[str, Any]:
        merged = _merge(self.get_settings(), changes)
        _validate_settings(merged)
        self._settings.set(SETTINGS_KEY, merged)
        return merged


def _merge(base: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _validate_settings(settings: dict[str, Any]) -> None:
    collections = settings.get("collections")
    if not isinstance(collections, list) or not all(isinstance(name, str) for name in collections):
        raise ValidationError("'collections' must be a list of collection names")
    tuning = settings.get("settings") or {}
    limit = tuning.get("limit")
    if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
        raise ValidationError("'settings.limit' must be a positive integer")
    if not isinstance(tuning.get("scoreThreshold"), (int, float)):
        raise ValidationError("'settings.scoreThreshold' must be a number")
    check_mode(tuning.get("contextMode", ""))


__all__ = ["DEFAULT_SETTINGS", "SETTINGS_KEY", "KnowledgeBaseManager"]
