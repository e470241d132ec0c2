"""Document metadata store with permanent and session scopes."""
from __future__ import annotations

import logging
import secrets
import threading
from datetime import datetime, timezone

from domain.entities import Document, Session
from domain.errors import NotFoundError
from domain.interfaces import SettingsRepository

logger = logging.getLogger(__name__)

DOCUMENTS_KEY = "documents"


class DocumentStore:
    """Holds document metadata separately from the vector payload.

    Permanent documents are written to the settings repository, grouped by
    collection, after every mutation. Raw content is not persisted; it lives
    in the chunk text of the vector index. Session documents stay in memory.
    """

    def __init__(self, settings: SettingsRepository, *, default_collection: str = "personal") -> None:
        self._settings = settings
        self._default_collection = default_collection
        self._documents: dict[str, Document] = {}
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    def init(self) -> None:
        groups = self._settings.get(DOCUMENTS_KEY, {}) or {}
        with self._lock:
            for collection, group in groups.items():
                for record in group.get("documents", []):
                    document = Document.from_record(record)
                    document.collection = document.collection or collection
                    self._documents[document.id] = document
        logger.info("Loaded metadata for %d documents", len(self._documents))

    def close(self) -> None:
        with self._lock:
            self._documents.clear()
            self._sessions.clear()

    @staticmethod
    def allocate_id() -> str:
        return secrets.token_hex(16)

    def add(self, document: Document) -> str:
        if not document.id:
            document.id = self.allocate_id()
        with self._lock:
            if document.session:
                session = self._sessions.get(document.session)
                if session is None:
                    session = Session(id=document.session, created_at=datetime.now(timezone.utc).isoformat())
                    self._sessions[document.session] = session
                session.documents.append(document)
            else:
                self._documents[document.id] = document
                try:
                    self._persist()
                except Exception:
                    self._documents.pop(document.id, None)
                    raise
        return document.id

    def get(self, document_id: str) -> Document | None:
        with self._lock:
            document = self._documents.get(document_id)
            if document is not None:
                return document
            for session in self._sessions.values():
                for candidate in session.documents:
                    if candidate.id == document_id:
                        return candidate
        return None

    def require(self, document_id: str) -> Document:
        document = self.get(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    def remove(self, document_id: str) -> Document:
        with self._lock:
            document = self._documents.pop(document_id, None)
            if document is not None:
                self._persist()
                return document
            for session_id, session in list(self._sessions.items()):
                for candidate in session.documents:
                    if candidate.id == document_id:
                        session.documents.remove(candidate)
                        if not session.documents:
                            del self._sessions[session_id]
                        return candidate
        raise NotFoundError(f"Document {document_id} not found")

    def list(self, collection: str | None = None) -> list[Document]:
        with self._lock:
            documents = list(self._documents.values())
        if collection is None:
            return documents
        return [document for document in documents if document.collection == collection]

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._sessions.values())

    def clear_session(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def _persist(self) -> None:
        groups: dict[str, dict[str, list[dict]]] = {}
        for document in self._documents.values():
            collection = document.collection or self._default_collection
            groups.setdefault(collection, {"documents": []})["documents"].append(document.to_record())
        self._settings.set(DOCUMENTS_KEY, groups)


__all__ = ["DOCUMENTS_KEY", "DocumentStore"]
