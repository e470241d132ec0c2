"""Registry of named and session collections, each backed by a vector index."""
from __future__ import annotations

import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from domain.entities import SESSION_PREFIX, CollectionInfo, CollectionKind
from domain.errors import NotFoundError, ValidationError
from domain.interfaces import SettingsRepository, VectorIndex

logger = logging.getLogger(__name__)

DEFAULT_COLLECTIONS = ("personal", "work", "research", "bookmarks", "browsing")
CATALOG_KEY = "collections"

IndexFactory = Callable[[str, int], VectorIndex]

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


@dataclass(slots=True)
class _Collection:
    name: str
    index: VectorIndex
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    kind: CollectionKind = "named"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_collection_name(name: str) -> str:
    """Names double as directory names for the on-disk index backends."""
    if not isinstance(name, str) or not _NAME_RE.match(name) or ".." in name:
        raise ValidationError(f"Invalid collection name: {name!r}")
    return name


class CollectionRegistry:
    """Owns every collection's index and serialises writes per collection.

    Named collections are catalogued in the settings repository and reopened
    by ``init()``. Session collections (``session_<id>``) always use the
    session index factory and are never catalogued.
    """

    def __init__(
        self,
        *,
        dimension: int,
        index_factory: IndexFactory,
        session_index_factory: IndexFactory,
        settings: SettingsRepository,
        default_collections: tuple[str, ...] = DEFAULT_COLLECTIONS,
    ) -> None:
        self._dimension = dimension
        self._index_factory = index_factory
        self._session_index_factory = session_index_factory
        self._settings = settings
        self.default_collections = tuple(default_collections)
        self._collections: dict[str, _Collection] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.RLock()

    def init(self) -> None:
        with self._guard:
            catalog: dict[str, dict[str, Any]] = self._settings.get(CATALOG_KEY, {}) or {}
            for name, entry in catalog.items():
                if name not in self._collections:
                    self._open(name, entry.get("metadata") or {}, entry.get("createdAt") or _now(), "named")
            for name in self.default_collections:
                if name not in self._collections:
                    self._open(name, {"description": f"Default {name} collection"}, _now(), "named")
            self._save_catalog()
        logger.info("Collection registry ready with %d collections", len(self._collections))

    def close(self) -> None:
        with self._guard:
            for collection in self._collections.values():
                collection.index.close()
            self._collections.clear()

    def _open(self, name: str, metadata: dict[str, Any], created_at: str, kind: CollectionKind) -> _Collection:
        factory = self._session_index_factory if kind == "session" else self._index_factory
        collection = _Collection(
            name=name,
            index=factory(name, self._dimension),
            metadata=dict(metadata),
            created_at=created_at,
            kind=kind,
        )
        self._collections[name] = collection
        return collection

    def _save_catalog(self) -> None:
        catalog = {
            name: {"metadata": collection.metadata, "createdAt": collection.created_at}
            for name, collection in self._collections.items()
            if collection.kind == "named"
        }
        self._settings.set(CATALOG_KEY, catalog)

    def create(self, name: str, metadata: dict[str, Any] | None = None) -> CollectionInfo:
        validate_collection_name(name)
        if name in self.default_collections:
            raise ValidationError(f"Collection '{name}' already exists as a default collection")
        if name.startswith(SESSION_PREFIX):
            raise ValidationError(f"Collection names starting with '{SESSION_PREFIX}' are reserved")
        with self._guard:
            if name in self._collections:
                raise ValidationError(f"Collection '{name}' already exists")
            collection = self._open(name, metadata or {}, _now(), "named")
            self._save_catalog()
        logger.info("Created collection %s", name)
        return self._info(collection)

    def get_or_create(self, name: str, metadata: dict[str, Any] | None = None) -> VectorIndex:
        with self._guard:
            existing = self._collections.get(name)
            if existing is not None:
                return existing.index
            kind: CollectionKind = "session" if name.startswith(SESSION_PREFIX) else "named"
            if kind == "named":
                validate_collection_name(name)
            collection = self._open(name, metadata or {}, _now(), kind)
            if kind == "named":
                self._save_catalog()
        logger.info("Opened %s collection %s", kind, name)
        return collection.index

    def get(self, name: str) -> VectorIndex:
        collection = self._collections.get(name)
        if collection is None:
            raise NotFoundError(f"Collection '{name}' not found")
        return collection.index

    def exists(self, name: str) -> bool:
        return name in self._collections

    def info(self, name: str) -> CollectionInfo:
        collection = self._collections.get(name)
        if collection is None:
            raise NotFoundError(f"Collection '{name}' not found")
        return self._info(collection)

    def list(self, include_sessions: bool = True) -> list[CollectionInfo]:
        with self._guard:
            collections = list(self._collections.values())
        return [
            self._info(collection)
            for collection in collections
            if include_sessions or collection.kind == "named"
        ]

    def delete(self, name: str) -> None:
        if name in self.default_collections:
            raise ValidationError(f"Default collection '{name}' cannot be deleted")
        with self.lock(name), self._guard:
            collection = self._collections.pop(name, None)
            if collection is None:
                raise NotFoundError(f"Collection '{name}' not found")
            collection.index.drop()
            collection.index.close()
            if collection.kind == "named":
                self._save_catalog()
        logger.info("Deleted collection %s", name)

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        """Hold the write lock of one collection; other collections stay unblocked."""
        with self._guard:
            lock = self._locks.setdefault(name, threading.Lock())
        with lock:
            yield

    @staticmethod
    def _info(collection: _Collection) -> CollectionInfo:
        return CollectionInfo(
            name=collection.name,
            metadata=dict(collection.metadata),
            created_at=collection.created_at,
            count=collection.index.count(),
            kind=collection.kind,
        )


__all__ = ["CATALOG_KEY", "DEFAULT_COLLECTIONS", "CollectionRegistry", "validate_collection_name"]
