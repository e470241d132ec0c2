"""Use case for ingesting one document: chunk, embed, index, then record it."""
from __future__ import annotations

import logging
from typing import Callable

from application.services.collection_registry import CollectionRegistry
from application.services.document_store import DocumentStore
from domain.entities import (
    SESSION_PREFIX,
    Chunk,
    Document,
    IngestEvent,
    VectorRecord,
    chunk_id_for,
    session_collection_name,
)
from domain.errors import UpstreamFailure, ValidationError
from domain.interfaces import ChunkSplitter, Embedder

logger = logging.getLogger(__name__)

Notify = Callable[[IngestEvent], None]


def target_collection(document: Document) -> str:
    if document.session:
        return session_collection_name(document.session)
    if not document.collection:
        raise ValidationError(f"Document {document.id} has neither a collection nor a session")
    if document.collection.startswith(SESSION_PREFIX):
        raise ValidationError(
            f"Collection names starting with '{SESSION_PREFIX}' are reserved; pass a session id instead"
        )
    return document.collection


def build_chunks(document: Document, splitter: ChunkSplitter) -> list[Chunk]:
    return [
        Chunk(
            id=chunk_id_for(document.id, index),
            document_id=document.id,
            index=index,
            text=span.text,
            start=span.start,
            end=span.end,
        )
        for index, span in enumerate(splitter.split(document.content))
    ]


def ingest_document(
    document: Document,
    *,
    splitter: ChunkSplitter,
    embedder: Embedder,
    registry: CollectionRegistry,
    document_store: DocumentStore,
    notify: Notify | None = None,
) -> str:
    """Index every chunk of ``document`` and store its metadata, or nothing.

    Writes to the target collection happen under that collection's lock. If
    inserting the chunks or persisting the metadata fails, the chunks that
    were inserted are removed again before the error propagates.
    """

    emit = notify or (lambda event: None)
    collection = target_collection(document)

    chunks = build_chunks(document, splitter)
    if not chunks:
        raise ValidationError(f"Document '{document.title}' has no indexable text")
    emit(IngestEvent("chunked", document.id, collection, {"chunks": len(chunks)}))

    try:
        vectors = embedder.embed_texts([chunk.text for chunk in chunks])
    except Exception as exc:
        raise UpstreamFailure(f"Embedding failed for document {document.id}: {exc}") from exc
    if len(vectors) != len(chunks):
        raise UpstreamFailure(
            f"Embedder returned {len(vectors)} vectors for {len(chunks)} chunks of document {document.id}"
        )
    emit(IngestEvent("embedded", document.id, collection, {"dimension": embedder.dimension}))

    records = [
        VectorRecord(
            id=chunk.id,
            vector=list(vector),
            text=chunk.text,
            metadata={
                "document_id": document.id,
                "chunk_index": chunk.index,
                "title": document.title,
                "source": document.source,
                "timestamp": document.created_at,
                "start": chunk.start,
                "end": chunk.end,
                "collection": collection,
            },
        )
        for chunk, vector in zip(chunks, vectors)
    ]
    chunk_ids = [record.id for record in records]

    index = registry.get_or_create(collection)
    with registry.lock(collection):
        try:
            index.insert(records)
            emit(IngestEvent("indexed", document.id, collection, {"chunks": len(records)}))
            document.chunk_ids = chunk_ids
            document_store.add(document)
        except Exception:
            logger.error("Rolling back %d chunks of document %s", len(chunk_ids), document.id)
            index.delete(chunk_ids)
            document.chunk_ids = []
            raise
    emit(IngestEvent("stored", document.id, collection, {"chunks": len(chunk_ids)}))
    logger.info("Added document: %s (%d chunks) to %s", document.title, len(chunk_ids), collection)
    return document.id


__all__ = ["build_chunks", "ingest_document", "target_collection"]
