"""FastAPI layer that exposes the knowledge base operations."""
from __future__ import annotations

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Query as FastAPIQuery, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from domain.entities import CollectionInfo, Document, SearchOptions
from domain.errors import NotFoundError, UnsupportedFormatError, UpstreamFailure, ValidationError
from infrastructure.config import Container, ContainerConfig, build_default_container
from ui.logging_utils import setup_logging

logger = logging.getLogger(__name__)


class AddDocumentRequest(BaseModel):
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class AddFileRequest(BaseModel):
    data: str = Field(..., description="Base64-encoded file content")
    file_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class AddWebPageRequest(BaseModel):
    url: str
    html: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class AddBookmarkRequest(BaseModel):
    url: str
    title: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentIdResponse(BaseModel):
    id: str


class SearchRequest(BaseModel):
    query: str
    collections: list[str] | None = None
    include_session: bool | None = None
    session_id: str | None = None
    limit: int | None = None
    score_threshold: float | None = None


class AskRequest(SearchRequest):
    mode: str | None = None


class ChunkHitModel(BaseModel):
    content: str
    score: float
    chunk_index: int


class SearchResultModel(BaseModel):
    document_id: str
    title: str
    source: str
    timestamp: str
    chunks: list[ChunkHitModel]
    max_score: float


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResultModel]


class AskResponse(BaseModel):
    answer: str
    mode: str
    sources: list[SearchResultModel]


class DocumentModel(BaseModel):
    id: str
    title: str
    content: str
    source: str
    url: str | None = None
    collection: str | None = None
    session: str | None = None
    created_at: str
    word_count: int
    type: str
    metadata: dict[str, Any]
    chunk_ids: list[str]


class CollectionModel(BaseModel):
    name: str
    metadata: dict[str, Any]
    created_at: str
    count: int
    kind: str


class CreateCollectionRequest(BaseModel):
    name: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ImportResponse(BaseModel):
    imported: list[str]


class ClearSessionResponse(BaseModel):
    session_id: str
    removed: int


def _document_model(document: Document) -> DocumentModel:
    return DocumentModel(**asdict(document))


def _collection_model(info: CollectionInfo) -> CollectionModel:
    return CollectionModel(**asdict(info))


def _options(container: Container, request: SearchRequest) -> SearchOptions:
    options = container.knowledge_base.default_search_options()
    if request.collections is not None:
        options.collections = request.collections
    if request.include_session is not None:
        options.include_session = request.include_session
    if request.session_id is not None:
        options.session_id = request.session_id
        if request.include_session is None:
            options.include_session = True
    if request.limit is not None:
        options.limit = request.limit
    if request.score_threshold is not None:
        options.score_threshold = request.score_threshold
    return options


def create_app(container: Container | None = None) -> FastAPI:
    """Build the API around ``container``; the default stack is read from ``KB_*`` variables."""

    kb_container = container or build_default_container(ContainerConfig.from_env())
    kb = kb_container.knowledge_base

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        kb.init()
        logger.info("Knowledge base API started")
        yield
        kb.close()
        logger.info("Knowledge base API stopped")

    app = FastAPI(title="Knowledge Base API", lifespan=lifespan)
    app.state.container = kb_container

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(UnsupportedFormatError)
    async def unsupported_handler(request: Request, exc: UnsupportedFormatError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(UpstreamFailure)
    async def upstream_handler(request: Request, exc: UpstreamFailure) -> JSONResponse:
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.post("/documents", response_model=DocumentIdResponse)
    def add_document_endpoint(payload: AddDocumentRequest) -> DocumentIdResponse:
        return DocumentIdResponse(id=kb.add_document(payload.content, payload.metadata))

    @app.post("/files", response_model=DocumentIdResponse)
    def add_file_endpoint(payload: AddFileRequest) -> DocumentIdResponse:
        try:
            buffer = base64.b64decode(payload.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(status_code=400, detail="File data is not valid base64") from exc
        return DocumentIdResponse(id=kb.add_file(buffer, payload.file_type, payload.metadata))

    @app.post("/webpages", response_model=DocumentIdResponse)
    def add_web_page_endpoint(payload: AddWebPageRequest) -> DocumentIdResponse:
        return DocumentIdResponse(id=kb.add_web_page(payload.url, payload.html, payload.metadata))

    @app.post("/bookmarks", response_model=DocumentIdResponse)
    def add_bookmark_endpoint(payload: AddBookmarkRequest) -> DocumentIdResponse:
        return DocumentIdResponse(id=kb.add_bookmark(payload.url, payload.title, payload.metadata))

    @app.get("/documents/{document_id}", response_model=DocumentModel)
    def get_document_endpoint(document_id: str) -> DocumentModel:
        document = kb.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return _document_model(document)

    @app.delete("/documents/{document_id}", status_code=204)
    def delete_document_endpoint(document_id: str) -> None:
        kb.delete_document(document_id, missing_ok=False)

    @app.post("/search", response_model=SearchResponse)
    def search_endpoint(payload: SearchRequest) -> SearchResponse:
        results = kb.search(payload.query, _options(kb_container, payload))
        return SearchResponse(
            query=payload.query,
            results=[SearchResultModel(**asdict(result)) for result in results],
        )

    @app.post("/ask", response_model=AskResponse)
    def ask_endpoint(payload: AskRequest) -> AskResponse:
        answer = kb.ask(payload.query, _options(kb_container, payload), payload.mode)
        return AskResponse(
            answer=answer.text,
            mode=answer.mode,
            sources=[SearchResultModel(**asdict(result)) for result in answer.sources],
        )

    @app.get("/collections", response_model=list[CollectionModel])
    def list_collections_endpoint(
        include_sessions: bool = FastAPIQuery(False, description="Include session collections"),
    ) -> list[CollectionModel]:
        return [_collection_model(info) for info in kb.list_collections(include_sessions)]

    @app.post("/collections", response_model=CollectionModel, status_code=201)
    def create_collection_endpoint(payload: CreateCollectionRequest) -> CollectionModel:
        return _collection_model(kb.create_collection(payload.name, payload.metadata))

    @app.delete("/collections/{name}", status_code=204)
    def delete_collection_endpoint(name: str) -> None:
        kb.delete_collection(name)

    @app.delete("/sessions/{session_id}", response_model=ClearSessionResponse)
    def clear_session_endpoint(session_id: str) -> ClearSessionResponse:
        return ClearSessionResponse(session_id=session_id, removed=kb.clear_session(session_id))

    @app.get("/stats")
    def stats_endpoint() -> dict[str, Any]:
        return kb.get_stats()

    @app.get("/export")
    def export_endpoint(
        collection: str | None = FastAPIQuery(None, description="Only export this collection"),
    ) -> dict[str, Any]:
        return kb.export_documents(collection)

    @app.post("/import", response_model=ImportResponse)
    def import_endpoint(payload: dict[str, Any]) -> ImportResponse:
        return ImportResponse(imported=kb.import_documents(payload))

    @app.get("/settings")
    def get_settings_endpoint() -> dict[str, Any]:
        return kb.get_settings()

    @app.patch("/settings")
    def update_settings_endpoint(payload: dict[str, Any]) -> dict[str, Any]:
        return kb.update_settings(payload)

    return app


def main() -> None:
    setup_logging()
    uvicorn.run("ui.api.main:create_app", factory=True, host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main()
