"""Dependency wiring for the knowledge base."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Literal

from application.knowledge_base import KnowledgeBaseManager
from application.services.collection_registry import CollectionRegistry, IndexFactory
from application.services.document_store import DocumentStore
from domain.errors import ValidationError
from domain.interfaces import ChunkSplitter, Embedder, SettingsRepository, TextCompleter
from infrastructure.embedding.bag_of_words_embedder import BagOfWordsEmbedder
from infrastructure.embedding.sentence_transformers_embedder import (
    SentenceTransformersConfig,
    SentenceTransformersEmbedder,
)
from infrastructure.llm.claude_completer import ClaudeCompleter, ClaudeCompleterConfig
from infrastructure.repositories.sqlite_settings_repository import SqliteSettingsRepository
from infrastructure.splitting.boundary_window_splitter import BoundaryWindowSplitter
from infrastructure.storage.faiss_vector_index import FaissVectorIndex
from infrastructure.storage.hnsw_vector_index import HnswVectorIndex
from infrastructure.storage.in_memory_vector_index import InMemoryVectorIndex
from infrastructure.storage.sqlite_vector_index import SqliteVectorIndex
from infrastructure.text_extraction.document_parser import DocumentParser

EmbedderName = Literal["sentence-transformers", "bag-of-words"]
VectorBackendName = Literal["sqlite", "hnsw", "faiss", "memory"]


@dataclass(slots=True)
class ContainerConfig:
    """Configuration for selecting the embedder, vector backend and chunking."""

    data_root: str = "data"
    embedder: EmbedderName = "sentence-transformers"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    models_dir: str = "models"
    vector_backend: VectorBackendName = "sqlite"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    llm_model: str = "claude-3-5-sonnet-latest"
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.7
    llm_api_key: str | None = None

    @property
    def db_path(self) -> Path:
        return Path(self.data_root) / "knowledge_base.db"

    @property
    def index_root(self) -> Path:
        return Path(self.data_root) / "indexes"

    @classmethod
    def from_env(cls) -> "ContainerConfig":
        """Read ``KB_*`` environment variables, falling back to the defaults."""
        defaults = cls()
        return cls(
            data_root=os.getenv("KB_DATA_ROOT", defaults.data_root),
            embedder=os.getenv("KB_EMBEDDER", defaults.embedder),  # type: ignore[arg-type]
            embedding_model=os.getenv("KB_EMBEDDING_MODEL", defaults.embedding_model),
            models_dir=os.getenv("KB_MODELS_DIR", defaults.models_dir),
            vector_backend=os.getenv("KB_VECTOR_BACKEND", defaults.vector_backend),  # type: ignore[arg-type]
            chunk_size=int(os.getenv("KB_CHUNK_SIZE", defaults.chunk_size)),
            chunk_overlap=int(os.getenv("KB_CHUNK_OVERLAP", defaults.chunk_overlap)),
            llm_model=os.getenv("KB_LLM_MODEL", defaults.llm_model),
            llm_max_tokens=int(os.getenv("KB_LLM_MAX_TOKENS", defaults.llm_max_tokens)),
            llm_temperature=float(os.getenv("KB_LLM_TEMPERATURE", defaults.llm_temperature)),
            llm_api_key=os.getenv("ANTHROPIC_API_KEY"),
        )


@dataclass(slots=True)
class Container:
    """Simple container bundling concrete infrastructure implementations."""

    settings: SettingsRepository
    splitter: ChunkSplitter
    embedder: Embedder
    parser: DocumentParser
    registry: CollectionRegistry
    document_store: DocumentStore
    completer: TextCompleter
    knowledge_base: KnowledgeBaseManager


def _resolve_model_reference(model_ref: str, cfg: ContainerConfig) -> str:
    """Prefer a copy saved under ``models_dir`` by scripts/prefetch_models.py."""
    local = Path(cfg.models_dir) / model_ref
    if local.is_dir():
        return str(local)
    return model_ref


_EMBEDDER_FACTORIES: dict[EmbedderName, Callable[[ContainerConfig], Embedder]] = {
    "sentence-transformers": lambda cfg: SentenceTransformersEmbedder(
        SentenceTransformersConfig(model_name=_resolve_model_reference(cfg.embedding_model, cfg))
    ),
    "bag-of-words": lambda cfg: BagOfWordsEmbedder(),
}

_INDEX_FACTORIES: dict[VectorBackendName, Callable[[ContainerConfig], IndexFactory]] = {
    "sqlite": lambda cfg: partial(SqliteVectorIndex, db_path=cfg.db_path),
    "hnsw": lambda cfg: partial(HnswVectorIndex, index_root=cfg.index_root),
    "faiss": lambda cfg: partial(FaissVectorIndex, index_root=cfg.index_root),
    "memory": lambda cfg: InMemoryVectorIndex,
}


def build_default_container(config: ContainerConfig | None = None) -> Container:
    """Instantiate the default infrastructure stack. Call ``knowledge_base.init()`` before use."""

    cfg = config or ContainerConfig()
    try:
        embedder = _EMBEDDER_FACTORIES[cfg.embedder](cfg)
    except KeyError as exc:
        raise ValidationError(f"Unknown embedder '{cfg.embedder}'") from exc
    try:
        index_factory = _INDEX_FACTORIES[cfg.vector_backend](cfg)
    except KeyError as exc:
        raise ValidationError(f"Unknown vector backend '{cfg.vector_backend}'") from exc

    settings = SqliteSettingsRepository(cfg.db_path)
    splitter = BoundaryWindowSplitter(chunk_size=cfg.chunk_size, overlap=cfg.chunk_overlap)
    parser = DocumentParser()
    registry = CollectionRegistry(
        dimension=embedder.dimension,
        index_factory=index_factory,
        session_index_factory=InMemoryVectorIndex,
        settings=settings,
    )
    document_store = DocumentStore(settings)
    completer = ClaudeCompleter(
        ClaudeCompleterConfig(
            model=cfg.llm_model,
            max_tokens=cfg.llm_max_tokens,
            temperature=cfg.llm_temperature,
            api_key=cfg.llm_api_key,
        )
    )
    knowledge_base = KnowledgeBaseManager(
        registry=registry,
        document_store=document_store,
        splitter=splitter,
        embedder=embedder,
        parser=parser,
        settings=settings,
        completer=completer,
    )

    return Container(
        settings=settings,
        splitter=splitter,
        embedder=embedder,
        parser=parser,
        registry=registry,
        document_store=document_store,
        completer=completer,
        knowledge_base=knowledge_base,
    )


__all__ = ["Container", "ContainerConfig", "build_default_container"]
