"""Embedder backed by sentence-transformers."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Sequence

from sentence_transformers import SentenceTransformer

from domain.interfaces import Embedder


@dataclass(slots=True)
class SentenceTransformersConfig:
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"
    normalize_embeddings: bool = True
    batch_size: int = 10
    # all-MiniLM-L6-v2 accepts 256 tokens, roughly four characters each.
    max_input_length: int = 1024
    dimension: int = 384


logger = logging.getLogger(__name__)


class SentenceTransformersEmbedder(Embedder):
    """Embedder on top of a sentence-transformers model, loaded on first use."""

    def __init__(self, config: SentenceTransformersConfig | None = None) -> None:
        self._config = config or SentenceTransformersConfig()
        self._model: SentenceTransformer | None = None
        self._dimension = self._config.dimension
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return self._config.model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_length(self) -> int:
        return self._config.max_input_length

    def initialize(self) -> None:
        with self._lock:
            if self._model is not None:
                return
            logger.info("Loading sentence-transformers model: %s", self._config.model_name)
            model = SentenceTransformer(self._config.model_name, device=self._config.device)
            dimension = int(model.get_sentence_embedding_dimension())
            if dimension != self._config.dimension:
                raise ValueError(
                    f"Model {self._config.model_name} produces {dimension}-d vectors, "
                    f"expected {self._config.dimension}."
                )
            self._model = model

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if self._model is None:
            self.initialize()
        assert self._model is not None
        truncated = [self.truncate(text) for text in texts]
        logger.debug("Encoding %d texts with %s", len(truncated), self._config.model_name)
        embeddings = self._model.encode(
            truncated,
            batch_size=self._config.batch_size,
            normalize_embeddings=self._config.normalize_embeddings,
            show_progress_bar=False,
        )
        return embeddings.tolist()


__all__ = ["SentenceTransformersEmbedder", "SentenceTransformersConfig"]
