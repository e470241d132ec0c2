"""Embedder that hashes a bag of normalised words into a fixed-size vector."""
from __future__ import annotations

import hashlib
import math
import re
from collections import Counter
from typing import Sequence

from domain.interfaces import Embedder

_TOKEN_RE = re.compile(r"\w+")

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has", "in",
        "is", "it", "its", "of", "on", "or", "over", "that", "the", "this", "to",
        "was", "were", "will", "with",
    }
)

_SUFFIXES = ("ing", "ed", "es", "s")


class BagOfWordsEmbedder(Embedder):
    """Deterministic feature-hashing embedder for offline use and tests."""

    def __init__(self, dimension: int = 512, max_input_length: int = 8000) -> None:
        self._dimension = dimension
        self._max_input_length = max_input_length
        self._model_id = f"hash-bow-{dimension}"

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def max_input_length(self) -> int:
        return self._max_input_length

    def tokenize(self, text: str) -> list[str]:
        tokens = []
        for word in _TOKEN_RE.findall(text.lower()):
            if word in STOP_WORDS:
                continue
            tokens.append(_stem(word))
        return tokens

    def _bucket(self, token: str) -> int:
        digest = hashlib.md5(token.encode("utf-8")).hexdigest()
        return int(digest, 16) % self._dimension

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token, count in Counter(self.tokenize(self.truncate(text))).items():
            vector[self._bucket(token)] += float(count)
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vectorize(text) for text in texts]


def _stem(word: str) -> str:
    for suffix in _SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            return word[: -len(suffix)]
    return word


__all__ = ["BagOfWordsEmbedder", "STOP_WORDS"]
