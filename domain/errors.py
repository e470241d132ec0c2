"""Error taxonomy shared by every layer."""
from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for knowledge base failures."""


class NotFoundError(KnowledgeBaseError, LookupError):
    """Unknown collection, document or session."""


class ValidationError(KnowledgeBaseError, ValueError):
    """Rejected input. No state was changed."""


class UnsupportedFormatError(ValidationError):
    """No parser is registered for the requested file type."""


class UpstreamFailure(KnowledgeBaseError, RuntimeError):
    """An embedder, parser or completion collaborator failed."""


__all__ = [
    "KnowledgeBaseError",
    "NotFoundError",
    "UnsupportedFormatError",
    "UpstreamFailure",
    "ValidationError",
]
