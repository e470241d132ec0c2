"""Use case that runs a similarity search across several collections."""
from __future__ import annotations

import logging
from typing import Iterable

from application.services.collection_registry import CollectionRegistry
from domain.entities import ChunkHit, SearchOptions, SearchResult, VectorHit, session_collection_name
from domain.errors import NotFoundError, UpstreamFailure
from domain.interfaces import Embedder

logger = logging.getLogger(__name__)


def target_collections(options: SearchOptions) -> list[str]:
    """Explicit collections plus the session collection when requested."""
    names = list(options.collections)
    if options.include_session and options.session_id:
        names.append(session_collection_name(options.session_id))
    return list(dict.fromkeys(names))


def search(
    query_text: str,
    options: SearchOptions,
    *,
    embedder: Embedder,
    registry: CollectionRegistry,
) -> list[SearchResult]:
    """Search for documents relevant to the provided query text.

    The query is embedded once. Every target collection contributes up to
    ``options.limit`` hits; collections that do not exist or fail are skipped
    so one stale reference cannot break the whole search. Hits below the
    score threshold are dropped, the rest are ranked globally, truncated to
    ``limit`` and grouped by parent document.
    """

    if not query_text or not query_text.strip() or options.limit <= 0:
        return []

    try:
        query_vector = embedder.embed(query_text)
    except Exception as exc:
        raise UpstreamFailure(f"Embedding the query failed: {exc}") from exc

    hits: list[VectorHit] = []
    for name in target_collections(options):
        try:
            index = registry.get(name)
        except NotFoundError:
            logger.debug("Collection %s not found, skipping", name)
            continue
        try:
            hits.extend(index.query(query_vector, options.limit))
        except Exception:
            logger.warning("Search in collection %s failed, skipping", name, exc_info=True)

    ranked = sorted(
        (hit for hit in hits if hit.score >= options.score_threshold),
        key=lambda hit: hit.score,
        reverse=True,
    )[: options.limit]
    results = group_by_document(ranked)
    logger.info("Search found %d documents for %d chunk hits", len(results), len(ranked))
    return results


def group_by_document(ranked_hits: Iterable[VectorHit]) -> list[SearchResult]:
    """Group rank-ordered chunk hits by ``document_id``, best document first."""
    grouped: dict[str, SearchResult] = {}
    for hit in ranked_hits:
        metadata = hit.metadata
        document_id = metadata.get("document_id") or hit.id
        result = grouped.get(document_id)
        if result is None:
            result = SearchResult(
                document_id=document_id,
                title=metadata.get("title", ""),
                source=metadata.get("source", ""),
                timestamp=metadata.get("timestamp", ""),
                max_score=hit.score,
            )
            grouped[document_id] = result
        result.chunks.append(
            ChunkHit(content=hit.text, score=hit.score, chunk_index=int(metadata.get("chunk_index", 0)))
        )
        result.max_score = max(result.max_score, hit.score)
    return sorted(grouped.values(), key=lambda result: result.max_score, reverse=True)


__all__ = ["group_by_document", "search", "target_collections"]
