"""
Andrew - Relationship Inference
================================
Builds the chunk relationship graph as an adjacency list keyed by chunk
id.  Curated relations always win: a chunk that ships a non-empty
``relatedChunks`` list keeps it verbatim and is never compared.

For every other chunk A, each candidate B ≠ A is related when

    |(A.keywords ∪ A.auto) ∩ (B.keywords ∪ B.auto)| ≥ 2
    or cosine(A.signature, B.signature) > 0.6

The pass is O(n²) over the corpus and runs once, at initialisation.
"""

from __future__ import annotations

from collections.abc import Sequence

from andrew.src.core.models import EnhancedChunk
from andrew.src.core.similarity import cosine_similarity
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)

MIN_KEYWORD_OVERLAP = 2
SIMILARITY_THRESHOLD = 0.6

RelationGraph = dict[str, tuple[str, ...]]


def _keyword_pool(chunk: EnhancedChunk) -> frozenset[str]:
    return frozenset(chunk.keywords) | frozenset(chunk.auto_keywords)


def is_related(chunk: EnhancedChunk, other: EnhancedChunk, min_overlap: int = MIN_KEYWORD_OVERLAP, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """Decide whether *other* belongs in the inferred relations of *chunk*."""
    overlap = len(_keyword_pool(chunk) & _keyword_pool(other))
    if overlap >= min_overlap:
        return True
    return cosine_similarity(chunk.signature, other.signature) > threshold


def infer_relationships(chunks: Sequence[EnhancedChunk], min_overlap: int = MIN_KEYWORD_OVERLAP, threshold: float = SIMILARITY_THRESHOLD) -> RelationGraph:
    """
    Return the resolved relation list of every chunk, in corpus order.

    Curated lists are copied through; empty ones are replaced by the
    inferred list (which may itself be empty).
    """
    graph: RelationGraph = {}
    inferred_count = 0

    for chunk in chunks:
        curated = chunk.chunk.related_chunks
        if curated:
            graph[chunk.id] = tuple(curated)
            continue

        related: list[str] = []
        for other in chunks:
            if other.id == chunk.id:
                continue
            if is_related(chunk, other, min_overlap, threshold):
                related.append(other.id)

        graph[chunk.id] = tuple(related)
        inferred_count += 1
        logger.debug("[RELATIONS] '%s' → %d inferred link(s).", chunk.id, len(related))

    logger.info("[RELATIONS] Inferred relations for %d/%d chunk(s).", inferred_count, len(chunks))
    return graph
