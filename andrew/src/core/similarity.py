"""
Andrew - Similarity Scoring
============================
Cosine similarity over signature vectors.

All signatures produced by one extractor share its dimensionality, so a
length mismatch means a corpus or schema bug and fails loud with
``DimensionMismatchError``.  A zero-norm vector (text without letters)
scores 0.0 instead of propagating NaN into the ranking.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from andrew.src.core.exceptions import DimensionMismatchError
from andrew.src.core.features import create_signature


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine of the angle between *vec_a* and *vec_b*; 0.0 if either is all-zero."""
    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(len(vec_a), len(vec_b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for a, b in zip(vec_a, vec_b):
        dot += a * b
        norm_a += a * a
        norm_b += b * b

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def find_relevant_texts(query: str, texts: Sequence[str], signatures: Sequence[Sequence[float]], top_k: int = 3) -> list[str]:
    """
    Rank plain *texts* by signature similarity to *query* and return the top *top_k*.

    ``signatures[i]`` must be the signature of ``texts[i]``.  No keyword
    boosting or relationship expansion; this is the bare scorer, used
    for quick inspection of raw document chunks.
    """
    if len(texts) != len(signatures):
        raise ValueError(f"Length mismatch: {len(texts)} texts vs {len(signatures)} signatures.")

    query_signature = create_signature(query)
    scored = [(cosine_similarity(query_signature, signature), idx) for idx, signature in enumerate(signatures)]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [texts[idx] for _, idx in scored[: max(0, top_k)]]
