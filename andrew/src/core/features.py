"""
Andrew - Text Feature Extraction
=================================
Turns raw text into the two features the retrieval engine ranks on:

``signature``
    A 26-dimensional bag-of-characters vector, one bucket per
    lowercase Latin letter, L1-normalised.  This is a crude
    similarity proxy, not a semantic embedding: two texts with a similar
    letter distribution look alike whatever they mean.  Text without a
    single a–z letter yields the all-zero vector.

``keywords``
    The ten most frequent content words (lowercased, punctuation
    stripped, tokens of length ≤ 2 and stop words dropped).  Ties keep
    first-encountered order.

The engine depends on the ``FeatureExtractor`` protocol only, so a real
embedding model can be dropped in without touching the orchestrator.
"""

from __future__ import annotations

import re
import string
from collections import Counter
from typing import Protocol, runtime_checkable

from andrew.src.core.models import Signature

SIGNATURE_DIM = 26
MAX_KEYWORDS = 10
_MIN_KEYWORD_LENGTH = 3

_LETTER_INDEX = {letter: idx for idx, letter in enumerate(string.ascii_lowercase)}

# Anything outside [A-Za-z0-9_] and whitespace (Unicode included) is dropped
_PUNCTUATION_RE = re.compile(r"[^A-Za-z0-9_\s]")

STOP_WORDS: frozenset[str] = frozenset({
    "a", "an", "the", "and", "or", "but", "is", "are", "was", "were", "be", "been", "being",
    "in", "on", "at", "to", "for", "with", "by", "about", "against", "between", "into",
    "through", "during", "before", "after", "above", "below", "from", "up", "down", "of",
    "off", "over", "under",
})


@runtime_checkable
class FeatureExtractor(Protocol):
    """Anything that can turn text into a signature and a keyword list."""

    def signature(self, text: str) -> Signature: ...

    def keywords(self, text: str) -> list[str]: ...


def create_signature(text: str) -> Signature:
    """
    Letter-frequency signature of *text*.

    Entries sum to 1.0 when the text contains at least one a–z letter,
    otherwise every entry is 0.0.
    """
    counts = [0] * SIGNATURE_DIM
    for char in text.lower():
        idx = _LETTER_INDEX.get(char)
        if idx is not None:
            counts[idx] += 1

    total = sum(counts)
    if total == 0:
        return tuple(0.0 for _ in counts)
    return tuple(count / total for count in counts)


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Return up to *limit* salient words of *text*, most frequent first."""
    cleaned = _PUNCTUATION_RE.sub("", text.lower())
    words = [word for word in cleaned.split() if len(word) >= _MIN_KEYWORD_LENGTH and word not in STOP_WORDS]
    # most_common keeps insertion order among equal counts
    return [word for word, _ in Counter(words).most_common(limit)]


class CharFrequencyExtractor:
    """Default ``FeatureExtractor`` built on the module-level functions."""

    __slots__ = ()

    def signature(self, text: str) -> Signature:
        return create_signature(text)

    def keywords(self, text: str) -> list[str]:
        return extract_keywords(text)

    def __repr__(self) -> str:
        return f"CharFrequencyExtractor(dim={SIGNATURE_DIM})"
