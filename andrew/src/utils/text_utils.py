"""
Andrew - Text Utilities
========================
Helpers for turning raw documents into knowledge chunks: cleaning,
paragraph-aware chunking, and id slugs.

These utilities are consumed by the ``KnowledgeBaseBuilder`` and should
remain stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata

# ── Non-printable character pattern ────────────────────────────────────
# Control characters (C0/C1) except \n, \r, \t, plus BOM, zero-width
# characters, soft hyphens and directional marks.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")

_OVERLAP_SENTENCES = 3


def clean_text(text: str) -> str:
    """
    Sanitise raw document text before chunking.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """
    Split *text* on paragraph boundaries into chunks of about *chunk_size* characters.

    A paragraph is never cut.  When a chunk is closed, the next one is
    seeded with the last three sentences of the closed chunk if they fit
    in *overlap* characters, so neighbouring chunks share some context.
    A single paragraph longer than *chunk_size* becomes its own chunk.
    """
    if len(text) <= chunk_size:
        return [text]

    chunks: list[str] = []
    current = ""
    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):
        if current and len(current) + len(paragraph) > chunk_size:
            chunks.append(current)
            tail = " ".join(_SENTENCE_SPLIT_RE.split(current)[-_OVERLAP_SENTENCES:])
            current = tail if len(tail) < overlap else ""

        if current:
            current += "\n\n"
        current += paragraph

    if current:
        chunks.append(current)
    return chunks


def slugify(value: str) -> str:
    """Lowercase ASCII slug: ``"Daily Report (v2).md"`` → ``"daily-report-v2-md"``."""
    normalised = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return _SLUG_RE.sub("-", normalised.lower()).strip("-")
