"""
Andrew - Exception Hierarchy
=============================
Every error raised on purpose inside Andrew derives from ``AndrewError``
so callers can catch the whole family at a single seam.

Retrieval errors are local to the engine and never fatal for the
process: the chat pipeline catches ``RetrievalError`` and falls back to
prompting without knowledge-base context.  ``ChatError`` subclasses are
surfaced to the HTTP layer, which maps them to status codes.
"""

from __future__ import annotations


class AndrewError(Exception):
    """Base class for all Andrew errors."""


# ── Retrieval ─────────────────────────────────────────────────────────

class RetrievalError(AndrewError):
    """Base class for retrieval-engine failures."""


class NotInitializedError(RetrievalError):
    """Raised when the engine is queried before ``initialize`` completed."""

    def __init__(self, message: str = "Retrieval engine not initialized") -> None:
        super().__init__(message)


class DimensionMismatchError(RetrievalError):
    """Two signature vectors of different length were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vectors must have the same length (got {left} and {right})")
        self.left = left
        self.right = right


# ── Knowledge base source ─────────────────────────────────────────────

class KnowledgeBaseError(AndrewError):
    """The knowledge-base document is missing or invalid."""


# ── Chat pipeline ─────────────────────────────────────────────────────

class ChatError(AndrewError):
    """Base class for chat-pipeline failures surfaced to the HTTP layer."""


class MissingAPIKeyError(ChatError):
    """Neither the request nor the server configuration provides an API key."""


class RateLimitError(ChatError):
    """The model provider rejected the call for rate or quota reasons."""


class LLMUnavailableError(ChatError):
    """Both the primary and the fallback model failed."""

    def __init__(self, primary_error: str, fallback_error: str) -> None:
        super().__init__(f"Primary model failed ({primary_error}); fallback model failed ({fallback_error})")
        self.primary_error = primary_error
        self.fallback_error = fallback_error
