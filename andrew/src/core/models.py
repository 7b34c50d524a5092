"""
Andrew - Domain Models
=======================
Wire-level models are ``pydantic`` so the knowledge-base document and
chat requests are validated at the boundary.  Derived, in-process
records (``EnhancedChunk``, ``RetrievedChunk``) are frozen dataclasses:
they are built once and only ever read afterwards.

Wire shape of a knowledge chunk::

    {"id": str, "title": str, "content": str,
     "keywords": [str, ...], "relatedChunks": [str, ...]?}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ── Type aliases ───────────────────────────────────────────────────────
Signature = tuple[float, ...]
Role = Literal["user", "assistant", "system"]


class KnowledgeChunk(BaseModel):
    """One curated unit of knowledge-base content."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    title: str
    content: str
    keywords: list[str] = Field(default_factory=list)
    related_chunks: list[str] = Field(default_factory=list, alias="relatedChunks")

    @field_validator("related_chunks", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def full_text(self) -> str:
        """Title and body as one string, the input of feature extraction."""
        return f"{self.title}\n\n{self.content}"


class KnowledgeBaseConfig(BaseModel):
    """The configuration document: system prompt plus the chunk list."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    system_prompt: str = Field(alias="systemPrompt")
    knowledge_base: list[KnowledgeChunk] = Field(default_factory=list, alias="knowledgeBase")

    @field_validator("knowledge_base")
    @classmethod
    def _unique_ids(cls, chunks: list[KnowledgeChunk]) -> list[KnowledgeChunk]:
        seen: set[str] = set()
        duplicates: list[str] = []
        for chunk in chunks:
            if chunk.id in seen:
                duplicates.append(chunk.id)
            seen.add(chunk.id)
        if duplicates:
            raise ValueError(f"duplicate chunk ids: {', '.join(sorted(set(duplicates)))}")
        return chunks


@dataclass(frozen=True, slots=True)
class EnhancedChunk:
    """
    A ``KnowledgeChunk`` plus its precomputed retrieval features.

    ``related_ids`` holds the curated relations when the chunk has any,
    otherwise the inferred ones.
    """

    chunk: KnowledgeChunk
    signature: Signature
    auto_keywords: tuple[str, ...]
    related_ids: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.chunk.id

    @property
    def title(self) -> str:
        return self.chunk.title

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def keywords(self) -> list[str]:
        return self.chunk.keywords


@dataclass(frozen=True, slots=True)
class RetrievedChunk:
    """One element of a retrieval result."""

    chunk: EnhancedChunk
    score: float
    is_primary: bool


class ChatMessage(BaseModel):
    role: Role
    content: str


class ChatResult(BaseModel):
    """Answer returned by the chat pipeline."""

    response: str
    model: str
    debug: dict[str, Any] = Field(default_factory=dict)
