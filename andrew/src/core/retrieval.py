"""
Andrew - Retrieval Engine
==========================
Selects and ranks the knowledge chunks most relevant to a user query
and renders them as the context block injected into the system prompt.

Lifecycle
---------
``UNINITIALIZED`` → ``READY``.  ``initialize`` builds an immutable
corpus snapshot (features for every chunk, id lookup map, relation
graph) under a lock, so concurrent cold-start requests build it exactly
once.  Queries read the current snapshot without locking.

Re-initialisation
-----------------
- Same system prompt over a non-empty corpus → no-op.
- Anything else → a fresh snapshot is built and swapped in atomically.
  Queries already running finish against the snapshot they started on.

Query flow (``retrieve``)
-------------------------
1. Refuse with ``NotInitializedError`` before ``READY``.
2. Combine query + conversation history; extract signature + keywords.
3. Score the first ``candidate_pool_size`` chunks (corpus order):
   cosine similarity + 0.15 per curated keyword found in the combined
   query (case-insensitive substring) + 0.05 per auto keyword shared
   with the query keywords.
4. Stable sort descending; the top ``max_chunks`` are *primary*.
5. Relationship expansion: related ids of the primaries that are not
   primaries themselves, de-duplicated, resolved through the id map;
   the first ``max_related_chunks`` that resolve are *secondary*.

Usage:
    from andrew.src.core.retrieval import get_retrieval_engine
    engine = get_retrieval_engine()
    engine.initialize(config.knowledge_base, config.system_prompt)
    context = engine.get_relevant_context("How do I reset my password?", history, 3)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from andrew.config.settings import settings
from andrew.src.core.exceptions import NotInitializedError
from andrew.src.core.features import CharFrequencyExtractor, FeatureExtractor
from andrew.src.core.models import EnhancedChunk, KnowledgeChunk, RetrievedChunk, Signature
from andrew.src.core.relationships import infer_relationships
from andrew.src.core.similarity import cosine_similarity
from andrew.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Ranking constants ──────────────────────────────────────────────────
CANDIDATE_POOL_SIZE = 50
MAX_RELATED_CHUNKS = 2
MANUAL_KEYWORD_BOOST = 0.15
AUTO_KEYWORD_BOOST = 0.05

RELATED_NOTE = " (Related Information)"
SECTION_DELIMITER = "\n\n---\n\n"


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class _CorpusSnapshot:
    system_prompt: str
    chunks: tuple[EnhancedChunk, ...]
    lookup: Mapping[str, EnhancedChunk]


@dataclass(frozen=True, slots=True)
class _QueryFeatures:
    text_lower: str
    signature: Signature
    keywords: frozenset[str]


class RetrievalEngine:
    """
    In-memory retrieval over a small, static knowledge base.

    Parameters
    ----------
    extractor
        Any ``FeatureExtractor``.  Defaults to the 26-letter
        character-frequency extractor.
    candidate_pool_size
        Number of chunks (corpus prefix) scored per query.
    max_related_chunks
        Cap on secondary results added by relationship expansion.
    """

    __slots__ = ("_extractor", "_candidate_pool_size", "_max_related_chunks", "_snapshot", "_init_lock")

    def __init__(self, extractor: FeatureExtractor | None = None, candidate_pool_size: int = CANDIDATE_POOL_SIZE, max_related_chunks: int = MAX_RELATED_CHUNKS) -> None:
        self._extractor: FeatureExtractor = extractor or CharFrequencyExtractor()
        self._candidate_pool_size = max(0, candidate_pool_size)
        self._max_related_chunks = max(0, max_related_chunks)
        self._snapshot: _CorpusSnapshot | None = None
        self._init_lock = threading.Lock()

    # ══════════════════════════════════════════════════════════════════
    #  LIFECYCLE
    # ══════════════════════════════════════════════════════════════════

    @property
    def state(self) -> EngineState:
        return EngineState.READY if self._snapshot is not None else EngineState.UNINITIALIZED


    def is_ready(self) -> bool:
        return self._snapshot is not None


    def initialize(self, chunks: Sequence[KnowledgeChunk | Mapping[str, Any]], system_prompt: str) -> None:
        """
        Build the enhanced corpus and move to ``READY``.

        Plain dicts in the wire shape are accepted and validated.  Safe
        to call from several threads at once: only one build runs.

        Raises
        ------
        ValueError
            If two chunks share an id.
        """
        if self._is_current(system_prompt):
            logger.debug("[RETRIEVAL] Already initialised with the same system prompt — skipping.")
            return

        with self._init_lock:
            if self._is_current(system_prompt):
                logger.debug("[RETRIEVAL] Initialised by a concurrent caller — skipping.")
                return

            replacing = self._snapshot is not None
            t_start = time.perf_counter()
            snapshot = self._build_snapshot([self._coerce(chunk) for chunk in chunks], system_prompt)
            self._snapshot = snapshot
            build_ms = (time.perf_counter() - t_start) * 1000

        if replacing:
            logger.warning("[RETRIEVAL] Corpus replaced: %d chunk(s) in %.1fms.", len(snapshot.chunks), build_ms)
        else:
            logger.info("[RETRIEVAL] Initialised with %d chunk(s) in %.1fms.", len(snapshot.chunks), build_ms)


    def get_system_prompt(self) -> str:
        snapshot = self._snapshot
        return snapshot.system_prompt if snapshot is not None else ""


    def get_chunk_ids(self) -> list[str]:
        """All chunk ids in corpus order (diagnostics)."""
        snapshot = self._snapshot
        if snapshot is None:
            return []
        return [chunk.id for chunk in snapshot.chunks]


    def get_chunk(self, chunk_id: str) -> EnhancedChunk | None:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return snapshot.lookup.get(chunk_id)

    # ══════════════════════════════════════════════════════════════════
    #  QUERYING
    # ══════════════════════════════════════════════════════════════════

    def retrieve(self, query: str, conversation_history: str = "", max_chunks: int = 3) -> list[RetrievedChunk]:
        """
        Rank the corpus against *query* + *conversation_history*.

        Returns primary results in rank order followed by secondary
        (relationship-expanded) results in resolution order.

        Raises
        ------
        NotInitializedError
            If ``initialize`` has not completed yet.
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise NotInitializedError()

        t_start = time.perf_counter()
        features = self._query_features(f"{query} {conversation_history}")

        candidates = snapshot.chunks[: self._candidate_pool_size]
        scored = [RetrievedChunk(chunk=chunk, score=self._score(chunk, features), is_primary=True) for chunk in candidates]
        # sorted() is stable: equal scores keep corpus order
        primary = sorted(scored, key=lambda item: item.score, reverse=True)[: max(0, max_chunks)]
        secondary = self._expand(primary, snapshot, features)

        logger.debug("[RETRIEVAL] Scored %d/%d chunk(s) → %d primary + %d related in %.1fms.", len(candidates), len(snapshot.chunks), len(primary), len(secondary), (time.perf_counter() - t_start) * 1000)
        return primary + secondary


    def get_relevant_context(self, query: str, conversation_history: str = "", max_chunks: int = 3) -> str:
        """
        Return the ranked chunks as one text block.

        Each chunk becomes a ``## Title`` section; relationship-expanded
        chunks carry a ``(Related Information)`` note.  Sections are
        joined with a ``---`` rule.  An empty corpus yields ``""``.
        """
        return self.format_context(self.retrieve(query, conversation_history, max_chunks))


    @classmethod
    def format_context(cls, results: Sequence[RetrievedChunk]) -> str:
        """Render retrieval results in the ``get_relevant_context`` layout."""
        return SECTION_DELIMITER.join(cls._format_section(result) for result in results)

    # ══════════════════════════════════════════════════════════════════
    #  INTERNALS
    # ══════════════════════════════════════════════════════════════════

    def _is_current(self, system_prompt: str) -> bool:
        snapshot = self._snapshot
        return snapshot is not None and bool(snapshot.chunks) and snapshot.system_prompt == system_prompt


    @staticmethod
    def _coerce(chunk: KnowledgeChunk | Mapping[str, Any]) -> KnowledgeChunk:
        if isinstance(chunk, KnowledgeChunk):
            return chunk
        return KnowledgeChunk.model_validate(chunk)


    def _build_snapshot(self, chunks: list[KnowledgeChunk], system_prompt: str) -> _CorpusSnapshot:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for chunk in chunks:
            if chunk.id in seen:
                duplicates.add(chunk.id)
            seen.add(chunk.id)
        if duplicates:
            raise ValueError(f"Duplicate chunk ids: {', '.join(sorted(duplicates))}")

        enhanced = []
        for chunk in chunks:
            full_text = chunk.full_text
            enhanced.append(EnhancedChunk(chunk=chunk, signature=self._extractor.signature(full_text), auto_keywords=tuple(self._extractor.keywords(full_text))))

        graph = infer_relationships(enhanced)
        resolved = tuple(EnhancedChunk(chunk=item.chunk, signature=item.signature, auto_keywords=item.auto_keywords, related_ids=graph[item.id]) for item in enhanced)
        lookup = {item.id: item for item in resolved}
        return _CorpusSnapshot(system_prompt=system_prompt, chunks=resolved, lookup=lookup)


    def _query_features(self, combined_query: str) -> _QueryFeatures:
        return _QueryFeatures(text_lower=combined_query.lower(), signature=self._extractor.signature(combined_query), keywords=frozenset(self._extractor.keywords(combined_query)))


    @staticmethod
    def _score(chunk: EnhancedChunk, features: _QueryFeatures) -> float:
        score = cosine_similarity(features.signature, chunk.signature)
        manual_matches = sum(1 for keyword in chunk.keywords if keyword.lower() in features.text_lower)
        auto_matches = sum(1 for keyword in chunk.auto_keywords if keyword in features.keywords)
        return score + manual_matches * MANUAL_KEYWORD_BOOST + auto_matches * AUTO_KEYWORD_BOOST


    def _expand(self, primary: list[RetrievedChunk], snapshot: _CorpusSnapshot, features: _QueryFeatures) -> list[RetrievedChunk]:
        primary_ids = {result.chunk.id for result in primary}
        # dict keeps first-encountered order while de-duplicating
        pending: dict[str, None] = {}
        for result in primary:
            for related_id in result.chunk.related_ids:
                if related_id not in primary_ids:
                    pending.setdefault(related_id, None)

        secondary: list[RetrievedChunk] = []
        for related_id in pending:
            if len(secondary) >= self._max_related_chunks:
                break
            target = snapshot.lookup.get(related_id)
            if target is None:
                logger.debug("[RETRIEVAL] Related id '%s' does not resolve — skipped.", related_id)
                continue
            secondary.append(RetrievedChunk(chunk=target, score=self._score(target, features), is_primary=False))
        return secondary


    @staticmethod
    def _format_section(result: RetrievedChunk) -> str:
        note = "" if result.is_primary else RELATED_NOTE
        return f"## {result.chunk.title}{note}\n\n{result.chunk.content}"


    def __repr__(self) -> str:
        return f"RetrievalEngine(state={self.state.value}, chunks={len(self.get_chunk_ids())}, extractor={self._extractor!r})"


# ══════════════════════════════════════════════════════════════════════
#  PROCESS-WIDE ACCESSOR
# ══════════════════════════════════════════════════════════════════════

_ENGINE_LOCK = threading.Lock()
_engine: RetrievalEngine | None = None


def get_retrieval_engine() -> RetrievalEngine:
    """Return (or create) the process-wide ``RetrievalEngine``."""
    global _engine
    if _engine is None:
        with _ENGINE_LOCK:
            if _engine is None:
                _engine = RetrievalEngine(candidate_pool_size=settings.CANDIDATE_POOL_SIZE, max_related_chunks=settings.MAX_RELATED_CHUNKS)
                logger.info("[RETRIEVAL] Engine created (singleton).")
    return _engine
