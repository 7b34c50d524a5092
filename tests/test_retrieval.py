"""Tests for the retrieval engine: lifecycle, ranking, expansion and formatting."""

import threading

import pytest

from andrew.src.core import retrieval as retrieval_module
from andrew.src.core.exceptions import NotInitializedError
from andrew.src.core.features import CharFrequencyExtractor
from andrew.src.core.models import KnowledgeChunk
from andrew.src.core.retrieval import RELATED_NOTE, SECTION_DELIMITER, EngineState, RetrievalEngine, get_retrieval_engine

SYSTEM_PROMPT = "You are a test assistant."


class CountingExtractor(CharFrequencyExtractor):
    """Character-frequency extractor that counts signature calls."""

    __slots__ = ("calls", "_lock")

    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def signature(self, text):
        with self._lock:
            self.calls += 1
        return super().signature(text)


def _ten_chunk_corpus() -> list[KnowledgeChunk]:
    """Three chunks the query matches strongly, each pointing at two chunks outside the top three."""
    strong = [
        ("c0", ["amber", "apple", "arrow", "atlas", "azure"], ["c3", "c4"]),
        ("c1", ["basil", "beach", "berry", "bison", "blaze"], ["c5", "c6"]),
        ("c2", ["cedar", "cobra", "coral", "crane", "cider"], ["c7", "c8"]),
    ]
    chunks = [
        KnowledgeChunk(id=chunk_id, title=f"Topic {chunk_id}", content=" ".join(keywords), keywords=keywords, relatedChunks=related)
        for chunk_id, keywords, related in strong
    ]
    for idx in range(3, 10):
        chunks.append(KnowledgeChunk(id=f"c{idx}", title=f"Filler {idx}", content=f"unrelated filler number {idx}", keywords=[f"qqfiller{idx}"]))
    return chunks


_TEN_CHUNK_QUERY = "amber apple arrow atlas azure basil beach berry bison blaze cedar cobra coral crane cider"


class TestLifecycle:
    def test_starts_uninitialized(self):
        engine = RetrievalEngine()
        assert engine.state is EngineState.UNINITIALIZED
        assert not engine.is_ready()
        assert engine.get_system_prompt() == ""
        assert engine.get_chunk_ids() == []
        assert engine.get_chunk("billing") is None

    def test_retrieve_before_initialize_raises(self):
        engine = RetrievalEngine()
        with pytest.raises(NotInitializedError, match="not initialized"):
            engine.retrieve("anything")
        with pytest.raises(NotInitializedError):
            engine.get_relevant_context("anything")

    def test_initialize_moves_to_ready(self, ready_engine, support_chunks):
        assert ready_engine.state is EngineState.READY
        assert ready_engine.get_system_prompt() == SYSTEM_PROMPT
        assert ready_engine.get_chunk_ids() == [chunk.id for chunk in support_chunks]

    def test_enhanced_chunks_carry_features(self, ready_engine):
        chunk = ready_engine.get_chunk("billing")
        assert len(chunk.signature) == 26
        assert "invoice" in chunk.auto_keywords
        assert chunk.related_ids == ("payments",)

    def test_accepts_wire_dicts(self):
        engine = RetrievalEngine()
        engine.initialize([{"id": "a", "title": "A", "content": "alpha", "keywords": [], "relatedChunks": None}], "prompt")
        assert engine.get_chunk_ids() == ["a"]

    def test_duplicate_ids_raise(self):
        engine = RetrievalEngine()
        chunk = KnowledgeChunk(id="dup", title="A", content="a")
        with pytest.raises(ValueError, match="dup"):
            engine.initialize([chunk, chunk], "prompt")
        assert not engine.is_ready()

    def test_same_prompt_is_idempotent(self, support_chunks):
        extractor = CountingExtractor()
        engine = RetrievalEngine(extractor=extractor)
        engine.initialize(support_chunks, SYSTEM_PROMPT)
        before = engine.retrieve("refund invoice")
        calls_after_first = extractor.calls

        engine.initialize(support_chunks[:1], SYSTEM_PROMPT)

        assert extractor.calls == calls_after_first
        assert len(engine.get_chunk_ids()) == len(support_chunks)
        assert engine.retrieve("refund invoice") == before

    def test_different_prompt_replaces_corpus(self, support_chunks):
        engine = RetrievalEngine()
        engine.initialize(support_chunks, "first prompt")
        engine.initialize(support_chunks[:2], "second prompt")
        assert engine.get_system_prompt() == "second prompt"
        assert engine.get_chunk_ids() == ["billing", "payments"]

    def test_empty_corpus_is_rebuilt_on_next_initialize(self, support_chunks):
        engine = RetrievalEngine()
        engine.initialize([], SYSTEM_PROMPT)
        assert engine.is_ready()
        assert engine.get_relevant_context("anything") == ""

        engine.initialize(support_chunks, SYSTEM_PROMPT)
        assert len(engine.get_chunk_ids()) == len(support_chunks)

    def test_concurrent_initialize_builds_once(self, support_chunks):
        extractor = CountingExtractor()
        engine = RetrievalEngine(extractor=extractor)
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            engine.initialize(support_chunks, SYSTEM_PROMPT)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert extractor.calls == len(support_chunks)
        assert engine.get_chunk_ids() == [chunk.id for chunk in support_chunks]


class TestRetrieve:
    def test_keyword_match_ranks_disjoint_chunk_first(self):
        engine = RetrievalEngine()
        engine.initialize([
            KnowledgeChunk(id="b", title="Xyz", content="xyz zzy", keywords=["xylophone", "zebra"]),
            KnowledgeChunk(id="a", title="Aab", content="aab bba", keywords=["apple", "banana"]),
        ], SYSTEM_PROMPT)

        results = engine.retrieve("apple banana", "", 2)

        assert [result.chunk.id for result in results] == ["a", "b"]
        assert results[0].score > results[1].score

    def test_billing_query_ranks_billing_first(self, billing_login_chunks):
        engine = RetrievalEngine()
        engine.initialize(billing_login_chunks, SYSTEM_PROMPT)

        results = engine.retrieve("How do I get a refund on my invoice?", "", 1)
        primary = [result for result in results if result.is_primary]

        assert [result.chunk.id for result in primary] == ["x"]

    def test_billing_query_context_leads_with_billing(self, billing_login_chunks):
        engine = RetrievalEngine()
        engine.initialize(billing_login_chunks, SYSTEM_PROMPT)

        context = engine.get_relevant_context("How do I get a refund on my invoice?", "", 1)

        assert context.split(SECTION_DELIMITER)[0] == "## Billing\n\ninvoice payment refund"
        assert "## Login\n\n" not in context

    def test_billing_and_login_are_related_by_signature(self, billing_login_chunks):
        # No shared keywords, but the letter distributions are close enough
        engine = RetrievalEngine()
        engine.initialize(billing_login_chunks, SYSTEM_PROMPT)

        context = engine.get_relevant_context("How do I get a refund on my invoice?", "", 1)

        assert engine.get_chunk("x").related_ids == ("y",)
        assert context == "## Billing\n\ninvoice payment refund" + SECTION_DELIMITER + "## Login" + RELATED_NOTE + "\n\npassword reset account"

    def test_manual_keyword_boost(self):
        engine = RetrievalEngine()
        engine.initialize([
            KnowledgeChunk(id="plain", title="Alpha", content="alpha", keywords=[]),
            KnowledgeChunk(id="tagged", title="Alpha", content="alpha", keywords=["alpha"]),
        ], SYSTEM_PROMPT)

        results = engine.retrieve("alpha", "", 2)

        # identical letter distribution: cosine 1.0 plus 0.05 for the shared auto keyword
        assert [result.chunk.id for result in results] == ["tagged", "plain"]
        assert results[1].score == pytest.approx(1.05)
        assert results[0].score == pytest.approx(1.20)

    def test_manual_keywords_match_as_substrings_of_history(self):
        engine = RetrievalEngine()
        engine.initialize([
            KnowledgeChunk(id="a", title="Alpha", content="alpha", keywords=[]),
            KnowledgeChunk(id="b", title="Alpha", content="alpha", keywords=["Warranty"]),
        ], SYSTEM_PROMPT)

        results = engine.retrieve("alpha", "user: my warranty expired", 1)

        assert results[0].chunk.id == "b"
        assert results[0].score - results[1].score == pytest.approx(0.15)

    def test_ties_keep_corpus_order(self):
        engine = RetrievalEngine()
        engine.initialize([KnowledgeChunk(id=f"t{idx}", title="Same", content="same text") for idx in range(4)], SYSTEM_PROMPT)

        results = engine.retrieve("same text", "", 4)

        assert [result.chunk.id for result in results if result.is_primary] == ["t0", "t1", "t2", "t3"]

    def test_primary_count_is_bounded(self, ready_engine, support_chunks):
        for max_chunks in (0, 1, 2, 10):
            primary = [result for result in ready_engine.retrieve("password", "", max_chunks) if result.is_primary]
            assert len(primary) == min(max_chunks, len(support_chunks))

    def test_negative_max_chunks_returns_nothing(self, ready_engine):
        assert ready_engine.retrieve("password", "", -1) == []

    def test_candidate_pool_limits_scoring(self):
        engine = RetrievalEngine(candidate_pool_size=2)
        engine.initialize([
            KnowledgeChunk(id="a", title="Zzz", content="zzz"),
            KnowledgeChunk(id="b", title="Yyy", content="yyy"),
            KnowledgeChunk(id="c", title="Refund", content="refund invoice", keywords=["refund"]),
        ], SYSTEM_PROMPT)

        ids = [result.chunk.id for result in engine.retrieve("refund", "", 3) if result.is_primary]

        assert "c" not in ids
        assert len(ids) == 2


class TestRelationshipExpansion:
    def test_ten_chunk_corpus_expands_to_two_related(self):
        engine = RetrievalEngine()
        corpus = _ten_chunk_corpus()
        engine.initialize(corpus, SYSTEM_PROMPT)

        results = engine.retrieve(_TEN_CHUNK_QUERY, "", 3)
        primary = [result for result in results if result.is_primary]
        secondary = [result for result in results if not result.is_primary]

        assert {result.chunk.id for result in primary} == {"c0", "c1", "c2"}
        assert results[:3] == primary
        related_in_order = [related_id for result in primary for related_id in result.chunk.related_ids]
        assert [result.chunk.id for result in secondary] == related_in_order[:2]
        assert len(results) == 5
        assert len({result.chunk.id for result in results}) == 5

    def test_related_primaries_are_not_repeated(self):
        engine = RetrievalEngine()
        engine.initialize([
            KnowledgeChunk(id="a", title="A", content="amber", keywords=["amber"], relatedChunks=["b", "c"]),
            KnowledgeChunk(id="b", title="B", content="basil", keywords=["basil"], relatedChunks=["a", "c"]),
            KnowledgeChunk(id="c", title="C", content="zzz", keywords=["qqq"], relatedChunks=["a"]),
        ], SYSTEM_PROMPT)

        results = engine.retrieve("amber basil", "", 2)

        assert {result.chunk.id for result in results if result.is_primary} == {"a", "b"}
        assert [(result.chunk.id, result.is_primary) for result in results[2:]] == [("c", False)]

    def test_unknown_related_ids_are_skipped(self):
        engine = RetrievalEngine()
        engine.initialize([
            KnowledgeChunk(id="a", title="A", content="amber", keywords=["amber"], relatedChunks=["ghost", "b"]),
            KnowledgeChunk(id="b", title="B", content="zzz", keywords=["qqq"], relatedChunks=["a"]),
        ], SYSTEM_PROMPT)

        results = engine.retrieve("amber", "", 1)

        assert [result.chunk.id for result in results] == ["a", "b"]
        assert results[1].is_primary is False

    def test_max_related_chunks_is_configurable(self):
        engine = RetrievalEngine(max_related_chunks=0)
        engine.initialize(_ten_chunk_corpus(), SYSTEM_PROMPT)
        assert all(result.is_primary for result in engine.retrieve(_TEN_CHUNK_QUERY, "", 3))


class TestFormatting:
    def test_sections_and_related_note(self, ready_engine):
        context = ready_engine.get_relevant_context("refund for my invoice billing", "", 1)
        sections = context.split(SECTION_DELIMITER)

        assert sections[0].startswith("## Billing\n\n")
        assert sections[1].startswith("## Payment Methods" + RELATED_NOTE + "\n\n")

    def test_no_results_is_empty_string(self, ready_engine):
        assert ready_engine.get_relevant_context("anything", "", 0) == ""


def test_process_wide_engine_is_shared(monkeypatch):
    monkeypatch.setattr(retrieval_module, "_engine", None)
    first = get_retrieval_engine()
    assert get_retrieval_engine() is first
