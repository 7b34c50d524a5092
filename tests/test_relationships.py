"""Tests for relationship inference between knowledge chunks."""

from andrew.src.core.features import create_signature, extract_keywords
from andrew.src.core.models import EnhancedChunk, KnowledgeChunk
from andrew.src.core.relationships import infer_relationships, is_related


def _enhance(chunk_id, title, content, keywords=(), related=None, signature=None) -> EnhancedChunk:
    chunk = KnowledgeChunk(id=chunk_id, title=title, content=content, keywords=list(keywords), relatedChunks=related)
    return EnhancedChunk(chunk=chunk, signature=signature or create_signature(chunk.full_text), auto_keywords=tuple(extract_keywords(chunk.full_text)))


def _axis(index: int) -> tuple[float, ...]:
    return tuple(1.0 if i == index else 0.0 for i in range(26))


class TestIsRelated:
    def test_two_shared_keywords_relate(self):
        a = _enhance("a", "A", "zz", keywords=["billing", "invoice"], signature=_axis(0))
        b = _enhance("b", "B", "yy", keywords=["invoice", "billing"], signature=_axis(1))
        assert is_related(a, b)

    def test_one_shared_keyword_is_not_enough(self):
        a = _enhance("a", "A", "zz", keywords=["billing", "invoice"], signature=_axis(0))
        b = _enhance("b", "B", "yy", keywords=["invoice", "login"], signature=_axis(1))
        assert not is_related(a, b)

    def test_overlap_counts_auto_keywords(self):
        a = _enhance("a", "A", "refund policy", keywords=["billing"], signature=_axis(0))
        b = _enhance("b", "B", "refund", keywords=["billing"], signature=_axis(1))
        assert "refund" in b.auto_keywords
        assert is_related(a, b)

    def test_similar_signatures_relate(self):
        a = _enhance("a", "A", "x", signature=_axis(0))
        b = _enhance("b", "B", "y", signature=_axis(0))
        assert is_related(a, b)

    def test_similarity_threshold_is_strict(self):
        a = _enhance("a", "A", "x", signature=_axis(0))
        b = _enhance("b", "B", "y", signature=_axis(0))
        assert not is_related(a, b, threshold=1.0)


class TestInferRelationships:
    def test_curated_relations_are_never_overwritten(self):
        chunks = [
            _enhance("a", "A", "x", keywords=["k1", "k2"], related=["c"], signature=_axis(0)),
            _enhance("b", "B", "y", keywords=["k1", "k2"], signature=_axis(0)),
            _enhance("c", "C", "z", signature=_axis(5)),
        ]
        graph = infer_relationships(chunks)
        assert graph["a"] == ("c",)
        assert graph["b"] == ("a",)

    def test_empty_curated_list_is_replaced_by_inference(self):
        chunks = [
            _enhance("a", "A", "x", keywords=["k1", "k2"], related=[], signature=_axis(0)),
            _enhance("b", "B", "y", keywords=["k1", "k2"], signature=_axis(1)),
        ]
        assert infer_relationships(chunks) == {"a": ("b",), "b": ("a",)}

    def test_unrelated_chunks_get_empty_lists(self):
        chunks = [_enhance("a", "A", "x", signature=_axis(0)), _enhance("b", "B", "y", signature=_axis(1))]
        assert infer_relationships(chunks) == {"a": (), "b": ()}

    def test_never_self_related_and_keeps_corpus_order(self):
        chunks = [_enhance(chunk_id, chunk_id.upper(), "q", signature=_axis(2)) for chunk_id in ("a", "b", "c")]
        graph = infer_relationships(chunks)
        assert graph == {"a": ("b", "c"), "b": ("a", "c"), "c": ("a", "b")}

    def test_curated_ids_are_kept_even_if_unknown(self):
        chunks = [_enhance("a", "A", "x", related=["ghost"], signature=_axis(0))]
        assert infer_relationships(chunks) == {"a": ("ghost",)}
