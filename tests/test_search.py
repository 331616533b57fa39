"""Tests for exact and approximate similarity search."""

import pytest

from conftest import FakeBackend
from topicvec.embeddings import EmbeddingCache, EmbeddingGenerator, VectorCodec
from topicvec.errors import DimensionMismatch, IndexUnavailable, NotInitialized
from topicvec.models import EmbeddingMetadata
from topicvec.query.search import SimilaritySearch
from topicvec.storage.memory import MemoryEmbeddingStore


def _meta(topic_id: str, role: str = "section", node_type: str = "text") -> EmbeddingMetadata:
    return EmbeddingMetadata(
        type=role, topic_id=topic_id, generated_at="2024-01-01T00:00:00+00:00",
        token_count=10, depth=1, node_type=node_type,
    )


@pytest.fixture
def codec():
    return VectorCodec(3)


@pytest.fixture
def store(codec):
    store = MemoryEmbeddingStore(dimension=3)
    store.write_embedding("a", "section", codec.encode([1.0, 0.0, 0.0]), _meta("t1"))
    store.write_embedding("b", "section", codec.encode([1.0, 1.0, 0.0]), _meta("t1", node_type="note"))
    store.write_embedding("c", "section", codec.encode([0.0, 1.0, 0.0]), _meta("t2"))
    store.write_embedding("d", "section", codec.encode([-1.0, 0.0, 0.0]), _meta("t2"))
    return store


def test_exact_search_orders_and_filters(store, codec):
    search = SimilaritySearch(store, codec)
    hits = search.exact_search([1.0, 0.0, 0.0], threshold=0.7, limit=10)
    assert [h.node_id for h in hits] == ["a", "b"]
    assert hits[0].distance == pytest.approx(0.0, abs=1e-6)
    assert hits[1].distance == pytest.approx(1 - 2 ** -0.5, abs=1e-6)


def test_exact_search_full_range_and_limit(store, codec):
    search = SimilaritySearch(store, codec)
    hits = search.exact_search([1.0, 0.0, 0.0], threshold=2.0, limit=10)
    assert [h.node_id for h in hits] == ["a", "b", "c", "d"]
    assert hits[-1].distance == pytest.approx(2.0)
    assert [h.node_id for h in search.exact_search([1.0, 0.0, 0.0], threshold=2.0, limit=1)] == ["a"]


def test_exact_search_node_type_filter(store, codec):
    search = SimilaritySearch(store, codec)
    hits = search.exact_search([1.0, 0.0, 0.0], threshold=2.0, limit=10, node_type="note")
    assert [h.node_id for h in hits] == ["b"]


def test_malformed_blob_is_skipped(store, codec):
    store.write_embedding("bad", "section", b"\x00" * 5, _meta("t3"))
    hits = SimilaritySearch(store, codec).exact_search([1.0, 0.0, 0.0], threshold=2.0, limit=10)
    assert "bad" not in [h.node_id for h in hits]
    assert len(hits) == 4


def test_zero_vector_has_distance_one(codec):
    store = MemoryEmbeddingStore(dimension=3)
    store.write_embedding("z", "section", codec.encode([0.0, 0.0, 0.0]), _meta("t1"))
    hits = SimilaritySearch(store, codec).exact_search([1.0, 0.0, 0.0], threshold=1.0, limit=10)
    assert [(h.node_id, h.distance) for h in hits] == [("z", 1.0)]


def test_query_dimension_checked_first(store, codec):
    search = SimilaritySearch(store, codec)
    with pytest.raises(DimensionMismatch):
        search.exact_search([1.0, 0.0], threshold=1.0, limit=10)
    with pytest.raises(DimensionMismatch):
        search.approx_search([1.0, 0.0], threshold=1.0, limit=10)


def test_approx_search_matches_exact_on_small_store(store, codec):
    search = SimilaritySearch(store, codec)
    approx = search.approx_search([1.0, 0.0, 0.0], threshold=0.7, limit=10)
    assert [h.node_id for h in approx] == ["a", "b"]
    assert approx[0].similarity == pytest.approx(1.0, abs=1e-6)


class BrokenIndexStore(MemoryEmbeddingStore):
    def approx_index_query(self, blob, limit, node_type=None):
        raise IndexUnavailable("index offline")


def test_search_falls_back_to_exact(codec):
    store = BrokenIndexStore(dimension=3)
    store.write_embedding("a", "section", codec.encode([1.0, 0.0, 0.0]), _meta("t1"))
    search = SimilaritySearch(store, codec)

    with pytest.raises(IndexUnavailable):
        search.approx_search([1.0, 0.0, 0.0], threshold=0.7, limit=10)
    assert [h.node_id for h in search.search([1.0, 0.0, 0.0], threshold=0.7, limit=10)] == ["a"]


def test_fallback_keeps_node_type_filter(codec):
    store = BrokenIndexStore(dimension=3)
    store.write_embedding("a", "section", codec.encode([1.0, 0.0, 0.0]), _meta("t1"))
    store.write_embedding("b", "section", codec.encode([1.0, 0.1, 0.0]), _meta("t1", node_type="note"))
    search = SimilaritySearch(store, codec)

    hits = search.search([1.0, 0.0, 0.0], threshold=0.7, limit=10, node_type="note")
    assert [h.node_id for h in hits] == ["b"]


def test_approx_search_node_type_filter(store, codec):
    search = SimilaritySearch(store, codec)
    hits = search.search([1.0, 0.0, 0.0], threshold=2.0, limit=1, node_type="note")
    assert [h.node_id for h in hits] == ["b"]
    assert search.search([1.0, 0.0, 0.0], threshold=2.0, limit=10, node_type="missing") == []


def test_search_topics_node_type_filter(store, codec):
    backend = FakeBackend(dimension=3, vectors={"tomatoes": [1.0, 0.0, 0.0]})
    generator = EmbeddingGenerator(backend, EmbeddingCache(capacity=10), dimension=3)
    search = SimilaritySearch(store, codec, generator)

    matches = search.search_topics("tomatoes", threshold=1.5, limit=10, node_type="note")
    assert [(m.topic_id, m.node_id) for m in matches] == [("t1", "b")]


def test_search_topics_groups_by_best_unit(store, codec):
    backend = FakeBackend(dimension=3, vectors={"tomatoes": [1.0, 0.0, 0.0]})
    generator = EmbeddingGenerator(backend, EmbeddingCache(capacity=10), dimension=3)
    search = SimilaritySearch(store, codec, generator)

    matches = search.search_topics("tomatoes", threshold=1.5, limit=10)
    assert [m.topic_id for m in matches] == ["t1", "t2"]
    assert matches[0].node_id == "a"
    assert matches[1].node_id == "c"
    assert matches[1].distance == pytest.approx(1.0)


def test_text_search_needs_generator(store, codec):
    with pytest.raises(NotInitialized):
        SimilaritySearch(store, codec).search_text("anything")
