"""Similarity search over stored embeddings."""

import logging
from typing import Sequence

import numpy as np

from ..embeddings.codec import VectorCodec
from ..embeddings.generator import EmbeddingGenerator
from ..errors import DimensionMismatch, IndexUnavailable, MalformedBlob, NotInitialized
from ..models import SearchHit, TopicMatch
from ..storage.base import EmbeddingStoreBase

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.7
DEFAULT_LIMIT = 20
# hits fetched per requested topic before grouping
TOPIC_OVERFETCH = 5


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """``1 - cos(a, b)``; 1.0 when either vector has zero norm."""
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 1.0
    return 1.0 - float(np.dot(a, b)) / denom


class SimilaritySearch:
    """Two-tier search: the store's ANN index, or an exact scan."""

    def __init__(
        self,
        store: EmbeddingStoreBase,
        codec: VectorCodec,
        generator: EmbeddingGenerator | None = None,
    ):
        self.store = store
        self.codec = codec
        self.generator = generator

    @property
    def dimension(self) -> int:
        return self.codec.dimension

    def _check(self, query_vector: Sequence[float]) -> None:
        if len(query_vector) != self.dimension:
            raise DimensionMismatch(self.dimension, len(query_vector))

    def approx_search(
        self,
        query_vector: Sequence[float],
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
        node_type: str | None = None,
    ) -> list[SearchHit]:
        """Query the ANN index; results may miss some true neighbours."""
        self._check(query_vector)
        if limit <= 0:
            return []
        matches = self.store.approx_index_query(self.codec.encode(query_vector), limit, node_type=node_type)
        hits = [
            SearchHit(m.node_id, m.role, m.distance, m.metadata)
            for m in matches
            if m.distance <= threshold
        ]
        hits.sort(key=lambda h: h.distance)
        return hits[:limit]

    def exact_search(
        self,
        query_vector: Sequence[float],
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
        node_type: str | None = None,
    ) -> list[SearchHit]:
        """Scan every stored vector and rank by cosine distance."""
        self._check(query_vector)
        if limit <= 0:
            return []
        query = np.asarray(query_vector, dtype=np.float32)

        hits = []
        for row in self.store.scan_all_embeddings(node_type):
            try:
                vec = self.codec.decode_array(row.blob)
            except MalformedBlob as e:
                logger.warning("Skipping malformed embedding %s::%s: %s", row.node_id, row.role, e)
                continue
            distance = cosine_distance(query, vec)
            if distance <= threshold:
                hits.append(SearchHit(row.node_id, row.role, distance, row.metadata))

        hits.sort(key=lambda h: h.distance)
        return hits[:limit]

    def search(
        self,
        query_vector: Sequence[float],
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
        exact: bool = False,
        node_type: str | None = None,
    ) -> list[SearchHit]:
        """Approximate search, falling back to an exact scan if the index fails.

        *node_type* restricts hits to units whose source node has that type.
        """
        if exact:
            return self.exact_search(query_vector, threshold, limit, node_type)
        try:
            return self.approx_search(query_vector, threshold, limit, node_type)
        except IndexUnavailable as e:
            logger.warning("ANN index unavailable, using exact scan: %s", e)
            return self.exact_search(query_vector, threshold, limit, node_type)

    def _embed_query(self, query: str) -> list[float]:
        if self.generator is None:
            raise NotInitialized("No embedding generator configured for text search")
        return self.generator.embed(query)

    def search_text(
        self,
        query: str,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
        exact: bool = False,
        node_type: str | None = None,
    ) -> list[SearchHit]:
        """Embed *query* and search with it."""
        return self.search(self._embed_query(query), threshold, limit, exact=exact, node_type=node_type)

    def search_topics(
        self,
        query: str,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
        exact: bool = False,
        node_type: str | None = None,
    ) -> list[TopicMatch]:
        """Rank topics by their best-matching unit."""
        hits = self.search_text(query, threshold, limit * TOPIC_OVERFETCH, exact=exact, node_type=node_type)

        best: dict[str, TopicMatch] = {}
        for hit in hits:
            topic_id = hit.metadata.topic_id or hit.node_id
            current = best.get(topic_id)
            if current is None or hit.distance < current.distance:
                best[topic_id] = TopicMatch(topic_id, hit.distance, hit.node_id, hit.role)

        return sorted(best.values(), key=lambda m: m.distance)[:limit]
