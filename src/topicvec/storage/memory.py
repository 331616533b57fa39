"""In-process embedding store.

Keeps raw blobs in a dict and answers index queries with brute-force cosine
distance, which is fine for small corpora and for tests.
"""

import threading

import numpy as np

from ..models import EmbeddingMetadata, StoredEmbedding
from .base import EmbeddingStoreBase, IndexMatch, ScannedEmbedding, record_id


class MemoryEmbeddingStore(EmbeddingStoreBase):
    """Dict-backed embedding store with brute-force similarity queries."""

    def __init__(self, dimension: int = 384):
        self.dimension = dimension
        self._records: dict[str, StoredEmbedding] = {}
        self._lock = threading.Lock()
        self.writes = 0
        self.deletes = 0

    def write_embedding(
        self,
        node_id: str,
        role: str,
        blob: bytes,
        metadata: EmbeddingMetadata,
    ) -> None:
        record = StoredEmbedding(node_id=node_id, role=role, vector=bytes(blob), metadata=metadata)
        with self._lock:
            self._records[record_id(node_id, role)] = record
            self.writes += 1

    def delete_embedding(self, node_id: str, role: str) -> None:
        with self._lock:
            if self._records.pop(record_id(node_id, role), None) is not None:
                self.deletes += 1

    def get_embedding(self, node_id: str, role: str) -> StoredEmbedding | None:
        with self._lock:
            return self._records.get(record_id(node_id, role))

    def approx_index_query(self, blob: bytes, limit: int, node_type: str | None = None) -> list[IndexMatch]:
        query = np.frombuffer(blob, dtype="<f4")
        with self._lock:
            records = list(self._records.values())

        matches = []
        for rec in records:
            if len(rec.vector) != len(blob):
                continue
            if node_type is not None and rec.metadata.node_type != node_type:
                continue
            vec = np.frombuffer(rec.vector, dtype="<f4")
            denom = float(np.linalg.norm(vec) * np.linalg.norm(query))
            distance = 1.0 - float(np.dot(vec, query)) / denom if denom else 1.0
            matches.append(IndexMatch(rec.node_id, rec.role, distance, rec.metadata))

        matches.sort(key=lambda m: m.distance)
        return matches[:max(limit, 0)]

    def scan_all_embeddings(self, node_type: str | None = None) -> list[ScannedEmbedding]:
        with self._lock:
            records = list(self._records.values())
        return [
            ScannedEmbedding(rec.node_id, rec.role, rec.vector, rec.metadata)
            for rec in records
            if node_type is None or rec.metadata.node_type == node_type
        ]

    def list_topic_units(self, topic_id: str) -> list[tuple[str, str]]:
        with self._lock:
            return [
                (rec.node_id, rec.role)
                for rec in self._records.values()
                if rec.metadata.topic_id == topic_id
            ]

    def count(self) -> int:
        with self._lock:
            return len(self._records)
