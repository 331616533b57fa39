"""ChromaDB embedding store backed by a cosine HNSW index."""

from pathlib import Path
from typing import Any

import chromadb
import numpy as np

from ..errors import IndexUnavailable
from ..models import EmbeddingMetadata, StoredEmbedding
from .base import EmbeddingStoreBase, IndexMatch, ScannedEmbedding, record_id


def _to_chroma_metadata(node_id: str, role: str, metadata: EmbeddingMetadata) -> dict[str, Any]:
    # Chroma rejects None metadata values
    meta = {k: v for k, v in metadata.to_dict().items() if v is not None}
    meta["node_id"] = node_id
    meta["role"] = role
    return meta


def _to_blob(embedding: Any) -> bytes:
    return np.asarray(embedding, dtype="<f4").tobytes()


class ChromaEmbeddingStore(EmbeddingStoreBase):
    """Persistent ChromaDB store; the HNSW index answers approximate queries."""

    def __init__(self, chroma_path: str, collection: str = "topic_embeddings", dimension: int = 384):
        self.chroma_path = Path(chroma_path)
        self.chroma_path.mkdir(parents=True, exist_ok=True)
        self.collection_name = collection
        self.dimension = dimension
        self.client = chromadb.PersistentClient(path=str(self.chroma_path))

    def get_or_create_collection(self) -> chromadb.Collection:
        return self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def write_embedding(
        self,
        node_id: str,
        role: str,
        blob: bytes,
        metadata: EmbeddingMetadata,
    ) -> None:
        collection = self.get_or_create_collection()
        collection.upsert(
            ids=[record_id(node_id, role)],
            embeddings=[np.frombuffer(blob, dtype="<f4").tolist()],
            metadatas=[_to_chroma_metadata(node_id, role, metadata)],
        )

    def delete_embedding(self, node_id: str, role: str) -> None:
        collection = self.get_or_create_collection()
        collection.delete(ids=[record_id(node_id, role)])

    def get_embedding(self, node_id: str, role: str) -> StoredEmbedding | None:
        collection = self.get_or_create_collection()
        result = collection.get(ids=[record_id(node_id, role)], include=["embeddings", "metadatas"])
        if not result["ids"]:
            return None
        return StoredEmbedding(
            node_id=node_id,
            role=role,
            vector=_to_blob(result["embeddings"][0]),
            metadata=EmbeddingMetadata.from_dict(result["metadatas"][0] or {}),
        )

    def approx_index_query(self, blob: bytes, limit: int, node_type: str | None = None) -> list[IndexMatch]:
        collection = self.get_or_create_collection()
        n_results = min(limit, collection.count())
        if n_results <= 0:
            return []
        try:
            result = collection.query(
                query_embeddings=[np.frombuffer(blob, dtype="<f4").tolist()],
                n_results=n_results,
                where={"node_type": node_type} if node_type else None,
                include=["metadatas", "distances"],
            )
        except Exception as e:
            raise IndexUnavailable(f"HNSW query failed: {e}") from e

        matches = []
        if result and result["ids"] and result["ids"][0]:
            for i, _ in enumerate(result["ids"][0]):
                meta = result["metadatas"][0][i] or {}
                matches.append(IndexMatch(
                    node_id=str(meta.get("node_id", "")),
                    role=str(meta.get("role", "")),
                    distance=float(result["distances"][0][i]),
                    metadata=EmbeddingMetadata.from_dict(meta),
                ))
        return matches

    def scan_all_embeddings(self, node_type: str | None = None) -> list[ScannedEmbedding]:
        collection = self.get_or_create_collection()
        where = {"node_type": node_type} if node_type else None
        result = collection.get(where=where, include=["embeddings", "metadatas"])

        rows = []
        embeddings = result["embeddings"] if result["embeddings"] is not None else []
        for i, _ in enumerate(result["ids"]):
            meta = result["metadatas"][i] or {}
            rows.append(ScannedEmbedding(
                node_id=str(meta.get("node_id", "")),
                role=str(meta.get("role", "")),
                blob=_to_blob(embeddings[i]),
                metadata=EmbeddingMetadata.from_dict(meta),
            ))
        return rows

    def list_topic_units(self, topic_id: str) -> list[tuple[str, str]]:
        collection = self.get_or_create_collection()
        result = collection.get(where={"topic_id": topic_id}, include=["metadatas"])
        return [
            (str(meta.get("node_id", "")), str(meta.get("role", "")))
            for meta in (result["metadatas"] or [])
        ]

    def count(self) -> int:
        return self.get_or_create_collection().count()
