"""Abstract base class for embedding stores and factory function."""

from abc import ABC, abstractmethod
from typing import Any, NamedTuple

from ..models import EmbeddingMetadata, StoredEmbedding


class IndexMatch(NamedTuple):
    """One row returned by the approximate index."""
    node_id: str
    role: str
    distance: float
    metadata: EmbeddingMetadata


class ScannedEmbedding(NamedTuple):
    """One row returned by a full scan."""
    node_id: str
    role: str
    blob: bytes
    metadata: EmbeddingMetadata


def record_id(node_id: str, role: str) -> str:
    """Storage key for a (node, role) pair."""
    return f"{node_id}::{role}"


class EmbeddingStoreBase(ABC):
    """Common interface for embedding storage backends.

    Every write is an atomic upsert of one ``(node_id, role)`` record, so a
    concurrent reader sees either the old vector or the new one.
    """

    @abstractmethod
    def write_embedding(
        self,
        node_id: str,
        role: str,
        blob: bytes,
        metadata: EmbeddingMetadata,
    ) -> None:
        """Insert or replace the embedding for (node_id, role)."""

    @abstractmethod
    def delete_embedding(self, node_id: str, role: str) -> None:
        """Remove the embedding for (node_id, role) if present."""

    @abstractmethod
    def get_embedding(self, node_id: str, role: str) -> StoredEmbedding | None:
        """Fetch one stored embedding."""

    @abstractmethod
    def approx_index_query(self, blob: bytes, limit: int, node_type: str | None = None) -> list[IndexMatch]:
        """Nearest neighbors by cosine distance, ascending. May be approximate."""

    @abstractmethod
    def scan_all_embeddings(self, node_type: str | None = None) -> list[ScannedEmbedding]:
        """Every stored embedding, optionally restricted to one node type."""

    @abstractmethod
    def list_topic_units(self, topic_id: str) -> list[tuple[str, str]]:
        """The (node_id, role) keys currently stored for a topic."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored embeddings."""


def get_embedding_store(config: dict[str, Any]) -> EmbeddingStoreBase:
    """Factory: return the right embedding store based on config."""
    backend = config.get("storage_backend", "chromadb")
    dimension = int(config.get("dimension", 384))

    if backend == "chromadb":
        from .chromadb import ChromaEmbeddingStore
        return ChromaEmbeddingStore(
            config["chroma_path"],
            collection=config.get("collection", "topic_embeddings"),
            dimension=dimension,
        )
    elif backend == "memory":
        from .memory import MemoryEmbeddingStore
        return MemoryEmbeddingStore(dimension=dimension)
    else:
        raise ValueError(f"Unknown storage_backend: {backend}")
