"""Storage abstraction for embedding backends."""

from .base import EmbeddingStoreBase, IndexMatch, ScannedEmbedding, get_embedding_store, record_id

__all__ = ["EmbeddingStoreBase", "IndexMatch", "ScannedEmbedding", "get_embedding_store", "record_id"]
