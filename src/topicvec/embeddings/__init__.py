"""Vector encoding, caching and generation."""

from .backend import EmbeddingBackend, SentenceTransformerBackend
from .cache import EmbeddingCache, cache_key
from .codec import VectorCodec
from .generator import EmbeddingGenerator

__all__ = [
    "EmbeddingBackend",
    "SentenceTransformerBackend",
    "EmbeddingCache",
    "cache_key",
    "VectorCodec",
    "EmbeddingGenerator",
]
