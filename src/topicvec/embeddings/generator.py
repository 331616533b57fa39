"""Embedding generation with cache lookup in front of the inference backend."""

import logging
import threading

from ..errors import EmbeddingError, InferenceFailed, NotInitialized
from ..models import EmbeddingVector
from .backend import EmbeddingBackend
from .cache import EmbeddingCache, cache_key

logger = logging.getLogger(__name__)


class EmbeddingGenerator:
    """Produces one vector per text, consulting and populating the cache.

    Only one backend call is in flight per generator at a time; batching
    amortizes that constraint.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        cache: EmbeddingCache,
        dimension: int = 384,
        batch_size: int = 32,
    ):
        self.backend = backend
        self.cache = cache
        self.dimension = dimension
        self.batch_size = max(batch_size, 1)
        self._inference_lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self.backend.is_initialized

    def initialize(self) -> None:
        self.backend.initialize()

    def device_info(self) -> str:
        return self.backend.device_info()

    def embed(self, text: str) -> EmbeddingVector:
        """Embed a single text."""
        key = cache_key(text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        vector = self._infer([text])[0]
        self.cache.put(key, vector)
        return vector

    def embed_batch(self, texts: list[str]) -> list[EmbeddingVector]:
        """Embed many texts; output order matches input order."""
        keys = [cache_key(t) for t in texts]
        results: list[EmbeddingVector | None] = [None] * len(texts)

        # Distinct misses, in first-seen order
        missing: dict[str, str] = {}
        for i, key in enumerate(keys):
            cached = self.cache.get(key)
            if cached is not None:
                results[i] = cached
            elif key not in missing:
                missing[key] = texts[i]

        if missing:
            miss_keys = list(missing)
            computed: dict[str, EmbeddingVector] = {}
            for start in range(0, len(miss_keys), self.batch_size):
                batch_keys = miss_keys[start:start + self.batch_size]
                vectors = self._infer([missing[k] for k in batch_keys])
                for key, vector in zip(batch_keys, vectors):
                    self.cache.put(key, vector)
                    computed[key] = vector
            for i, key in enumerate(keys):
                if results[i] is None:
                    results[i] = list(computed[key])

        return results  # type: ignore[return-value]

    def _infer(self, texts: list[str]) -> list[EmbeddingVector]:
        if not self.backend.is_initialized:
            raise NotInitialized()

        with self._inference_lock:
            try:
                vectors = self.backend.encode(texts)
            except EmbeddingError:
                raise
            except Exception as e:
                raise InferenceFailed(f"Backend error: {e}") from e

        if len(vectors) != len(texts):
            raise InferenceFailed(f"Backend returned {len(vectors)} vectors for {len(texts)} inputs")
        for vector in vectors:
            if len(vector) != self.dimension:
                raise InferenceFailed(
                    f"Backend returned a vector of dimension {len(vector)}, expected {self.dimension}"
                )
        logger.debug("Embedded %d text(s)", len(texts))
        return [list(v) for v in vectors]
