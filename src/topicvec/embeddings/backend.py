"""Inference backend using sentence-transformers."""

import logging
from pathlib import Path
from typing import Any, Protocol

import numpy as np

from ..errors import InferenceFailed, ModelNotFound, NotInitialized

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"


class EmbeddingBackend(Protocol):
    """Opaque ``text -> vector`` function supplied by an inference runtime."""

    @property
    def is_initialized(self) -> bool: ...

    def initialize(self) -> None: ...

    def encode(self, texts: list[str]) -> list[list[float]]: ...

    def device_info(self) -> str: ...


class SentenceTransformerBackend:
    """Loads a sentence-transformers model and encodes text batches."""

    def __init__(
        self,
        model_identifier: str = DEFAULT_MODEL,
        model_path: str | None = None,
        max_sequence_length: int | None = 512,
        device: str | None = None,
    ):
        self.model_identifier = model_identifier
        self.model_path = model_path
        self.max_sequence_length = max_sequence_length
        self.device = device
        self._model: Any = None

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    def initialize(self) -> None:
        """Load the model. Safe to call more than once."""
        if self._model is not None:
            return

        source = self.model_identifier
        if self.model_path:
            path = Path(self.model_path).expanduser()
            if not path.exists():
                raise ModelNotFound(f"Model directory not found: {path}")
            source = str(path)

        logger.info("Loading embedding model: %s", source)
        from sentence_transformers import SentenceTransformer

        try:
            model = SentenceTransformer(source, device=self.device)
        except OSError as e:
            raise ModelNotFound(f"Could not load model {source!r}: {e}") from e

        if self.max_sequence_length:
            model.max_seq_length = self.max_sequence_length
        self._model = model
        logger.info("Embedding model ready on %s", self.device_info())

    def encode(self, texts: list[str]) -> list[list[float]]:
        if self._model is None:
            raise NotInitialized()
        try:
            vectors = self._model.encode(
                texts,
                batch_size=max(len(texts), 1),
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as e:
            raise InferenceFailed(f"Model inference failed: {e}") from e
        return np.asarray(vectors, dtype=np.float32).tolist()

    def device_info(self) -> str:
        if self._model is None:
            return "not loaded"
        return str(self._model.device)

    @property
    def dimension(self) -> int | None:
        if self._model is None:
            return None
        return self._model.get_sentence_embedding_dimension()
