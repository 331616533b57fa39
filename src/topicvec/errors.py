"""Error taxonomy for the embedding subsystem."""


class EmbeddingError(Exception):
    """Base class for every error raised by topicvec."""


class NotInitialized(EmbeddingError):
    """The inference backend has not completed setup."""

    def __init__(self, message: str = "Embedding backend is not initialized. Call initialize() first."):
        super().__init__(message)


class ModelNotFound(EmbeddingError):
    """Required model artifacts are missing."""


class InferenceFailed(EmbeddingError):
    """The inference backend failed to produce a usable vector."""


class MalformedBlob(EmbeddingError, ValueError):
    """A stored vector blob has the wrong length."""


class DimensionMismatch(EmbeddingError, ValueError):
    """A vector does not have the configured dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected a vector of dimension {expected}, got {actual}")


class TopicNotFound(EmbeddingError, KeyError):
    """The topic source has no topic with the requested id."""

    def __init__(self, topic_id: str):
        self.topic_id = topic_id
        super().__init__(f"Topic not found: {topic_id}")

    def __str__(self) -> str:
        return self.args[0]


class IndexUnavailable(EmbeddingError):
    """The approximate nearest-neighbor index cannot serve queries."""


class ConfigError(EmbeddingError, ValueError):
    """Invalid configuration value."""
