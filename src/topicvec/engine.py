"""Wires the embedding components together from a config dict."""

from dataclasses import dataclass
from typing import Any

from .embeddings.backend import EmbeddingBackend, SentenceTransformerBackend
from .embeddings.cache import EmbeddingCache
from .embeddings.codec import VectorCodec
from .embeddings.generator import EmbeddingGenerator
from .indexing.failures import FailureLedger
from .indexing.orchestrator import TopicEmbeddingOrchestrator
from .indexing.planner import ChunkingPlanner
from .indexing.scheduler import ReembedScheduler
from .query.search import SimilaritySearch
from .storage.base import EmbeddingStoreBase, get_embedding_store
from .topics.source import FileTopicSource, TopicSource


@dataclass
class Engine:
    """All long-lived components sharing one cache, store and generator."""
    config: dict[str, Any]
    source: TopicSource
    store: EmbeddingStoreBase
    codec: VectorCodec
    cache: EmbeddingCache
    generator: EmbeddingGenerator
    planner: ChunkingPlanner
    orchestrator: TopicEmbeddingOrchestrator
    scheduler: ReembedScheduler
    search: SimilaritySearch

    def close(self) -> None:
        self.scheduler.shutdown()
        self.orchestrator.shutdown()


def build_engine(
    config: dict[str, Any],
    backend: EmbeddingBackend | None = None,
    store: EmbeddingStoreBase | None = None,
    source: TopicSource | None = None,
    **scheduler_kwargs: Any,
) -> Engine:
    """Build an :class:`Engine`. The model is not loaded until ``generator.initialize()``."""
    dimension = int(config["dimension"])
    thresholds = config["token_thresholds"]

    if backend is None:
        backend = SentenceTransformerBackend(
            model_identifier=config["model_identifier"],
            model_path=config.get("model_path"),
            max_sequence_length=config.get("max_sequence_length"),
        )
    if store is None:
        store = get_embedding_store(config)
    if source is None:
        source = FileTopicSource(config["topics_path"])

    # failures persist only alongside a persistent store
    persistent = config.get("storage_backend") != "memory"
    failures = FailureLedger(config.get("failures_path") if persistent else None)
    codec = VectorCodec(dimension)
    cache = EmbeddingCache(capacity=int(config["cache_capacity"]))
    generator = EmbeddingGenerator(backend, cache, dimension=dimension, batch_size=int(config["batch_size"]))
    planner = ChunkingPlanner(
        low=int(thresholds["low"]),
        high=int(thresholds["high"]),
        max_depth=int(config["max_depth"]),
        max_descendants=int(config["max_descendants"]),
    )
    orchestrator = TopicEmbeddingOrchestrator(
        source,
        planner,
        generator,
        store,
        codec,
        batch_size=int(config["batch_size"]),
        model_name=config.get("model_path") or config["model_identifier"],
        failures=failures,
    )
    scheduler = ReembedScheduler(
        orchestrator, quiet_period_ms=config["quiet_period_ms"], **scheduler_kwargs
    )
    search = SimilaritySearch(store, codec, generator)

    return Engine(
        config=config,
        source=source,
        store=store,
        codec=codec,
        cache=cache,
        generator=generator,
        planner=planner,
        orchestrator=orchestrator,
        scheduler=scheduler,
        search=search,
    )
