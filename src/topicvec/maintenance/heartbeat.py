"""Heartbeat: summarize the state of the embedding index."""

from collections import Counter
from dataclasses import asdict
from typing import Any


def index_stats(engine, include_stale: bool = True) -> dict[str, Any]:
    """Get index statistics for an engine."""
    size, capacity = engine.cache.stats()
    stats: dict[str, Any] = {
        "stored_embeddings": engine.store.count(),
        "storage_backend": engine.config.get("storage_backend", "chromadb"),
        "cache": {
            "size": size,
            "capacity": capacity,
            "hits": engine.cache.hits,
            "misses": engine.cache.misses,
        },
        "model": engine.config.get("model_path") or engine.config.get("model_identifier"),
        "device": engine.generator.device_info(),
        "pending_reembeds": len(engine.scheduler.pending_topics()),
        "failed_topics": [asdict(f) for f in engine.orchestrator.failures()],
    }

    roles: Counter = Counter()
    topics: set[str] = set()
    for row in engine.store.scan_all_embeddings():
        roles[row.metadata.type or row.role] += 1
        if row.metadata.topic_id:
            topics.add(row.metadata.topic_id)
    stats["roles"] = dict(roles)
    stats["embedded_topics"] = len(topics)

    if include_stale:
        topic_ids = engine.source.list_topic_ids()
        stats["source_topics"] = len(topic_ids)
        stats["stale_topics"] = sum(1 for tid in topic_ids if engine.orchestrator.is_stale(tid))

    return stats
