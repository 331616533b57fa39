"""Runs embedding passes: fetch, plan, embed, write, clean up orphans."""

import hashlib
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone

from ..embeddings.codec import VectorCodec
from ..embeddings.generator import EmbeddingGenerator
from ..errors import TopicNotFound
from ..models import BatchEmbedResult, EmbedFailure, EmbeddingMetadata, EmbedResult, TopicNode
from ..storage.base import EmbeddingStoreBase
from ..topics.source import TopicSource
from .failures import FailureLedger
from .planner import ChunkingPlanner

logger = logging.getLogger(__name__)


def topic_content_hash(tree: TopicNode) -> str:
    """SHA-256 over the structure and content of a topic tree."""
    h = hashlib.sha256()
    stack = [(tree, 0)]
    while stack:
        node, depth = stack.pop()
        h.update(f"{depth}\x1f{node.id}\x1f{node.node_type}\x1f{node.content}\x1e".encode("utf-8"))
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return h.hexdigest()


class TopicEmbeddingOrchestrator:
    """Embeds one topic at a time and keeps its stored units in sync."""

    def __init__(
        self,
        source: TopicSource,
        planner: ChunkingPlanner,
        generator: EmbeddingGenerator,
        store: EmbeddingStoreBase,
        codec: VectorCodec,
        batch_size: int = 32,
        model_name: str = "",
        max_workers: int = 1,
        failures: FailureLedger | None = None,
    ):
        self.source = source
        self.planner = planner
        self.generator = generator
        self.store = store
        self.codec = codec
        self.batch_size = max(batch_size, 1)
        self.model_name = model_name
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self.failure_ledger = failures if failures is not None else FailureLedger()

    def _fetch(self, topic_id: str) -> TopicNode:
        tree = self.source.fetch_topic_tree(topic_id)
        if tree is None:
            raise TopicNotFound(topic_id)
        return tree

    def embed_topic(self, topic_id: str) -> EmbedResult:
        """Embed a topic and replace its previously stored units.

        A failure part way through leaves the units already written in place
        and skips orphan cleanup; running the pass again converges. Failures
        are counted per topic until the next successful pass.
        """
        try:
            result = self._embed(topic_id)
        except Exception as e:
            self.failure_ledger.record(topic_id, e)
            raise
        self.failure_ledger.clear(topic_id)
        return result

    def failure(self, topic_id: str) -> EmbedFailure | None:
        """Failed attempts for *topic_id* since its last successful pass."""
        return self.failure_ledger.get(topic_id)

    def failures(self) -> list[EmbedFailure]:
        return self.failure_ledger.all()

    def _embed(self, topic_id: str) -> EmbedResult:
        tree = self._fetch(topic_id)
        plan = self.planner.plan(tree)
        content_hash = topic_content_hash(tree)
        result = EmbedResult(topic_id=topic_id, strategy=plan.strategy, total_tokens=plan.total_tokens)

        logger.info(
            "Embedding topic %s: %s, %d tokens, %d unit(s)",
            topic_id, plan.strategy.value, plan.total_tokens, len(plan.units),
        )

        try:
            for start in range(0, len(plan.units), self.batch_size):
                batch = plan.units[start:start + self.batch_size]
                vectors = self.generator.embed_batch([u.text for u in batch])
                generated_at = datetime.now(timezone.utc).isoformat()
                for unit, vector in zip(batch, vectors):
                    metadata = EmbeddingMetadata(
                        type=unit.role.value,
                        topic_id=topic_id,
                        generated_at=generated_at,
                        token_count=unit.estimated_tokens,
                        depth=unit.depth,
                        parent_topic=unit.parent_topic_id,
                        node_type=unit.node_type,
                        content_hash=content_hash,
                        model=self.model_name,
                    )
                    self.store.write_embedding(
                        unit.source_node_id, unit.role.value, self.codec.encode(vector), metadata
                    )
                    result.units_written += 1
        except Exception:
            logger.exception(
                "Embedding pass for topic %s failed after %d unit(s)", topic_id, result.units_written
            )
            raise

        planned = {u.key for u in plan.units}
        for node_id, role in self.store.list_topic_units(topic_id):
            if (node_id, role) not in planned:
                self.store.delete_embedding(node_id, role)
                result.orphans_removed += 1
                logger.debug("Deleted orphan %s::%s of topic %s", node_id, role, topic_id)

        logger.info(
            "Embedded topic %s: %d written, %d orphan(s) removed",
            topic_id, result.units_written, result.orphans_removed,
        )
        return result

    def submit(self, topic_id: str) -> "Future[EmbedResult]":
        """Run :meth:`embed_topic` on a worker thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="topicvec-embed"
            )
        return self._executor.submit(self.embed_topic, topic_id)

    def embed_topics(self, topic_ids: list[str]) -> BatchEmbedResult:
        """Embed several topics; a failing topic does not stop the others."""
        batch = BatchEmbedResult()
        for topic_id in topic_ids:
            try:
                batch.results.append(self.embed_topic(topic_id))
                batch.success_count += 1
            except Exception as e:
                logger.warning("Topic %s failed: %s", topic_id, e)
                batch.failed.append((topic_id, str(e)))
        return batch

    def is_stale(self, topic_id: str) -> bool:
        """True when the topic is unembedded or changed since its last pass."""
        tree = self._fetch(topic_id)
        current = topic_content_hash(tree)
        units = self.store.list_topic_units(topic_id)
        if not units:
            return True
        for node_id, role in units:
            stored = self.store.get_embedding(node_id, role)
            if stored is None or stored.metadata.content_hash != current:
                return True
        return False

    def stale_topics(self) -> list[str]:
        return [tid for tid in self.source.list_topic_ids() if self.is_stale(tid)]

    def sync_stale(self) -> BatchEmbedResult:
        """Re-embed every stale topic."""
        return self.embed_topics(self.stale_topics())

    def remove_topic(self, topic_id: str) -> int:
        """Delete every stored unit of a topic; returns how many were removed."""
        removed = 0
        for node_id, role in self.store.list_topic_units(topic_id):
            self.store.delete_embedding(node_id, role)
            removed += 1
        self.failure_ledger.clear(topic_id)
        if removed:
            logger.info("Removed %d unit(s) of topic %s", removed, topic_id)
        return removed

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
