"""Adaptive decomposition of topic trees into embeddable units."""

import logging

from ..errors import ConfigError
from ..models import ChunkPlan, ChunkStrategy, EmbeddingUnit, TopicNode, UnitRole
from .tokens import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_LOW_THRESHOLD = 512
DEFAULT_HIGH_THRESHOLD = 2048
DEFAULT_MAX_DEPTH = 32
DEFAULT_MAX_DESCENDANTS = 1000

SECTION_SEPARATOR = "\n\n"


def summarize(text: str, max_tokens: int) -> str:
    """Truncate *text* to ``max_tokens * 4`` characters, marking the cut with '...'."""
    max_chars = max_tokens * 4
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def subtree_texts(root: TopicNode) -> dict[int, str]:
    """Flattened text of every subtree, keyed by ``id(node)``.

    A subtree's text is the non-empty contents of the node and its
    descendants in pre-order, joined by blank lines.
    """
    texts: dict[int, str] = {}
    for node in reversed(list(root.iter_nodes())):
        parts = [node.content] if node.content.strip() else []
        parts.extend(texts[id(c)] for c in node.children if texts[id(c)])
        texts[id(node)] = SECTION_SEPARATOR.join(parts)
    return texts


class ChunkingPlanner:
    """Picks a chunking strategy from the estimated size of a topic.

    Below ``low`` tokens the whole topic is one unit. Between ``low`` and
    ``high`` (both inclusive) the root is summarized and every direct child
    becomes a section. Above ``high`` the expansion recurses into any child
    whose own subtree reaches ``low`` tokens. Boundary values take the richer
    strategy.
    """

    def __init__(
        self,
        low: int = DEFAULT_LOW_THRESHOLD,
        high: int = DEFAULT_HIGH_THRESHOLD,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_descendants: int = DEFAULT_MAX_DESCENDANTS,
    ):
        if low <= 0 or high <= low:
            raise ConfigError(f"Token thresholds must satisfy 0 < low < high (got low={low}, high={high})")
        if max_depth < 1:
            raise ConfigError(f"max_depth must be at least 1, got {max_depth}")
        self.low = low
        self.high = high
        self.max_depth = max_depth
        self.max_descendants = max_descendants

    def plan(self, tree: TopicNode) -> ChunkPlan:
        tree = self._limit_descendants(tree)
        texts = subtree_texts(tree)
        full_text = texts[id(tree)]
        total = estimate_tokens(full_text)

        if total < self.low:
            strategy = ChunkStrategy.COMPLETE
            units = [self._unit(tree, UnitRole.COMPLETE, 0, full_text, None)]
        elif total <= self.high:
            strategy = ChunkStrategy.SUMMARY_SECTIONS
            units = [self._summary(tree, 0, None)]
            units.extend(
                self._unit(child, UnitRole.SECTION, 1, texts[id(child)], tree.id)
                for child in tree.children
            )
        else:
            strategy = ChunkStrategy.HIERARCHICAL
            units = self._expand(tree, texts)

        logger.debug(
            "Planned topic %s: %s, %d tokens, %d unit(s)", tree.id, strategy.value, total, len(units)
        )
        return ChunkPlan(topic_id=tree.id, strategy=strategy, total_tokens=total, units=units)

    def _expand(self, tree: TopicNode, texts: dict[int, str]) -> list[EmbeddingUnit]:
        units = [self._summary(tree, 0, None)]
        stack = [(child, 1) for child in reversed(tree.children)]
        while stack:
            node, depth = stack.pop()
            text = texts[id(node)]
            expandable = bool(node.children) and depth < self.max_depth
            if expandable and estimate_tokens(text) >= self.low:
                units.append(self._summary(node, depth, tree.id))
                stack.extend((child, depth + 1) for child in reversed(node.children))
            else:
                units.append(self._unit(node, UnitRole.SECTION, depth, text, tree.id))
        return units

    def _summary(self, node: TopicNode, depth: int, topic_id: str | None) -> EmbeddingUnit:
        return self._unit(node, UnitRole.SUMMARY, depth, summarize(node.content, self.low), topic_id)

    @staticmethod
    def _unit(
        node: TopicNode, role: UnitRole, depth: int, text: str, topic_id: str | None
    ) -> EmbeddingUnit:
        return EmbeddingUnit(
            source_node_id=node.id,
            role=role,
            depth=depth,
            text=text,
            estimated_tokens=estimate_tokens(text),
            parent_topic_id=topic_id,
            node_type=node.node_type,
        )

    def _limit_descendants(self, root: TopicNode) -> TopicNode:
        """Copy of *root* keeping only the first ``max_descendants`` descendants in pre-order."""
        count = sum(1 for _ in root.iter_nodes()) - 1
        if count <= self.max_descendants:
            return root

        logger.warning(
            "Topic %s has %d descendants; only the first %d are embedded",
            root.id, count, self.max_descendants,
        )
        copy = TopicNode(id=root.id, content=root.content, node_type=root.node_type)
        stack = [(child, copy) for child in reversed(root.children)]
        kept = 0
        while stack and kept < self.max_descendants:
            src, parent = stack.pop()
            dst = TopicNode(id=src.id, content=src.content, node_type=src.node_type)
            parent.children.append(dst)
            kept += 1
            stack.extend((child, dst) for child in reversed(src.children))
        return copy
