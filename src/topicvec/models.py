"""Data models used throughout topicvec."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

EmbeddingVector = list[float]


class UnitRole(str, Enum):
    """Role of an embeddable unit within its topic."""
    COMPLETE = "complete"
    SUMMARY = "summary"
    SECTION = "section"


class ChunkStrategy(str, Enum):
    """How a topic was decomposed for embedding."""
    COMPLETE = "complete"
    SUMMARY_SECTIONS = "summary_sections"
    HIERARCHICAL = "hierarchical"


@dataclass
class TopicNode:
    """A node of a topic tree: its own text plus ordered children."""
    id: str
    content: str = ""
    node_type: str = "text"
    children: list["TopicNode"] = field(default_factory=list)

    def iter_nodes(self):
        """Yield this node and all descendants in pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass(frozen=True)
class EmbeddingUnit:
    """One embeddable slice of a topic chosen by the planner."""
    source_node_id: str
    role: UnitRole
    depth: int
    text: str
    estimated_tokens: int
    parent_topic_id: str | None = None
    node_type: str = "text"

    @property
    def key(self) -> tuple[str, str]:
        return (self.source_node_id, self.role.value)


@dataclass
class ChunkPlan:
    """Ordered units for one embedding pass."""
    topic_id: str
    strategy: ChunkStrategy
    total_tokens: int
    units: list[EmbeddingUnit]


@dataclass
class EmbeddingMetadata:
    """Metadata persisted next to every stored vector."""
    type: str
    topic_id: str
    generated_at: str
    token_count: int
    depth: int
    parent_topic: str | None = None
    node_type: str = "text"
    content_hash: str = ""
    model: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmbeddingMetadata":
        return cls(
            type=str(data.get("type", "")),
            topic_id=str(data.get("topic_id", "")),
            generated_at=str(data.get("generated_at", "")),
            token_count=int(data.get("token_count", 0)),
            depth=int(data.get("depth", 0)),
            parent_topic=data.get("parent_topic") or None,
            node_type=str(data.get("node_type", "text")),
            content_hash=str(data.get("content_hash", "")),
            model=str(data.get("model", "")),
        )


@dataclass(frozen=True)
class StoredEmbedding:
    """A persisted vector blob with its metadata."""
    node_id: str
    role: str
    vector: bytes
    metadata: EmbeddingMetadata


@dataclass(frozen=True)
class SearchHit:
    """One ranked similarity search result."""
    node_id: str
    role: str
    distance: float
    metadata: EmbeddingMetadata

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


@dataclass(frozen=True)
class TopicMatch:
    """Best-scoring hit for a topic."""
    topic_id: str
    distance: float
    node_id: str
    role: str


@dataclass
class EmbedResult:
    """Outcome of one embedding pass."""
    topic_id: str
    strategy: ChunkStrategy
    total_tokens: int
    units_written: int = 0
    orphans_removed: int = 0


@dataclass
class BatchEmbedResult:
    """Outcome of embedding several topics independently."""
    success_count: int = 0
    failed: list[tuple[str, str]] = field(default_factory=list)
    results: list[EmbedResult] = field(default_factory=list)


@dataclass
class EmbedFailure:
    """Failed embedding attempts for one topic since its last successful pass."""
    topic_id: str
    error_count: int = 0
    last_error: str = ""
    last_failed_at: str = ""
