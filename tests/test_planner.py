"""Tests for token estimation and chunk planning."""

import pytest

from topicvec.errors import ConfigError
from topicvec.indexing.planner import ChunkingPlanner, summarize
from topicvec.indexing.tokens import estimate_tokens
from topicvec.models import ChunkStrategy, TopicNode, UnitRole


def _topic(chars: int, children=None) -> TopicNode:
    return TopicNode(id="t", content="x" * chars, node_type="topic", children=children or [])


def test_estimate_tokens_reference_values():
    assert estimate_tokens("") == 0
    assert estimate_tokens("a") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("test") == 2
    assert estimate_tokens("hello world") == 4
    assert estimate_tokens("a" * 400) == 138
    assert estimate_tokens("a" * 2048) == 703


def test_boundary_lengths():
    assert estimate_tokens("x" * 1490) == 511
    assert estimate_tokens("x" * 1492) == 512
    assert estimate_tokens("x" * 5972) == 2048
    assert estimate_tokens("x" * 5974) == 2049


def test_small_topic_is_one_complete_unit():
    plan = ChunkingPlanner().plan(_topic(1490))
    assert plan.strategy == ChunkStrategy.COMPLETE
    assert len(plan.units) == 1
    unit = plan.units[0]
    assert unit.role == UnitRole.COMPLETE
    assert unit.depth == 0
    assert unit.parent_topic_id is None


def test_exactly_low_threshold_uses_summary_sections():
    plan = ChunkingPlanner().plan(_topic(1492))
    assert plan.total_tokens == 512
    assert plan.strategy == ChunkStrategy.SUMMARY_SECTIONS


def test_exactly_high_threshold_uses_summary_sections():
    plan = ChunkingPlanner().plan(_topic(5972))
    assert plan.total_tokens == 2048
    assert plan.strategy == ChunkStrategy.SUMMARY_SECTIONS


def test_above_high_threshold_is_hierarchical():
    plan = ChunkingPlanner().plan(_topic(5974))
    assert plan.strategy == ChunkStrategy.HIERARCHICAL


def test_summary_sections_units():
    tree = _topic(1000, children=[
        TopicNode(id="c1", content="a" * 300),
        TopicNode(id="c2", content="b" * 300, children=[TopicNode(id="c2g", content="g" * 100)]),
    ])
    plan = ChunkingPlanner().plan(tree)
    assert plan.strategy == ChunkStrategy.SUMMARY_SECTIONS
    assert [(u.source_node_id, u.role, u.depth) for u in plan.units] == [
        ("t", UnitRole.SUMMARY, 0),
        ("c1", UnitRole.SECTION, 1),
        ("c2", UnitRole.SECTION, 1),
    ]
    assert plan.units[2].text == "b" * 300 + "\n\n" + "g" * 100
    assert all(u.parent_topic_id == "t" for u in plan.units[1:])


def _big_tree() -> TopicNode:
    return TopicNode(id="t", content="r" * 100, children=[
        TopicNode(id="a", content="a" * 100, children=[
            TopicNode(id="a0", content="p" * 2000),
            TopicNode(id="a1", content="q" * 2000),
        ]),
        TopicNode(id="b", content="b" * 100),
        TopicNode(id="big-leaf", content="l" * 3000),
    ])


def test_hierarchical_expands_large_subtrees():
    plan = ChunkingPlanner().plan(_big_tree())
    assert plan.strategy == ChunkStrategy.HIERARCHICAL
    assert [(u.source_node_id, u.role, u.depth) for u in plan.units] == [
        ("t", UnitRole.SUMMARY, 0),
        ("a", UnitRole.SUMMARY, 1),
        ("a0", UnitRole.SECTION, 2),
        ("a1", UnitRole.SECTION, 2),
        ("b", UnitRole.SECTION, 1),
        ("big-leaf", UnitRole.SECTION, 1),
    ]
    # a leaf over the low threshold keeps its full text
    assert plan.units[-1].text == "l" * 3000


def test_hierarchical_depth_cap():
    plan = ChunkingPlanner(max_depth=1).plan(_big_tree())
    roles = [(u.source_node_id, u.role, u.depth) for u in plan.units]
    assert ("a", UnitRole.SECTION, 1) in roles
    assert all(u.depth <= 1 for u in plan.units)


def test_plan_is_deterministic():
    planner = ChunkingPlanner()
    assert planner.plan(_big_tree()) == planner.plan(_big_tree())


def test_empty_topic():
    plan = ChunkingPlanner().plan(TopicNode(id="empty"))
    assert plan.strategy == ChunkStrategy.COMPLETE
    assert plan.total_tokens == 0
    assert plan.units[0].text == ""


def test_max_descendants_limits_sections():
    tree = TopicNode(id="t", content="root", children=[TopicNode(id=f"c{i}", content="child") for i in range(5)])
    plan = ChunkingPlanner(low=1, high=100000, max_descendants=3).plan(tree)
    assert [u.source_node_id for u in plan.units] == ["t", "c0", "c1", "c2"]
    assert len(tree.children) == 5


def test_summarize_truncates_with_marker():
    text = "x" * (512 * 4 + 10)
    summary = summarize(text, 512)
    assert len(summary) == 512 * 4 + 3
    assert summary.endswith("...")
    assert summarize("short", 512) == "short"


def test_invalid_thresholds():
    with pytest.raises(ConfigError):
        ChunkingPlanner(low=2048, high=512)
    with pytest.raises(ConfigError):
        ChunkingPlanner(low=512, high=512)
