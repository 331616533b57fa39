"""Topic trees read from files on disk.

A topic is one file. Markdown topics carry optional YAML frontmatter
(``id``, ``type``); the text before the first list item is the root content
and nested ``-``/``*``/``+`` bullets are the child nodes, nested by
indentation. YAML topics spell the tree out explicitly::

    id: gardening
    content: Notes on the vegetable patch
    children:
      - content: Tomatoes
        children:
          - content: Stake them early
"""

import logging
import re
import threading
from pathlib import Path
from typing import Any, Protocol

import yaml

from ..models import TopicNode

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = {".md", ".markdown"}
YAML_EXTENSIONS = {".yaml", ".yml"}
TOPIC_EXTENSIONS = MARKDOWN_EXTENSIONS | YAML_EXTENSIONS

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)
_BULLET_RE = re.compile(r"^(\s*)[-*+]\s+(.*)$")


class TopicSource(Protocol):
    """Read access to topics and their descendants."""

    def fetch_topic_tree(self, topic_id: str) -> TopicNode | None: ...

    def list_topic_ids(self) -> list[str]: ...


def parse_markdown_topic(text: str, default_id: str) -> TopicNode:
    """Parse a markdown outline into a topic tree."""
    metadata: dict[str, Any] = {}
    fm_match = _FRONTMATTER_RE.match(text)
    if fm_match:
        try:
            metadata = yaml.safe_load(fm_match.group(1)) or {}
        except yaml.YAMLError as e:
            logger.warning("Ignoring invalid frontmatter in topic %s: %s", default_id, e)
        text = text[fm_match.end():]

    topic_id = str(metadata.get("id", default_id))
    root = TopicNode(id=topic_id, node_type=str(metadata.get("type", "topic")))

    root_lines: list[str] = []
    # (indent, node, content lines)
    open_items: list[tuple[int, TopicNode, list[str]]] = []
    seen_bullet = False

    def close_deeper(indent: int) -> None:
        while open_items and open_items[-1][0] >= indent:
            _, node, lines = open_items.pop()
            node.content = "\n".join(lines).strip()

    for line in text.splitlines():
        bullet = _BULLET_RE.match(line)
        if bullet:
            seen_bullet = True
            indent = len(bullet.group(1).expandtabs(4))
            close_deeper(indent)
            parent = open_items[-1][1] if open_items else root
            child = TopicNode(id=f"{parent.id}/{len(parent.children)}", node_type="text")
            parent.children.append(child)
            open_items.append((indent, child, [bullet.group(2)]))
        elif seen_bullet and open_items and line.strip():
            open_items[-1][2].append(line.strip())
        elif not seen_bullet:
            root_lines.append(line)

    close_deeper(-1)
    root.content = "\n".join(root_lines).strip()
    return root


def parse_yaml_topic(data: dict[str, Any], default_id: str) -> TopicNode:
    """Build a topic tree from a mapping with ``content`` and ``children``."""
    root = TopicNode(
        id=str(data.get("id", default_id)),
        content=str(data.get("content", "") or ""),
        node_type=str(data.get("type", "topic")),
    )
    stack = [(root, data.get("children") or [])]
    while stack:
        parent, children = stack.pop()
        for i, raw in enumerate(children):
            if isinstance(raw, str):
                raw = {"content": raw}
            node = TopicNode(
                id=str(raw.get("id", f"{parent.id}/{i}")),
                content=str(raw.get("content", "") or ""),
                node_type=str(raw.get("type", "text")),
            )
            parent.children.append(node)
            stack.append((node, raw.get("children") or []))
    return root


def load_topic_file(path: Path) -> TopicNode:
    """Parse one topic file."""
    text = path.read_text(encoding="utf-8", errors="replace")
    if path.suffix.lower() in YAML_EXTENSIONS:
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Topic file {path} must contain a mapping")
        return parse_yaml_topic(data, path.stem)
    return parse_markdown_topic(text, path.stem)


def is_topic_file(path: Path) -> bool:
    return path.suffix.lower() in TOPIC_EXTENSIONS and not path.name.startswith(".")


class FileTopicSource:
    """Serves topic trees from a directory of markdown/YAML files."""

    def __init__(self, topics_path: str):
        self.topics_path = Path(topics_path)
        self._paths: dict[str, Path] = {}
        self._lock = threading.Lock()

    def refresh(self) -> dict[str, Path]:
        """Rescan the directory and rebuild the id -> path index."""
        paths: dict[str, Path] = {}
        if self.topics_path.exists():
            for file_path in sorted(self.topics_path.rglob("*")):
                if not file_path.is_file() or not is_topic_file(file_path):
                    continue
                try:
                    tree = load_topic_file(file_path)
                except (OSError, ValueError, yaml.YAMLError) as e:
                    logger.warning("Skipping unreadable topic file %s: %s", file_path, e)
                    continue
                if tree.id in paths:
                    logger.warning("Duplicate topic id %s in %s and %s", tree.id, paths[tree.id], file_path)
                    continue
                paths[tree.id] = file_path
        with self._lock:
            self._paths = paths
        return paths

    def list_topic_ids(self) -> list[str]:
        return sorted(self.refresh())

    def fetch_topic_tree(self, topic_id: str) -> TopicNode | None:
        with self._lock:
            path = self._paths.get(topic_id)
        if path is None or not path.exists():
            path = self.refresh().get(topic_id)
        if path is None:
            return None
        return load_topic_file(path)

    def topic_id_for_path(self, path: str | Path) -> str | None:
        """Topic id of a file, using the last scan when the file is gone."""
        path = Path(path)
        with self._lock:
            for topic_id, known in self._paths.items():
                if known == path:
                    return topic_id
        if path.exists() and is_topic_file(path):
            try:
                return load_topic_file(path).id
            except (OSError, ValueError, yaml.YAMLError):
                return None
        return None
