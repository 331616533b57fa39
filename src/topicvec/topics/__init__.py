"""Topic sources."""

from .source import FileTopicSource, TopicSource, load_topic_file, parse_markdown_topic, parse_yaml_topic

__all__ = ["FileTopicSource", "TopicSource", "load_topic_file", "parse_markdown_topic", "parse_yaml_topic"]
