"""Tests for the file watcher, stats and CLI wiring."""

import copy
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from watchdog.events import FileDeletedEvent, FileModifiedEvent

from conftest import FakeBackend
from topicvec.cli import cli
from topicvec.config import DEFAULT_CONFIG
from topicvec.engine import build_engine
from topicvec.errors import TopicNotFound
from topicvec.maintenance.heartbeat import index_stats
from topicvec.storage.memory import MemoryEmbeddingStore
from topicvec.topics.source import FileTopicSource
from topicvec.watcher import TopicChangeHandler


def _file_engine(tmp_path, timers):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg.update(dimension=8, storage_backend="memory", topics_path=str(tmp_path))
    return build_engine(
        cfg,
        backend=FakeBackend(),
        store=MemoryEmbeddingStore(dimension=8),
        source=FileTopicSource(str(tmp_path)),
        timer_factory=timers,
    )


def test_modified_file_schedules_reembed(tmp_path, timers):
    engine = _file_engine(tmp_path, timers)
    path = tmp_path / "garden.md"
    path.write_text("Tomatoes and beans.")
    handler = TopicChangeHandler(engine)

    handler.on_modified(FileModifiedEvent(str(path)))
    assert engine.scheduler.is_pending("garden")

    timers.fire_all()
    assert engine.store.list_topic_units("garden") == [("garden", "complete")]
    engine.close()


def test_unsupported_file_ignored(tmp_path, timers):
    engine = _file_engine(tmp_path, timers)
    path = tmp_path / "notes.txt"
    path.write_text("ignored")
    TopicChangeHandler(engine).on_modified(FileModifiedEvent(str(path)))
    assert engine.scheduler.pending_topics() == []
    engine.close()


def test_deleted_file_cancels_and_removes(tmp_path, timers):
    engine = _file_engine(tmp_path, timers)
    path = tmp_path / "garden.md"
    path.write_text("Tomatoes and beans.")
    engine.orchestrator.embed_topic("garden")
    handler = TopicChangeHandler(engine)
    handler.on_modified(FileModifiedEvent(str(path)))

    path.unlink()
    handler.on_deleted(FileDeletedEvent(str(path)))
    assert not engine.scheduler.is_pending("garden")
    assert engine.store.count() == 0
    engine.close()


def test_changed_topic_id_retires_old_embeddings(tmp_path, timers):
    engine = _file_engine(tmp_path, timers)
    path = tmp_path / "g.md"
    path.write_text("---\nid: old\n---\nTomatoes and beans.\n")
    engine.orchestrator.embed_topic("old")
    assert engine.store.list_topic_units("old") == [("old", "complete")]

    path.write_text("---\nid: new\n---\nTomatoes and beans.\n")
    handler = TopicChangeHandler(engine)
    handler.on_modified(FileModifiedEvent(str(path)))
    assert engine.scheduler.pending_topics() == ["new"]

    timers.fire_all()
    assert engine.store.list_topic_units("old") == []
    assert engine.store.list_topic_units("new") == [("new", "complete")]
    assert engine.orchestrator.failures() == []
    engine.close()


def test_file_deleted_during_its_pass_leaves_nothing_stored(tmp_path, timers):
    engine = _file_engine(tmp_path, timers)
    path = tmp_path / "garden.md"
    path.write_text("Tomatoes and beans.")
    handler = TopicChangeHandler(engine)
    handler.on_modified(FileModifiedEvent(str(path)))

    def delete_file():
        path.unlink()
        handler.on_deleted(FileDeletedEvent(str(path)))

    engine.generator.backend.on_encode = delete_file
    timers.fire_all()

    assert not path.exists()
    assert engine.store.count() == 0
    assert engine.scheduler.pending_topics() == []
    engine.close()


def test_index_stats(tmp_path, timers):
    engine = _file_engine(tmp_path, timers)
    (tmp_path / "a.md").write_text("Alpha.")
    (tmp_path / "b.md").write_text("Beta.")
    engine.orchestrator.embed_topic("a")

    stats = index_stats(engine)
    assert stats["stored_embeddings"] == 1
    assert stats["embedded_topics"] == 1
    assert stats["source_topics"] == 2
    assert stats["stale_topics"] == 1
    assert stats["roles"] == {"complete": 1}
    assert stats["device"] == "fake"
    assert stats["failed_topics"] == []

    with pytest.raises(TopicNotFound):
        engine.orchestrator.embed_topic("missing")
    failed = index_stats(engine, include_stale=False)["failed_topics"]
    assert [(f["topic_id"], f["error_count"]) for f in failed] == [("missing", 1)]
    assert failed[0]["last_error"] == "Topic not found: missing"
    engine.close()


def _cli_config(tmp_path) -> Path:
    topics = tmp_path / "topics"
    topics.mkdir()
    (topics / "garden.md").write_text("Tomatoes and beans.")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.dump({
        "storage_backend": "memory",
        "topics_path": str(topics),
        "chroma_path": str(tmp_path / "chroma"),
    }))
    return cfg_path


def test_cli_stale_lists_unembedded_topics(tmp_path):
    result = CliRunner().invoke(cli, ["-c", str(_cli_config(tmp_path)), "stale"])
    assert result.exit_code == 0, result.output
    assert "garden" in result.output


def test_cli_embed_requires_ids_or_all(tmp_path):
    result = CliRunner().invoke(cli, ["-c", str(_cli_config(tmp_path)), "embed"])
    assert result.exit_code == 0
    assert "--all" in result.output


def test_cli_bad_config_exits_nonzero(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("storage_backend: bigtable\n")
    result = CliRunner().invoke(cli, ["-c", str(cfg_path), "stale"])
    assert result.exit_code == 1
    assert "storage_backend" in result.output


def test_cli_init_writes_config(tmp_path):
    home = tmp_path / "home"
    result = CliRunner().invoke(cli, ["init", "--path", str(home)])
    assert result.exit_code == 0, result.output
    cfg = yaml.safe_load((home / "config.yaml").read_text())
    assert cfg["topics_path"] == str(home / "topics")
    assert (home / "topics").is_dir()


def test_cli_embed_reports_progress_and_failures(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "topicvec.engine.SentenceTransformerBackend", lambda **kwargs: FakeBackend(dimension=384)
    )
    cfg = str(_cli_config(tmp_path))

    result = CliRunner().invoke(cli, ["-c", cfg, "embed", "garden", "missing"])
    assert result.exit_code == 0, result.output
    assert "✓ garden" in result.output
    assert "✗ missing: Topic not found: missing" in result.output
    assert "failed 1 time(s)" in result.output
    assert "Embedded 1/2 topic(s)" in result.output

    result = CliRunner().invoke(cli, ["-c", cfg, "embed", "--all"])
    assert result.exit_code == 0, result.output
    assert "Embedded 1/1 topic(s)" in result.output
