"""File watcher that feeds topic edits into the re-embed scheduler."""

import logging
import time
from pathlib import Path

from rich.console import Console
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .topics.source import FileTopicSource, is_topic_file

logger = logging.getLogger(__name__)
console = Console()


class TopicChangeHandler(FileSystemEventHandler):
    """Maps file events to scheduler notifications; debouncing is the scheduler's job."""

    def __init__(self, engine):
        super().__init__()
        self.engine = engine
        self.source: FileTopicSource = engine.source

    def _is_supported(self, path: str) -> bool:
        return is_topic_file(Path(path))

    def on_created(self, event):
        if not event.is_directory and self._is_supported(event.src_path):
            self._changed(event.src_path)

    def on_modified(self, event):
        if not event.is_directory and self._is_supported(event.src_path):
            self._changed(event.src_path)

    def on_deleted(self, event):
        if not event.is_directory and self._is_supported(event.src_path):
            self._deleted(event.src_path)

    def on_moved(self, event):
        if event.is_directory:
            return
        if self._is_supported(event.src_path):
            self._deleted(event.src_path)
        if self._is_supported(event.dest_path):
            self._changed(event.dest_path)

    def _changed(self, path: str):
        # id the file was indexed under before this edit
        previous_id = self.source.topic_id_for_path(path)
        self.source.refresh()
        topic_id = self.source.topic_id_for_path(path)
        if topic_id is None:
            logger.debug("No topic found for %s", path)
            return

        if previous_id is not None and previous_id != topic_id:
            self.engine.scheduler.topic_deleted(previous_id)
            removed = self.engine.orchestrator.remove_topic(previous_id)
            console.print(
                f"  [yellow]Topic renamed: {previous_id} -> {topic_id} ({removed} embedding(s) deleted)[/]"
            )

        console.print(f"  [dim]Detected change: {Path(path).name} ({topic_id})[/]")
        self.engine.scheduler.notify_changed(topic_id)

    def _deleted(self, path: str):
        topic_id = self.source.topic_id_for_path(path) or Path(path).stem
        self.engine.scheduler.topic_deleted(topic_id)
        removed = self.engine.orchestrator.remove_topic(topic_id)
        self.source.refresh()
        console.print(f"  [yellow]Topic removed: {topic_id} ({removed} embedding(s) deleted)[/]")


class TopicWatcher:
    """Watches the topics directory and re-embeds topics after edits settle."""

    def __init__(self, engine):
        self.engine = engine
        self.topics_path = Path(engine.config["topics_path"])
        self.handler = TopicChangeHandler(engine)
        self.observer = Observer()

    def start(self):
        self.topics_path.mkdir(parents=True, exist_ok=True)
        self.engine.source.refresh()
        self.observer.schedule(self.handler, str(self.topics_path), recursive=True)
        self.observer.start()

    def stop(self):
        self.observer.stop()
        self.observer.join()
        self.engine.scheduler.shutdown()

    def run(self):
        """Start watching (blocks until Ctrl+C)."""
        self.start()
        quiet = self.engine.scheduler.quiet_period
        console.print(f"[bold]Watching {self.topics_path} for topic edits... (Ctrl+C to stop)[/]")
        console.print(f"[dim]  Quiet period: {quiet:g}s[/]")

        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopping watcher...[/]")
        self.stop()
        console.print("[green]✓ Watcher stopped.[/]")
