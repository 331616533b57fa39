"""Per-topic record of failed embedding passes."""

import logging
import threading
from dataclasses import asdict, replace
from datetime import datetime, timezone
from pathlib import Path

import yaml

from ..models import EmbedFailure

logger = logging.getLogger(__name__)


class FailureLedger:
    """Counts failed passes per topic until the topic next embeds cleanly.

    With a ``path`` the ledger is kept in a YAML file so failures from one
    process show up in the next.
    """

    def __init__(self, path: str | None = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._failures: dict[str, EmbedFailure] = self._load()

    def _load(self) -> dict[str, EmbedFailure]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable failure ledger %s: %s", self.path, e)
            return {}
        return {
            str(tid): EmbedFailure(
                topic_id=str(tid),
                error_count=int(entry.get("error_count", 0)),
                last_error=str(entry.get("last_error", "")),
                last_failed_at=str(entry.get("last_failed_at", "")),
            )
            for tid, entry in data.items()
            if isinstance(entry, dict)
        }

    def _save(self) -> None:
        # caller holds self._lock
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {tid: {k: v for k, v in asdict(f).items() if k != "topic_id"} for tid, f in self._failures.items()}
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=True)

    def record(self, topic_id: str, error: Exception) -> EmbedFailure:
        with self._lock:
            failure = self._failures.setdefault(topic_id, EmbedFailure(topic_id=topic_id))
            failure.error_count += 1
            failure.last_error = str(error)
            failure.last_failed_at = datetime.now(timezone.utc).isoformat()
            self._save()
            return replace(failure)

    def clear(self, topic_id: str) -> None:
        with self._lock:
            if self._failures.pop(topic_id, None) is not None:
                self._save()

    def get(self, topic_id: str) -> EmbedFailure | None:
        with self._lock:
            failure = self._failures.get(topic_id)
            return replace(failure) if failure is not None else None

    def all(self) -> list[EmbedFailure]:
        with self._lock:
            return [replace(self._failures[tid]) for tid in sorted(self._failures)]
