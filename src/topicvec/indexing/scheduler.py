"""Debounced re-embedding of topics after edits."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from ..models import EmbedResult
from .orchestrator import TopicEmbeddingOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD_MS = 5000

ErrorCallback = Callable[[str, Exception], None]


@dataclass
class PendingReembed:
    """A scheduled pass for one topic."""
    topic_id: str
    scheduled_at: float
    generation: int = 0
    timer: Any = None


class ReembedScheduler:
    """Coalesces bursts of change notifications into one pass per topic.

    Every notification pushes the topic's deadline out by the quiet period.
    Each topic has at most one timer; re-arming cancels the old one and bumps
    the generation so a timer that already fired cannot run a stale pass.
    Passes run on the timer thread.
    """

    def __init__(
        self,
        orchestrator: TopicEmbeddingOrchestrator,
        quiet_period_ms: int = DEFAULT_QUIET_PERIOD_MS,
        on_error: ErrorCallback | None = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.orchestrator = orchestrator
        self.quiet_period = quiet_period_ms / 1000.0
        self.on_error = on_error
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[str, PendingReembed] = {}
        self._topic_locks: dict[str, threading.Lock] = {}
        self._in_flight: dict[str, int] = {}
        self._dirty: set[str] = set()
        # topics deleted while a pass was running; their units are removed when it ends
        self._deleted: set[str] = set()
        self._closed = False

    def notify_changed(self, topic_id: str) -> None:
        """Record an edit to *topic_id* and (re)start its quiet period."""
        with self._lock:
            if self._closed:
                logger.debug("Scheduler closed, ignoring change to %s", topic_id)
                return
            if self._in_flight.get(topic_id):
                self._deleted.discard(topic_id)
                self._dirty.add(topic_id)
                return
            self._arm(topic_id)

    def _arm(self, topic_id: str) -> None:
        # caller holds self._lock
        deadline = self._clock() + self.quiet_period
        pending = self._pending.get(topic_id)
        if pending is None:
            pending = PendingReembed(topic_id=topic_id, scheduled_at=deadline)
            self._pending[topic_id] = pending
        else:
            if pending.timer is not None:
                pending.timer.cancel()
            pending.scheduled_at = deadline
            pending.generation += 1

        timer = self._timer_factory(self.quiet_period, self._fire, args=(pending, pending.generation))
        timer.daemon = True
        pending.timer = timer
        timer.start()

    def _fire(self, record: PendingReembed, generation: int) -> None:
        topic_id = record.topic_id
        with self._lock:
            pending = self._pending.get(topic_id)
            # a replaced record or a bumped generation means this timer lost the race
            if pending is not record or pending.generation != generation:
                logger.debug("Dropping stale timer for %s (generation %d)", topic_id, generation)
                return
            del self._pending[topic_id]
            self._in_flight[topic_id] = self._in_flight.get(topic_id, 0) + 1

        try:
            self._run_pass(topic_id)
        except Exception as e:
            logger.error("Debounced re-embed of %s failed: %s", topic_id, e)
            if self.on_error is not None:
                self.on_error(topic_id, e)

    def _topic_lock(self, topic_id: str) -> threading.Lock:
        with self._lock:
            return self._topic_locks.setdefault(topic_id, threading.Lock())

    def _run_pass(self, topic_id: str) -> EmbedResult:
        # caller has already counted the pass in self._in_flight
        try:
            with self._topic_lock(topic_id):
                return self.orchestrator.embed_topic(topic_id)
        finally:
            deleted = False
            with self._lock:
                remaining = self._in_flight.get(topic_id, 1) - 1
                if remaining:
                    self._in_flight[topic_id] = remaining
                else:
                    self._in_flight.pop(topic_id, None)
                    # every pass waiting on the lock is counted in _in_flight
                    self._topic_locks.pop(topic_id, None)
                    if topic_id in self._deleted:
                        self._deleted.discard(topic_id)
                        deleted = True
                    elif topic_id in self._dirty:
                        self._dirty.discard(topic_id)
                        if not self._closed:
                            self._arm(topic_id)
            if deleted:
                logger.info("Topic %s was deleted during its pass, removing its units", topic_id)
                self.orchestrator.remove_topic(topic_id)

    def request_immediate(self, topic_id: str) -> EmbedResult:
        """Run a pass now on the calling thread, superseding any pending timer."""
        with self._lock:
            pending = self._pending.pop(topic_id, None)
            if pending is not None and pending.timer is not None:
                pending.timer.cancel()
            self._in_flight[topic_id] = self._in_flight.get(topic_id, 0) + 1
        return self._run_pass(topic_id)

    def cancel(self, topic_id: str) -> bool:
        """Drop any pending pass for *topic_id*. Returns True if one was pending."""
        with self._lock:
            self._dirty.discard(topic_id)
            pending = self._pending.pop(topic_id, None)
        if pending is None:
            return False
        if pending.timer is not None:
            pending.timer.cancel()
        logger.debug("Cancelled pending re-embed of %s", topic_id)
        return True

    def topic_deleted(self, topic_id: str) -> bool:
        """Cancel any pending pass; a pass already running has its units removed when it ends."""
        with self._lock:
            if self._in_flight.get(topic_id):
                self._deleted.add(topic_id)
        return self.cancel(topic_id)

    def shutdown(self) -> None:
        """Cancel every timer and stop accepting notifications."""
        with self._lock:
            self._closed = True
            pending = list(self._pending.values())
            self._pending.clear()
            self._dirty.clear()
        for p in pending:
            if p.timer is not None:
                p.timer.cancel()

    def is_pending(self, topic_id: str) -> bool:
        with self._lock:
            return topic_id in self._pending

    def pending(self, topic_id: str) -> PendingReembed | None:
        with self._lock:
            return self._pending.get(topic_id)

    def pending_topics(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)
