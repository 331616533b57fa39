"""Shared fakes: no model download, no real timers."""

import copy
import hashlib

import pytest

from topicvec.config import DEFAULT_CONFIG
from topicvec.engine import build_engine
from topicvec.storage.memory import MemoryEmbeddingStore

DIM = 8


class FakeBackend:
    """Deterministic backend that counts encode calls."""

    def __init__(self, dimension: int = DIM, vectors: dict | None = None, initialized: bool = True):
        self.dimension = dimension
        self.vectors = vectors or {}
        self.initialized = initialized
        self.calls = 0
        self.seen: list[list[str]] = []
        self.fail_on_call: int | None = None
        self.wrong_dimension = False
        # called once, at the start of the next encode
        self.on_encode = None

    @property
    def is_initialized(self) -> bool:
        return self.initialized

    def initialize(self) -> None:
        self.initialized = True

    def device_info(self) -> str:
        return "fake"

    def encode(self, texts):
        if self.on_encode is not None:
            hook, self.on_encode = self.on_encode, None
            hook()
        self.calls += 1
        self.seen.append(list(texts))
        if self.fail_on_call is not None and self.calls >= self.fail_on_call:
            raise RuntimeError("boom")
        size = self.dimension + 1 if self.wrong_dimension else self.dimension
        return [self.vectors.get(t) or self._vector(t, size) for t in texts]

    @staticmethod
    def _vector(text: str, size: int) -> list[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i % len(digest)] - 127.5) / 127.5 for i in range(size)]


class DictTopicSource:
    """Topic source backed by a dict of trees."""

    def __init__(self, trees=None):
        self.trees = dict(trees or {})

    def fetch_topic_tree(self, topic_id):
        return self.trees.get(topic_id)

    def list_topic_ids(self):
        return sorted(self.trees)


class ManualTimer:
    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self, force: bool = False):
        """Run the callback as the timer thread would; cancelled timers only when forced."""
        if self.cancelled and not force:
            return
        self.fired = True
        self.function(*self.args)


class ManualTimers:
    """Timer factory that records every timer instead of starting threads."""

    def __init__(self):
        self.created: list[ManualTimer] = []

    def __call__(self, interval, function, args=()):
        timer = ManualTimer(interval, function, args)
        self.created.append(timer)
        return timer

    def active(self) -> list[ManualTimer]:
        return [t for t in self.created if t.started and not t.cancelled and not t.fired]

    def fire_all(self):
        for timer in self.active():
            timer.fire()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def source():
    return DictTopicSource()


@pytest.fixture
def config():
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["dimension"] = DIM
    cfg["storage_backend"] = "memory"
    return cfg


@pytest.fixture
def engine(config, backend, source, timers):
    eng = build_engine(
        config,
        backend=backend,
        store=MemoryEmbeddingStore(dimension=DIM),
        source=source,
        timer_factory=timers,
    )
    yield eng
    eng.close()
