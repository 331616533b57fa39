"""Configuration management for topicvec."""

import copy
import os
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

DEFAULT_CONFIG = {
    "model_identifier": "BAAI/bge-small-en-v1.5",
    "model_path": None,
    "max_sequence_length": 512,
    "dimension": 384,
    "cache_capacity": 1000,
    "quiet_period_ms": 5000,
    "token_thresholds": {"low": 512, "high": 2048},
    "max_depth": 32,
    "max_descendants": 1000,
    "batch_size": 32,
    "storage_backend": "chromadb",
    "chroma_path": "~/.topicvec/chroma",
    "collection": "topic_embeddings",
    "failures_path": "~/.topicvec/failures.yaml",
    "topics_path": "~/.topicvec/topics",
    "search": {"threshold": 0.7, "limit": 20},
}

STORAGE_BACKENDS = ("chromadb", "memory")


def _find_config_file() -> Path | None:
    """Look for config.yaml in standard locations."""
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.cwd() / "config.yaml",
        Path.home() / ".topicvec" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path) if config_path else _find_config_file()
    if config_path and not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        if not isinstance(file_cfg, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if model_path := os.environ.get("TOPICVEC_MODEL_PATH"):
        cfg["model_path"] = model_path
    if model := os.environ.get("TOPICVEC_MODEL"):
        cfg["model_identifier"] = model

    # Expand paths
    for key in ("chroma_path", "topics_path", "model_path", "failures_path"):
        if cfg.get(key):
            cfg[key] = str(Path(cfg[key]).expanduser().resolve())

    validate_config(cfg)
    return cfg


def validate_config(cfg: dict[str, Any]) -> None:
    """Raise ConfigError if any value is out of range."""
    for key in ("dimension", "cache_capacity", "max_depth", "batch_size", "max_sequence_length"):
        value = cfg.get(key)
        if not isinstance(value, int) or value < 1:
            raise ConfigError(f"{key} must be a positive integer, got {value!r}")

    if not isinstance(cfg.get("max_descendants"), int) or cfg["max_descendants"] < 0:
        raise ConfigError(f"max_descendants must be a non-negative integer, got {cfg.get('max_descendants')!r}")

    quiet = cfg.get("quiet_period_ms")
    if not isinstance(quiet, (int, float)) or quiet < 0:
        raise ConfigError(f"quiet_period_ms must be non-negative, got {quiet!r}")

    thresholds = cfg.get("token_thresholds") or {}
    low, high = thresholds.get("low"), thresholds.get("high")
    if not isinstance(low, int) or not isinstance(high, int) or not 0 < low < high:
        raise ConfigError(f"token_thresholds must satisfy 0 < low < high, got low={low!r} high={high!r}")

    if cfg.get("storage_backend") not in STORAGE_BACKENDS:
        raise ConfigError(
            f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}, got {cfg.get('storage_backend')!r}"
        )

    search = cfg.get("search") or {}
    threshold = search.get("threshold")
    if not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 2.0:
        raise ConfigError(f"search.threshold must be between 0 and 2, got {threshold!r}")
    if not isinstance(search.get("limit"), int) or search["limit"] < 1:
        raise ConfigError(f"search.limit must be a positive integer, got {search.get('limit')!r}")


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
