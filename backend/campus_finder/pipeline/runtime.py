"""Process-wide scheduler instances.

Each worker process owns one scheduler of each kind, so the per-process
"tick in progress" guard and the inference client's rate limiter are shared by
every tick that process runs.
"""

from __future__ import annotations

import threading

from .embedding import EmbeddingScheduler
from .inference import get_inference_client
from .matching import MatchScheduler
from .settings import PipelineSettings

_lock = threading.Lock()
_embedding: EmbeddingScheduler | None = None
_matching: MatchScheduler | None = None


def _config(config):
    if config is None:
        from flask import current_app

        config = current_app.config
    return config


def get_embedding_scheduler(config=None) -> EmbeddingScheduler:
    global _embedding
    with _lock:
        if _embedding is None:
            config = _config(config)
            _embedding = EmbeddingScheduler(get_inference_client(config), PipelineSettings.from_mapping(config))
        return _embedding


def get_match_scheduler(config=None) -> MatchScheduler:
    global _matching
    with _lock:
        if _matching is None:
            _matching = MatchScheduler(PipelineSettings.from_mapping(_config(config)))
        return _matching


def reset_schedulers() -> None:
    global _embedding, _matching
    with _lock:
        _embedding = None
        _matching = None


__all__ = ["get_embedding_scheduler", "get_match_scheduler", "reset_schedulers"]
