"""Embedding-and-matching pipeline.

Convenience re-exports so callers can do ``from campus_finder.pipeline import
MatchScheduler`` without knowing which module provides it.
"""

from .errors import InferenceError, ProviderThrottled, ProviderCoolingDown, ImageUnavailable  # noqa: F401
from .settings import PipelineSettings  # noqa: F401
from .rate_limit import RateLimiter  # noqa: F401
from .inference import InferenceClient, get_inference_client, reset_inference_client  # noqa: F401
from .similarity import cosine_similarity, keyword_overlap  # noqa: F401
from .store import ItemStore  # noqa: F401
from .sink import NotificationSink  # noqa: F401
from .strategies import (  # noqa: F401
    EmbeddingSimilarityStrategy,
    KeywordFallbackStrategy,
    MatchDecision,
    default_strategies,
    evaluate_pair,
)
from .embedding import EmbeddingScheduler, TickResult, retry_backoff  # noqa: F401
from .matching import MatchScheduler  # noqa: F401

__all__ = [
    "InferenceError",
    "ProviderThrottled",
    "ProviderCoolingDown",
    "ImageUnavailable",
    "PipelineSettings",
    "RateLimiter",
    "InferenceClient",
    "get_inference_client",
    "reset_inference_client",
    "cosine_similarity",
    "keyword_overlap",
    "ItemStore",
    "NotificationSink",
    "EmbeddingSimilarityStrategy",
    "KeywordFallbackStrategy",
    "MatchDecision",
    "default_strategies",
    "evaluate_pair",
    "EmbeddingScheduler",
    "TickResult",
    "retry_backoff",
    "MatchScheduler",
]
