"""Plain-value settings for the schedulers and the inference client.

Built from the Flask config (or any mapping with the same keys) so the pipeline
never reaches into ``current_app`` itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class PipelineSettings:
    api_key: str | None = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    vision_model: str = "gemini-1.5-flash-latest"
    embedding_model: str = "embedding-001"
    request_timeout: float = 30.0
    image_root: str | None = None

    rate_per_minute: float = 30.0
    max_retries: int = 3
    backoff_base_ms: float = 1000.0
    backoff_factor: float = 2.0
    cooldown_seconds: float = 300.0

    batch_size: int = 3
    min_age_seconds: float = 60.0
    backfill_batch_delay: float = 2.0

    similarity_threshold: float = 0.60
    match_window_hours: float = 24.0
    match_radius_meters: float = 1000.0

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "PipelineSettings":
        defaults = cls()

        def pick(key: str, fallback):
            value = config.get(key)
            return fallback if value is None else value

        return cls(
            api_key=config.get("GOOGLE_API_KEY") or None,
            base_url=str(pick("INFERENCE_BASE_URL", defaults.base_url)).rstrip("/"),
            vision_model=pick("VISION_MODEL", defaults.vision_model),
            embedding_model=pick("EMBEDDING_MODEL", defaults.embedding_model),
            request_timeout=float(pick("INFERENCE_TIMEOUT_SECONDS", defaults.request_timeout)),
            image_root=config.get("IMAGE_ROOT") or None,
            rate_per_minute=float(pick("EMBED_RATE_PER_MIN", defaults.rate_per_minute)),
            max_retries=int(pick("EMBED_MAX_RETRIES", defaults.max_retries)),
            backoff_base_ms=float(pick("EMBED_BACKOFF_BASE_MS", defaults.backoff_base_ms)),
            backoff_factor=float(pick("EMBED_BACKOFF_FACTOR", defaults.backoff_factor)),
            cooldown_seconds=float(pick("EMBED_COOLDOWN_SECONDS", defaults.cooldown_seconds)),
            batch_size=int(pick("EMBED_BATCH_SIZE", defaults.batch_size)),
            min_age_seconds=float(pick("EMBED_MIN_AGE_SECONDS", defaults.min_age_seconds)),
            backfill_batch_delay=float(pick("BACKFILL_BATCH_DELAY_SECONDS", defaults.backfill_batch_delay)),
            similarity_threshold=float(pick("MATCH_SIMILARITY_THRESHOLD", defaults.similarity_threshold)),
            match_window_hours=float(pick("MATCH_WINDOW_HOURS", defaults.match_window_hours)),
            match_radius_meters=float(pick("MATCH_RADIUS_METERS", defaults.match_radius_meters)),
        )
