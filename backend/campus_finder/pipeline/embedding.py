"""Embedding claim scheduler.

Each tick claims a small batch of items that still need an image embedding,
runs them through the inference client and records the outcome. Claims are
conditional updates, so any number of workers and replicas can tick at once
without two of them processing the same item.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func

from ..models.item import Item
from ..utils.time import utcnow
from .inference import InferenceClient
from .settings import PipelineSettings
from .store import ItemStore

logger = logging.getLogger(__name__)

# Exponent cap: the retry delay stops growing after this many extra attempts
MAX_BACKOFF_EXPONENT = 5

OUTCOME_SUCCESS = "success"
OUTCOME_FAILED = "failed"
OUTCOME_LOST = "lost"


def retry_backoff(attempts: int, base_ms: float = 1000, factor: float = 2) -> timedelta:
    """Delay before the next claim of an item that has failed *attempts* times."""
    exponent = min(max(attempts - 1, 0), MAX_BACKOFF_EXPONENT)
    return timedelta(milliseconds=base_ms * (factor ** exponent))


@dataclass
class TickResult:
    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    # Claims another worker took over before the outcome was written
    lost: int = 0
    skipped: bool = False


class EmbeddingScheduler:
    def __init__(
        self,
        client: InferenceClient,
        settings: PipelineSettings,
        store: ItemStore | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.settings = settings
        self.store = store or ItemStore()
        self._clock = clock
        # Guards against a timer firing while this process is still mid-tick
        self._tick_lock = threading.Lock()

    def tick(self) -> TickResult:
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Embedding tick still running in this process; skipping")
            return TickResult(skipped=True)
        try:
            return self._run_batch(min_age=timedelta(seconds=self.settings.min_age_seconds))
        except Exception:
            logger.exception("Embedding tick failed")
            return TickResult()
        finally:
            self._tick_lock.release()

    def backfill(self, max_batches: int | None = None, sleep: Callable[[float], None] = time.sleep) -> int:
        """Drain every eligible item in batches, ignoring the minimum-age gate.

        Stops when a batch claims nothing or the provider is cooling down.
        Returns the number of items processed.
        """
        processed = 0
        batches = 0
        with self._tick_lock:
            while max_batches is None or batches < max_batches:
                result = self._run_batch(min_age=None)
                batches += 1
                processed += result.claimed
                if result.claimed < self.settings.batch_size or result.skipped:
                    break
                logger.info("Backfill: sleeping %.1fs before next batch", self.settings.backfill_batch_delay)
                sleep(self.settings.backfill_batch_delay)
        logger.info("Backfill complete. Processed: %d", processed)
        return processed

    def _run_batch(self, min_age: timedelta | None) -> TickResult:
        result = TickResult()
        if self.client.limiter.in_cooldown():
            logger.info("Inference provider cooling down; not claiming this tick")
            result.skipped = True
            return result

        claimed: list[Item] = []
        for _ in range(max(0, self.settings.batch_size)):
            item = self.store.claim_one_eligible(now=self._clock(), min_age=min_age)
            if item is None:
                break
            claimed.append(item)
        result.claimed = len(claimed)
        if claimed:
            logger.info("Claimed %d item(s) for embedding", len(claimed))

        for item in claimed:
            outcome = self.process_item(item)
            if outcome == OUTCOME_SUCCESS:
                result.succeeded += 1
            elif outcome == OUTCOME_FAILED:
                result.failed += 1
            else:
                result.lost += 1
        if claimed:
            logger.info(
                "Embedding tick done: %d succeeded, %d failed, %d lost", result.succeeded, result.failed, result.lost
            )
        return result

    def process_item(self, item: Item) -> str:
        """Embed one claimed item and record the outcome. Never raises.

        Returns ``"success"`` or ``"failed"``, or ``"lost"`` when the row left
        ``processing`` before the outcome could be written.
        """
        item_id = item.id
        attempts_before = item.embedding_attempts or 0
        image_url = item.image_url
        try:
            embedding = self.client.compute_embedding(image_url)
        except Exception:
            logger.exception("Error embedding item %s", item_id)
            embedding = None

        try:
            if embedding:
                applied = self.store.update_by_id(
                    item_id,
                    {"image_embedding": list(embedding), "embedding_status": "success", "next_retry_at": None},
                    expected_status="processing",
                )
                if not applied:
                    logger.warning("Item %s is no longer processing; discarding its embedding", item_id)
                    return OUTCOME_LOST
                logger.info("Stored embedding (%d dims) for item %s", len(embedding), item_id)
                return OUTCOME_SUCCESS
            attempts = attempts_before + 1
            retry_at = self._clock() + retry_backoff(
                attempts, self.settings.backoff_base_ms, self.settings.backoff_factor
            )
            applied = self.store.update_by_id(
                item_id,
                {
                    "embedding_status": "failed",
                    "embedding_attempts": func.coalesce(Item.embedding_attempts, 0) + 1,
                    "next_retry_at": retry_at,
                },
                expected_status="processing",
            )
            if not applied:
                logger.warning("Item %s is no longer processing; failure not recorded", item_id)
                return OUTCOME_LOST
            logger.warning(
                "No embedding for item %s. attempts=%d, retryAt=%s", item_id, attempts, retry_at.isoformat()
            )
        except Exception:
            logger.exception("Could not record embedding outcome for item %s", item_id)
        return OUTCOME_FAILED


__all__ = [
    "EmbeddingScheduler",
    "TickResult",
    "retry_backoff",
    "MAX_BACKOFF_EXPONENT",
    "OUTCOME_SUCCESS",
    "OUTCOME_FAILED",
    "OUTCOME_LOST",
]
