"""Match scheduler.

Every tick looks at recently reported items, pulls nearby active items of the
opposite type, and runs each same-category pair through the ordered match
strategies. A match notifies both owners, except that a side already notified
about that exact item (in this tick or any earlier one) is never notified
again. The persisted notifications are the only state carried across ticks.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Sequence

from ..models.enums import opposite_type
from ..models.item import Item
from ..models.notification import Notification
from ..utils.time import utcnow
from .settings import PipelineSettings
from .sink import NotificationSink
from .store import ItemStore
from .strategies import MatchDecision, MatchStrategy, default_strategies, evaluate_pair, same_category

logger = logging.getLogger(__name__)


class MatchScheduler:
    def __init__(
        self,
        settings: PipelineSettings,
        store: ItemStore | None = None,
        sink: NotificationSink | None = None,
        strategies: Sequence[MatchStrategy] | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.store = store or ItemStore()
        self.sink = sink or NotificationSink()
        self.strategies = list(strategies) if strategies is not None else default_strategies(settings.similarity_threshold)
        self._clock = clock
        self._tick_lock = threading.Lock()

    def tick(self) -> int:
        """Run one matching pass; returns the number of notifications created."""
        if not self._tick_lock.acquire(blocking=False):
            logger.info("Match tick still running in this process; skipping")
            return 0
        try:
            since = self._clock() - timedelta(hours=self.settings.match_window_hours)
            try:
                recent = self.store.recent_active(since)
            except Exception:
                logger.exception("Match tick could not load recent items")
                return 0
            created = 0
            # Snapshot the ids: per-pair commits expire loaded rows
            for item_id in [it.id for it in recent]:
                try:
                    created += self.match_item(item_id)
                except Exception:
                    logger.exception("Matching failed for item %s", item_id)
            if created:
                logger.info("Match tick scanned %d item(s), created %d notification(s)", len(recent), created)
            return created
        finally:
            self._tick_lock.release()

    def candidates_for(self, item: Item) -> List[Item]:
        if not item.has_location:
            return []
        return self.store.find_near(
            item.longitude,
            item.latitude,
            self.settings.match_radius_meters,
            item_type=opposite_type(item.item_type),
            status="active",
        )

    def match_item(self, item_id: int) -> int:
        item = self.store.get(item_id)
        if item is None or item.status != "active":
            return 0
        created = 0
        for cand_id in [c.id for c in self.candidates_for(item)]:
            if cand_id == item_id:
                continue
            # Reload both sides; a previous pair's commit expired them
            a = self.store.get(item_id)
            b = self.store.get(cand_id)
            if a is None or b is None or not same_category(a, b):
                continue
            decision = evaluate_pair(self.strategies, a, b)
            if decision is None:
                continue
            logger.info(
                "%s match: item %s [%s] and item %s (score %.2f)",
                decision.match_type, a.id, a.category, b.id, decision.score,
            )
            created += self.notify_pair(a, b, decision)
        return created

    def notify_pair(self, a: Item, b: Item, decision: MatchDecision) -> int:
        """Create whichever of the two owner notifications is still missing, then push them."""
        owner_a = a.reporter_user_id
        owner_b = b.reporter_user_id
        pending: List[Notification] = []
        if owner_a is not None and not self.sink.exists_by_user_and_match_item(owner_a, b.id):
            pending.append(Notification(
                user_id=owner_a,
                kind="match",
                match_type=decision.match_type,
                message=decision.owner_message(a),
                item_id=a.id,
                match_item_id=b.id,
                other_user_id=owner_b,
            ))
        if owner_b is not None and not self.sink.exists_by_user_and_match_item(owner_b, a.id):
            pending.append(Notification(
                user_id=owner_b,
                kind="match",
                match_type=decision.match_type,
                message=decision.counterpart_message(b),
                item_id=b.id,
                match_item_id=a.id,
                other_user_id=owner_a,
            ))
        if not pending:
            return 0
        return len(self.sink.deliver(pending))


__all__ = ["MatchScheduler"]
