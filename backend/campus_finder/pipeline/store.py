"""Work-item store: the only place the pipeline touches ``items`` rows.

Every change to ``embedding_status`` goes through a single conditional
``UPDATE``; there is no read-modify-write of that column anywhere.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, List

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models.item import Item
from ..utils.geo import bounding_box, haversine_meters
from ..utils.time import utcnow

logger = logging.getLogger(__name__)

CLAIMABLE_STATUSES = ("pending", "failed")


def eligibility_clause(now: datetime, created_before: datetime | None, entity=Item):
    """SQL predicate for items the claim scheduler may take."""
    clauses = [
        entity.image_url.isnot(None),
        entity.image_embedding.is_(None),
        or_(entity.embedding_status.in_(CLAIMABLE_STATUSES), entity.embedding_status.is_(None)),
        or_(entity.next_retry_at.is_(None), entity.next_retry_at <= now),
    ]
    if created_before is not None:
        clauses.append(entity.created_at < created_before)
    return and_(*clauses)


class ItemStore:
    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def get(self, item_id: int) -> Item | None:
        return self.session.get(Item, item_id, populate_existing=True)

    def claim_one_eligible(self, now: datetime | None = None, min_age: timedelta | None = None) -> Item | None:
        """Atomically move one eligible item to ``processing`` and return it.

        The candidate is picked and flipped in one statement whose WHERE clause
        repeats the eligibility predicate, so a row another worker took first
        simply fails to match. On Postgres the candidate subquery also skips
        rows locked by a concurrent claim.
        """
        now = now or utcnow()
        created_before = now - min_age if min_age is not None else None
        predicate = eligibility_clause(now, created_before)
        # Aliased so the subquery is not correlated to the row being updated
        pick = aliased(Item)
        candidate = (
            select(pick.id)
            .where(eligibility_clause(now, created_before, pick))
            .order_by(pick.created_at, pick.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(Item)
            .where(Item.id == candidate)
            .where(predicate)
            .values(embedding_status="processing", updated_at=now)
            .returning(Item.id)
            .execution_options(synchronize_session=False)
        )
        try:
            claimed_id = self.session.execute(stmt).scalar_one_or_none()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        if claimed_id is None:
            return None
        return self.get(claimed_id)

    def update_by_id(self, item_id: int, fields: dict[str, Any], *, expected_status: str | None = None) -> bool:
        """Point update; with *expected_status* it only applies while the row is still in that state."""
        stmt = update(Item).where(Item.id == item_id)
        if expected_status is not None:
            stmt = stmt.where(Item.embedding_status == expected_status)
        values = dict(fields)
        values.setdefault("updated_at", utcnow())
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result.rowcount == 1

    def find_near(
        self,
        longitude: float,
        latitude: float,
        max_distance_m: float,
        *,
        item_type: str | None = None,
        status: str | None = "active",
    ) -> List[Item]:
        """Items within *max_distance_m* of the point, nearest first.

        Rows without coordinates never satisfy the range filter.
        """
        min_lon, min_lat, max_lon, max_lat = bounding_box(longitude, latitude, max_distance_m)
        q = select(Item).where(
            Item.longitude.isnot(None),
            Item.latitude.isnot(None),
            Item.latitude.between(min_lat, max_lat),
            Item.longitude.between(min_lon, max_lon),
        )
        if item_type is not None:
            q = q.where(Item.item_type == item_type)
        if status is not None:
            q = q.where(Item.status == status)
        rows = self.session.execute(q).scalars().all()

        hits = []
        for it in rows:
            distance = haversine_meters(longitude, latitude, it.longitude, it.latitude)
            if distance <= max_distance_m:
                hits.append((distance, it.id, it))
        hits.sort(key=lambda h: (h[0], h[1]))
        return [it for _, _, it in hits]

    def recent_active(self, since: datetime) -> List[Item]:
        q = (
            select(Item)
            .where(Item.created_at >= since, Item.status == "active")
            .order_by(Item.created_at, Item.id)
        )
        return list(self.session.execute(q).scalars().all())


__all__ = ["ItemStore", "eligibility_clause", "CLAIMABLE_STATUSES"]
