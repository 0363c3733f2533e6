"""Notification sink: persistence plus best-effort live push."""

from __future__ import annotations

import logging
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.notification import Notification
from ..schemas.notification import notification_event

logger = logging.getLogger(__name__)


class NotificationSink:
    def __init__(self, bus=None, session=None):
        self._bus = bus
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    @property
    def bus(self):
        if self._bus is None:
            from ..modules.notifications.bus import get_bus

            self._bus = get_bus()
        return self._bus

    def exists_by_user_and_match_item(self, user_id: int, match_item_id: int) -> bool:
        q = (
            select(Notification.id)
            .where(Notification.user_id == user_id, Notification.match_item_id == match_item_id)
            .limit(1)
        )
        return self.session.execute(q).first() is not None

    def insert_many(self, notifications: Iterable[Notification]) -> List[Notification]:
        """Persist each notification; rows that lose a uniqueness race are skipped."""
        created: List[Notification] = []
        for n in notifications:
            self.session.add(n)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.info(
                    "Notification for user %s about item %s already exists; skipping",
                    n.user_id, n.match_item_id,
                )
                continue
            created.append(n)
        return created

    def push_if_connected(self, user_id: int, notification: Notification) -> bool:
        try:
            delivered = self.bus.publish(int(user_id), notification_event(notification))
        except Exception:
            # The row is already stored; the inbox query will surface it
            logger.exception("Live push failed for user %s", user_id)
            return False
        if delivered:
            logger.debug("Pushed notification %s to user %s", notification.id, user_id)
        return delivered

    def deliver(self, notifications: Iterable[Notification]) -> List[Notification]:
        """Insert, then push whatever was actually created."""
        created = self.insert_many(notifications)
        for n in created:
            self.push_if_connected(n.user_id, n)
        return created


__all__ = ["NotificationSink"]
