from __future__ import annotations

import json
import logging
import threading
from queue import Queue, Empty, Full
from typing import Any, Dict, List

import redis

logger = logging.getLogger(__name__)


class _QueueSubscription:
    def __init__(self, bus: "InMemoryNotificationBus", user_id: int):
        self._bus = bus
        self.user_id = user_id
        self.queue: Queue = Queue(maxsize=100)

    def get(self, timeout: float | None = None) -> Dict[str, Any] | None:
        try:
            return self.queue.get(timeout=timeout)
        except Empty:
            return None

    def close(self) -> None:
        self._bus.unsubscribe(self)


class InMemoryNotificationBus:
    """In-process pub/sub for SSE. Only reaches streams served by this process."""

    def __init__(self):
        self._subs: dict[int, List[_QueueSubscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id: int) -> _QueueSubscription:
        sub = _QueueSubscription(self, user_id)
        with self._lock:
            self._subs.setdefault(user_id, []).append(sub)
        return sub

    def unsubscribe(self, sub: _QueueSubscription) -> None:
        with self._lock:
            arr = self._subs.get(sub.user_id)
            if not arr:
                return
            try:
                arr.remove(sub)
            except ValueError:
                pass
            if not arr:
                self._subs.pop(sub.user_id, None)

    def publish(self, user_id: int, event: Dict[str, Any]) -> bool:
        """Deliver to every live subscriber of *user_id*; True if at least one received it."""
        with self._lock:
            arr = list(self._subs.get(user_id, []))
        delivered = False
        for sub in arr:
            try:
                sub.queue.put_nowait(event)
                delivered = True
            except Full:
                logger.warning("Dropping notification for user %s: subscriber queue full", user_id)
        return delivered


class _RedisSubscription:
    def __init__(self, pubsub, user_id: int):
        self._pubsub = pubsub
        self.user_id = user_id

    def get(self, timeout: float | None = None) -> Dict[str, Any] | None:
        msg = self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout or 0.0)
        if not msg or msg.get("type") != "message":
            return None
        try:
            return json.loads(msg["data"])
        except (TypeError, ValueError):
            logger.warning("Discarding malformed bus message for user %s", self.user_id)
            return None

    def close(self) -> None:
        self._pubsub.close()


class RedisNotificationBus:
    """Pub/sub over Redis so Celery workers can reach SSE streams in web processes.

    ``PUBLISH`` reports how many subscribers received the message, which is
    exactly the "is the recipient connected" answer.
    """

    CHANNEL_PREFIX = "campus_finder:notifications:"

    def __init__(self, url: str, client: redis.Redis | None = None):
        self._redis = client or redis.Redis.from_url(url, decode_responses=True)

    def _channel(self, user_id: int) -> str:
        return f"{self.CHANNEL_PREFIX}{int(user_id)}"

    def subscribe(self, user_id: int) -> _RedisSubscription:
        pubsub = self._redis.pubsub()
        pubsub.subscribe(self._channel(user_id))
        return _RedisSubscription(pubsub, user_id)

    def unsubscribe(self, sub: _RedisSubscription) -> None:
        sub.close()

    def publish(self, user_id: int, event: Dict[str, Any]) -> bool:
        receivers = self._redis.publish(self._channel(user_id), json.dumps(event, default=str))
        return bool(receivers)


_bus: InMemoryNotificationBus | RedisNotificationBus | None = None
_bus_lock = threading.Lock()


def get_bus(config=None):
    """Return the process-wide bus: Redis when NOTIFICATION_BUS_URL is set, else in-memory."""
    global _bus
    with _bus_lock:
        if _bus is None:
            if config is None:
                from flask import current_app

                config = current_app.config
            url = config.get("NOTIFICATION_BUS_URL")
            _bus = RedisNotificationBus(url) if url else InMemoryNotificationBus()
        return _bus


def set_bus(bus) -> None:
    global _bus
    with _bus_lock:
        _bus = bus


__all__ = ["InMemoryNotificationBus", "RedisNotificationBus", "get_bus", "set_bus"]
