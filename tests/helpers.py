"""Shared fixtures: a fresh in-memory database per test and small fakes."""

import os
import sys
import unittest
from datetime import datetime, timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend')))

from campus_finder import create_app
from campus_finder.extensions import db
from campus_finder.models import Item, User
from campus_finder.modules.notifications.bus import InMemoryNotificationBus, set_bus
from campus_finder.pipeline.inference import reset_inference_client
from campus_finder.pipeline.runtime import reset_schedulers

# Naive UTC, which is how SQLite hands datetimes back
BASE_TIME = datetime(2026, 3, 1, 12, 0, 0)

# Two points roughly 110 m apart, and one about 5 km away
CAMPUS = (-122.2585, 37.8719)
NEARBY = (-122.2585, 37.8729)
ACROSS_TOWN = (-122.2000, 37.8719)


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of blocking."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


class DatabaseTestCase(unittest.TestCase):

    def setUp(self):
        self.app = create_app("testing")
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.bus = InMemoryNotificationBus()
        set_bus(self.bus)
        reset_inference_client()
        reset_schedulers()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()
        set_bus(None)
        reset_inference_client()
        reset_schedulers()

    def make_user(self, user_id, name=None):
        user = User(id=user_id, email=f"user{user_id}@example.edu", name=name or f"User {user_id}")
        db.session.add(user)
        db.session.commit()
        return user

    def make_item(self, reporter_id=None, item_type="Lost", category="Wallet", description="",
                  location=CAMPUS, age=timedelta(minutes=10), now=BASE_TIME, **fields):
        lng, lat = location if location else (None, None)
        created = now - age
        item = Item(
            reporter_user_id=reporter_id,
            item_type=item_type,
            category=category,
            description=description,
            longitude=lng,
            latitude=lat,
            created_at=created,
            updated_at=created,
            **fields,
        )
        db.session.add(item)
        db.session.commit()
        return item
