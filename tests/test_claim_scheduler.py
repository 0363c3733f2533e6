import unittest
from unittest.mock import MagicMock
import os
import shutil
import sys
import tempfile
import threading
from datetime import timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend')))

from flask import Flask
from sqlalchemy import update

from campus_finder.extensions import db
from campus_finder.models import Item
from campus_finder.pipeline.embedding import EmbeddingScheduler, TickResult, retry_backoff
from campus_finder.pipeline.rate_limit import RateLimiter
from campus_finder.pipeline.settings import PipelineSettings
from campus_finder.pipeline.store import ItemStore
from helpers import BASE_TIME, DatabaseTestCase, FakeClock

IMAGE = "https://res.cloudinary.com/demo/image/upload/v1/items/a.jpg"


class TestRetryBackoff(unittest.TestCase):

    def test_grows_then_caps(self):
        delays = [retry_backoff(n) for n in range(1, 10)]
        self.assertEqual(delays[0], timedelta(seconds=1))
        self.assertEqual(delays[1], timedelta(seconds=2))
        for earlier, later in zip(delays, delays[1:]):
            self.assertLessEqual(earlier, later)
        self.assertEqual(delays[5], timedelta(seconds=32))
        self.assertEqual(delays[-1], timedelta(seconds=32))

    def test_configurable_base_and_factor(self):
        self.assertEqual(retry_backoff(3, base_ms=500, factor=3), timedelta(milliseconds=4500))


class TestClaimStore(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.store = ItemStore()

    def test_each_item_claimed_exactly_once(self):
        ids = {self.make_item(image_url=IMAGE).id for _ in range(4)}
        claimed = []
        for _ in range(len(ids) + 3):
            item = self.store.claim_one_eligible(now=BASE_TIME)
            if item is not None:
                claimed.append(item.id)
        self.assertEqual(sorted(claimed), sorted(ids))
        statuses = {it.embedding_status for it in Item.query.all()}
        self.assertEqual(statuses, {"processing"})

    def test_oldest_item_claimed_first(self):
        newer = self.make_item(image_url=IMAGE, age=timedelta(minutes=5))
        older = self.make_item(image_url=IMAGE, age=timedelta(hours=2))
        self.assertEqual(self.store.claim_one_eligible(now=BASE_TIME).id, older.id)
        self.assertEqual(self.store.claim_one_eligible(now=BASE_TIME).id, newer.id)

    def test_ineligible_items_are_not_claimed(self):
        self.make_item(image_url=None)
        self.make_item(image_url=IMAGE, image_embedding=[0.1, 0.2])
        self.make_item(image_url=IMAGE, embedding_status="success")
        self.make_item(image_url=IMAGE, embedding_status="processing")
        self.assertIsNone(self.store.claim_one_eligible(now=BASE_TIME))

    def test_minimum_age_gate(self):
        fresh = self.make_item(image_url=IMAGE, age=timedelta(seconds=10))
        self.assertIsNone(self.store.claim_one_eligible(now=BASE_TIME, min_age=timedelta(seconds=60)))
        self.assertEqual(self.store.claim_one_eligible(now=BASE_TIME, min_age=None).id, fresh.id)

    def test_failed_item_waits_for_retry_time(self):
        item = self.make_item(
            image_url=IMAGE,
            embedding_status="failed",
            embedding_attempts=1,
            next_retry_at=BASE_TIME + timedelta(seconds=30),
        )
        self.assertIsNone(self.store.claim_one_eligible(now=BASE_TIME))
        self.assertIsNone(self.store.claim_one_eligible(now=BASE_TIME + timedelta(seconds=29)))
        claimed = self.store.claim_one_eligible(now=BASE_TIME + timedelta(seconds=30))
        self.assertEqual(claimed.id, item.id)

    def test_legacy_rows_without_status_are_claimable(self):
        item = self.make_item(image_url=IMAGE)
        db.session.execute(update(Item).where(Item.id == item.id).values(embedding_status=None))
        db.session.commit()
        self.assertEqual(self.store.claim_one_eligible(now=BASE_TIME).id, item.id)

    def test_conditional_update_respects_expected_status(self):
        item = self.make_item(image_url=IMAGE, embedding_status="success")
        applied = self.store.update_by_id(item.id, {"embedding_status": "failed"}, expected_status="processing")
        self.assertFalse(applied)
        self.assertEqual(self.store.get(item.id).embedding_status, "success")


class TestEmbeddingScheduler(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.settings = PipelineSettings(api_key="k", batch_size=3, min_age_seconds=60, backfill_batch_delay=2)
        self.limiter = RateLimiter(60, 300, clock=FakeClock())
        self.client = MagicMock()
        self.client.limiter = self.limiter
        self.scheduler = EmbeddingScheduler(self.client, self.settings, clock=lambda: BASE_TIME)

    def test_success_stores_embedding(self):
        item = self.make_item(image_url=IMAGE)
        self.client.compute_embedding.return_value = [0.5, 0.25]

        result = self.scheduler.tick()

        self.assertEqual((result.claimed, result.succeeded, result.failed), (1, 1, 0))
        self.client.compute_embedding.assert_called_once_with(IMAGE)
        stored = db.session.get(Item, item.id, populate_existing=True)
        self.assertEqual(stored.embedding_status, "success")
        self.assertEqual(stored.image_embedding, [0.5, 0.25])
        self.assertIsNone(stored.next_retry_at)

    def test_failure_schedules_retry(self):
        item = self.make_item(image_url=IMAGE, embedding_status="failed", embedding_attempts=2)
        self.client.compute_embedding.return_value = None

        result = self.scheduler.tick()

        self.assertEqual((result.claimed, result.succeeded, result.failed), (1, 0, 1))
        stored = db.session.get(Item, item.id, populate_existing=True)
        self.assertEqual(stored.embedding_status, "failed")
        self.assertEqual(stored.embedding_attempts, 3)
        self.assertIsNone(stored.image_embedding)
        # Third failure waits base * 2^2
        self.assertEqual(stored.next_retry_at.replace(tzinfo=None), BASE_TIME + timedelta(seconds=4))

    def test_outcome_discarded_when_row_left_processing(self):
        item_id = self.make_item(image_url=IMAGE).id

        def reset_by_operator(image_url):
            # The row is pushed back to pending while the provider call is in flight
            db.session.execute(update(Item).where(Item.id == item_id).values(embedding_status="pending"))
            db.session.commit()
            return [0.5, 0.25]

        self.client.compute_embedding.side_effect = reset_by_operator

        result = self.scheduler.tick()

        self.assertEqual(result, TickResult(claimed=1, succeeded=0, failed=0, lost=1))
        stored = db.session.get(Item, item_id, populate_existing=True)
        self.assertEqual(stored.embedding_status, "pending")
        self.assertIsNone(stored.image_embedding)

    def test_client_exception_counts_as_failure(self):
        item = self.make_item(image_url=IMAGE)
        self.client.compute_embedding.side_effect = RuntimeError("unexpected")

        result = self.scheduler.tick()

        self.assertEqual(result.failed, 1)
        stored = db.session.get(Item, item.id, populate_existing=True)
        self.assertEqual(stored.embedding_status, "failed")
        self.assertEqual(stored.embedding_attempts, 1)

    def test_batch_size_limits_claims(self):
        for _ in range(5):
            self.make_item(image_url=IMAGE)
        self.client.compute_embedding.return_value = [1.0]

        self.assertEqual(self.scheduler.tick().claimed, 3)
        self.assertEqual(self.scheduler.tick().claimed, 2)
        self.assertEqual(self.scheduler.tick().claimed, 0)

    def test_fresh_items_wait_for_minimum_age(self):
        self.make_item(image_url=IMAGE, age=timedelta(seconds=5))
        self.assertEqual(self.scheduler.tick().claimed, 0)
        self.client.compute_embedding.assert_not_called()

    def test_no_claims_while_provider_cools_down(self):
        item = self.make_item(image_url=IMAGE)
        self.limiter.trip()

        result = self.scheduler.tick()

        self.assertTrue(result.skipped)
        self.assertEqual(result.claimed, 0)
        self.assertEqual(db.session.get(Item, item.id, populate_existing=True).embedding_status, "pending")

    def test_overlapping_tick_is_skipped(self):
        self.make_item(image_url=IMAGE)
        self.scheduler._tick_lock.acquire()
        try:
            result = self.scheduler.tick()
        finally:
            self.scheduler._tick_lock.release()
        self.assertTrue(result.skipped)
        self.client.compute_embedding.assert_not_called()

    def test_backfill_ignores_age_and_drains_in_batches(self):
        for _ in range(4):
            self.make_item(image_url=IMAGE, age=timedelta(seconds=1))
        self.client.compute_embedding.return_value = [1.0, 0.0]
        sleeps = []

        processed = self.scheduler.backfill(sleep=sleeps.append)

        self.assertEqual(processed, 4)
        self.assertEqual(sleeps, [2])
        self.assertEqual({it.embedding_status for it in Item.query.all()}, {"success"})


class TestConcurrentClaims(unittest.TestCase):
    """Several workers with their own connections race for the same rows."""

    ITEMS = 10
    WORKERS = 6
    ATTEMPTS_PER_WORKER = 3

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.app = Flask(__name__)
        self.app.config.update(
            SQLALCHEMY_DATABASE_URI="sqlite:///" + os.path.join(self.tmp, "claims.db"),
            # Writers queue on the database lock instead of failing fast
            SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"timeout": 30}},
        )
        db.init_app(self.app)
        with self.app.app_context():
            db.create_all()
            for n in range(self.ITEMS):
                created = BASE_TIME - timedelta(minutes=n + 1)
                db.session.add(Item(item_type="Lost", category="Keys", description="", image_url=IMAGE,
                                    created_at=created, updated_at=created))
            db.session.commit()
            self.eligible_ids = sorted(it.id for it in Item.query.all())

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.engine.dispose()
        shutil.rmtree(self.tmp)

    def _claim_worker(self, start, claimed, errors):
        with self.app.app_context():
            store = ItemStore()
            start.wait()
            try:
                for _ in range(self.ATTEMPTS_PER_WORKER):
                    item = store.claim_one_eligible(now=BASE_TIME)
                    if item is not None:
                        claimed.append(item.id)
            except Exception as e:
                errors.append(e)
            finally:
                db.session.remove()

    def test_each_item_claimed_by_exactly_one_worker(self):
        start = threading.Barrier(self.WORKERS)
        claimed, errors = [], []
        workers = [
            threading.Thread(target=self._claim_worker, args=(start, claimed, errors))
            for _ in range(self.WORKERS)
        ]
        for t in workers:
            t.start()
        for t in workers:
            t.join(timeout=60)

        self.assertEqual(errors, [])
        self.assertEqual(len(claimed), len(set(claimed)))
        self.assertEqual(sorted(claimed), self.eligible_ids)
        with self.app.app_context():
            self.assertEqual({it.embedding_status for it in Item.query.all()}, {"processing"})


if __name__ == '__main__':
    unittest.main()
